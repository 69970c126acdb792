import os
import sys
import pytest

# Ensure the backend root (containing the `geoscope` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from geoscope import create_app, db, socketio
from geoscope.models import User
from geoscope.services.games.images import Image, ImageCatalog
from geoscope.services.games.registry import RoomSettings


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    FRONTEND_ORIGINS = ['http://localhost:3000']
    LOG_LEVEL = 'INFO'
    SCORE_DECAY_KM = 2000
    ROOM_CODE_ATTEMPTS = 10
    MIN_PLAYERS = 2
    ROUND_INTRO_DURATION_SEC = 0
    TIMER_HEARTBEAT_SEC = 0


TARGET = Image('target', 'https://images.example.test/target.jpg', 40.0, -75.0, 'Test target')


class ManualScheduler:
    """Timer stand-in: nothing fires until a test calls ``fire``."""

    def __init__(self):
        self.pending = {}

    def schedule(self, key, delay, callback, *args):
        self.pending[key] = (delay, callback, args)
        return key

    def cancel(self, key):
        return self.pending.pop(key, None) is not None

    def delay(self, key):
        return self.pending[key][0]

    def callback(self, key):
        _, callback, args = self.pending[key]
        return lambda: callback(*args)

    def fire(self, key):
        _, callback, args = self.pending.pop(key)
        return callback(*args)


class RecordingTransport:

    def __init__(self):
        self.sent = []

    def send_to_player(self, player_id, event, payload):
        self.sent.append(('player', player_id, event, payload))

    def broadcast_to_room(self, room_code, event, payload):
        self.sent.append(('room', room_code, event, payload))

    def subscribe(self, room_code):
        pass

    def unsubscribe(self, room_code):
        pass

    def events(self, name=None):
        return [(target, event, payload) for _, target, event, payload in self.sent if name is None or event == name]

    def names(self):
        return [event for _, _, event, _ in self.sent]


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def flask_app(scheduler):
    application = create_app(TestConfig, scheduler=scheduler, images=ImageCatalog([TARGET]))
    with application.app_context():
        # Ensure models are imported so tables are created
        import geoscope.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """Service-level tests run inside one app context (one DB session)."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


@pytest.fixture()
def services(app_ctx):
    return app_ctx.extensions['geoscope']


@pytest.fixture()
def transport(services):
    recorder = RecordingTransport()
    services.orchestrator.transport = recorder
    return recorder


@pytest.fixture()
def make_user(app_ctx):
    def _make(username):
        user = User(username=username)
        user.set_password('password')
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_room(services):
    """Create a room hosted by ``host`` and add ``guests``, all ready."""
    def _make(host, *guests, ready=True, **settings):
        room = services.registry.create_room(host.id, RoomSettings.from_payload(settings))
        for guest in guests:
            services.registry.join_room(room.code, guest.id)
            if ready:
                services.registry.set_ready(room.code, guest.id, True)
        return room.code
    return _make


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def login_client(flask_app):
    """Register a user through the API and return (test client, user id)."""
    def _login(username):
        c = flask_app.test_client()
        res = c.post('/register', json={'username': username, 'password': 'password'})
        assert res.status_code == 201
        return c, res.get_json()['user']['id']
    return _login


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _connect(http_client):
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=http_client,
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            test_client.disconnect(namespace='/ws')
        except Exception:
            pass
