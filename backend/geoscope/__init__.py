from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, scheduler=None, images=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))
    allowed_origins = flask_app.config.get('FRONTEND_ORIGINS', [])

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Expected game failures render as JSON with their own status code
    from geoscope.errors import GameError

    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required', 'code': 'unauthorized'}), 401

    from geoscope.main import main
    flask_app.register_blueprint(main)

    from geoscope.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from geoscope.api.guesses import guesses
    flask_app.register_blueprint(guesses, url_prefix='/api/guesses')

    from geoscope.api.leaderboard import leaderboard
    flask_app.register_blueprint(leaderboard, url_prefix='/api/leaderboard')

    # Game services: registry, round engine, orchestrator and stats
    from geoscope.services.games import build_game_services
    from geoscope.socketio_events import register_socketio_handlers, SocketIOTransport
    flask_app.extensions['geoscope'] = build_game_services(
        flask_app, socketio, SocketIOTransport(socketio), scheduler=scheduler, images=images,
    )
    register_socketio_handlers()

    # Flask-Login user loader
    from geoscope.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, str(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
