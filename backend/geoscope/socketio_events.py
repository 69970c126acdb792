from flask import request
from flask_login import current_user
from flask_socketio import join_room, leave_room, emit
from typing import Dict

from geoscope import socketio
from geoscope.errors import GameError, InvalidInput
from geoscope.services.games import game_services
from geoscope.services.games.codes import normalize_code

NAMESPACE = '/ws'

# sid -> room code the connection is attached to
_sid_to_room: Dict[str, str] = {}


def _room_channel(code: str) -> str:
    return f"room:{code}"


def _user_channel(user_id: str) -> str:
    return f"user:{user_id}"


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


class SocketIOTransport:
    """Delivers engine events over Socket.IO: per-user and per-room channels."""

    def __init__(self, sio=None, namespace: str = NAMESPACE):
        self.sio = sio or socketio
        self.namespace = namespace

    def send_to_player(self, player_id: str, event: str, payload: dict) -> None:
        self.sio.emit(event, payload, to=_user_channel(player_id), namespace=self.namespace)

    def broadcast_to_room(self, room_code: str, event: str, payload: dict) -> None:
        self.sio.emit(event, payload, to=_room_channel(room_code), namespace=self.namespace)

    def subscribe(self, room_code: str) -> None:
        join_room(_room_channel(room_code))

    def unsubscribe(self, room_code: str) -> None:
        leave_room(_room_channel(room_code))


def _room_code(data):
    code = normalize_code((data or {}).get('room_code'))
    if not code:
        emit('error', {'error': 'room_code is required', 'code': 'invalid_input'})
        return None
    return code


def _guarded(action):
    try:
        return action()
    except GameError as exc:
        emit('error', exc.to_dict())
        return None


def handle_connect(auth=None):
    if not current_user.is_authenticated:
        return False
    join_room(_user_channel(current_user.id))
    emit('connected', {'message': 'Connected to /ws', 'user_id': current_user.id})


def handle_disconnect(reason=None):
    code = _sid_to_room.pop(_get_sid(), None)
    if not current_user.is_authenticated:
        return
    game_services().orchestrator.player_disconnected(code, current_user.id)


def handle_join_room(data):
    code = _room_code(data)
    if not code:
        return
    snapshot = _guarded(lambda: game_services().orchestrator.join_room(
        code, current_user.id, subscribe=True, reattach=True,
    ))
    if snapshot is None:
        return
    _sid_to_room[_get_sid()] = code
    emit('joined', {'room': _room_channel(code), 'room_code': code, 'room_state': snapshot})


def handle_leave_room(data):
    code = _room_code(data)
    if not code:
        return
    outcome = _guarded(lambda: game_services().orchestrator.leave_room(code, current_user.id, unsubscribe=True))
    if outcome is None:
        return
    _sid_to_room.pop(_get_sid(), None)
    emit('left', {'room': _room_channel(code), 'room_code': code, **outcome})


def handle_player_ready(data):
    code = _room_code(data)
    if not code:
        return
    is_ready = (data or {}).get('is_ready', True)
    if not isinstance(is_ready, bool):
        emit('error', InvalidInput('is_ready must be a boolean').to_dict())
        return
    _guarded(lambda: game_services().orchestrator.set_ready(code, current_user.id, is_ready))


def handle_start_game(data):
    code = _room_code(data)
    if not code:
        return
    _guarded(lambda: game_services().orchestrator.start_game(code, current_user.id))


def handle_advance_round(data):
    code = _room_code(data)
    if not code:
        return
    _guarded(lambda: game_services().orchestrator.advance(code, current_user.id))


def handle_submit_guess(data):
    code = _room_code(data)
    if not code:
        return
    data = data or {}
    _guarded(lambda: game_services().orchestrator.submit_guess(
        code, current_user.id, data.get('round_index'), data.get('lat'), data.get('lng'),
    ))


def handle_get_round_state(data):
    code = _room_code(data)
    if not code:
        return
    try:
        state = game_services().orchestrator.round_state(code, current_user.id)
    except GameError as exc:
        emit('error', exc.to_dict())
        return
    emit('round_state', state or {'room_code': code, 'status': None})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_room', handle_join_room, namespace=NAMESPACE)
    socketio.on_event('leave_room', handle_leave_room, namespace=NAMESPACE)
    socketio.on_event('player_ready', handle_player_ready, namespace=NAMESPACE)
    socketio.on_event('start_game', handle_start_game, namespace=NAMESPACE)
    socketio.on_event('advance_round', handle_advance_round, namespace=NAMESPACE)
    socketio.on_event('submit_guess', handle_submit_guess, namespace=NAMESPACE)
    socketio.on_event('get_round_state', handle_get_round_state, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
