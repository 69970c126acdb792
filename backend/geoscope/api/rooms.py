from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from geoscope.errors import InvalidInput
from geoscope.services.games import game_services
from geoscope.services.games.registry import RoomSettings

rooms = Blueprint('rooms', __name__)


def _orchestrator():
    return game_services().orchestrator


@rooms.route('', methods=['POST'])
@login_required
def create_room():
    """Create a room; the caller becomes its host and first (ready) player."""
    settings = RoomSettings.from_payload(request.get_json(silent=True))
    return jsonify(_orchestrator().create_room(current_user.id, settings)), 201


@rooms.route('/join', methods=['POST'])
@login_required
def join_room():
    data = request.get_json(silent=True) or {}
    code = data.get('room_code')
    if not code:
        raise InvalidInput('room_code is required')
    return jsonify(_orchestrator().join_room(code, current_user.id))


@rooms.route('/mine', methods=['GET'])
@login_required
def my_rooms():
    return jsonify(_orchestrator().rooms_for_user(current_user.id))


@rooms.route('/<string:room_code>', methods=['GET'])
@login_required
def get_room(room_code):
    return jsonify(_orchestrator().room(room_code))


@rooms.route('/<string:room_code>/leave', methods=['POST'])
@login_required
def leave_room(room_code):
    return jsonify(_orchestrator().leave_room(room_code, current_user.id))


@rooms.route('/<string:room_code>/ready', methods=['POST'])
@login_required
def set_ready(room_code):
    data = request.get_json(silent=True) or {}
    is_ready = data.get('is_ready', True)
    if not isinstance(is_ready, bool):
        raise InvalidInput('is_ready must be a boolean')
    return jsonify(_orchestrator().set_ready(room_code, current_user.id, is_ready))


@rooms.route('/<string:room_code>/status', methods=['POST'])
@login_required
def update_status(room_code):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        raise InvalidInput('status is required')
    return jsonify(_orchestrator().update_status(room_code, current_user.id, str(status).upper()))


@rooms.route('/<string:room_code>/start', methods=['POST'])
@login_required
def start_game(room_code):
    return jsonify(_orchestrator().start_game(room_code, current_user.id))


@rooms.route('/<string:room_code>/advance', methods=['POST'])
@login_required
def advance_round(room_code):
    state = _orchestrator().advance(room_code, current_user.id)
    if state is None:
        return jsonify(_orchestrator().room(room_code))
    return jsonify(state)


@rooms.route('/<string:room_code>/round', methods=['GET'])
@login_required
def round_state(room_code):
    state = _orchestrator().round_state(room_code, current_user.id)
    return jsonify(state or {'room_code': room_code.upper(), 'status': None})


@rooms.route('/<string:room_code>/guess', methods=['POST'])
@login_required
def submit_guess(room_code):
    data = request.get_json(silent=True) or {}
    result = _orchestrator().submit_guess(
        room_code, current_user.id, data.get('round_index'), data.get('lat'), data.get('lng'),
    )
    return jsonify(result)
