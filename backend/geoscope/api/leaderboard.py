from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from geoscope.errors import InvalidInput
from geoscope.models import GAME_MODES
from geoscope.services.games import game_services

leaderboard = Blueprint('leaderboard', __name__)


def _int_arg(name, default, low, high):
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise InvalidInput(f'{name} must be an integer')
    if not low <= value <= high:
        raise InvalidInput(f'{name} must be between {low} and {high}')
    return value


@leaderboard.route('/global', methods=['GET'])
def global_top():
    limit = _int_arg('limit', 10, 1, 50)
    mode = request.args.get('mode', 'all')
    if mode != 'all' and mode not in GAME_MODES:
        raise InvalidInput(f"mode must be one of {', '.join(GAME_MODES)} or all")
    return jsonify(game_services().stats.global_leaderboard(limit=limit, mode=mode))


@leaderboard.route('/recent', methods=['GET'])
def recent_winners():
    limit = _int_arg('limit', 10, 1, 20)
    hours = _int_arg('hours', 24, 1, 168)
    return jsonify(game_services().stats.recent_winners(limit=limit, hours=hours))


@leaderboard.route('/me', methods=['GET'])
@login_required
def personal_stats():
    return jsonify(game_services().stats.personal_stats(current_user.id))
