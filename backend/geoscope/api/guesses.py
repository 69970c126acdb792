from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from geoscope.errors import InvalidInput
from geoscope.services.games import game_services
from geoscope.services.games.geomath import distance_km, score, valid_coordinate

guesses = Blueprint('guesses', __name__)


@guesses.route('/evaluate', methods=['POST'])
def evaluate_guess():
    """Score a solo guess against the image's true location.

    Recorded as a ``solo`` result: under the player when logged in,
    anonymously otherwise.
    """
    data = request.get_json(silent=True) or {}
    image_id = data.get('image_id')
    if not image_id:
        raise InvalidInput('image_id is required')
    guess = (data.get('guess_lat'), data.get('guess_lng'))
    actual = (data.get('actual_lat'), data.get('actual_lng'))
    if not valid_coordinate(*guess) or not valid_coordinate(*actual):
        raise InvalidInput('Coordinates must be valid latitude/longitude pairs')
    guess_lat, guess_lng = map(float, guess)
    actual_lat, actual_lng = map(float, actual)

    distance = distance_km(guess_lat, guess_lng, actual_lat, actual_lng)
    points = score(distance, current_app.config.get('SCORE_DECAY_KM', 2000))

    user_id = current_user.id if current_user.is_authenticated else None
    store = game_services().store
    recorded = True
    try:
        store.append_game_result(
            user_id=user_id,
            mode='solo',
            image_url=data.get('image_url'),
            actual_lat=actual_lat,
            actual_lng=actual_lng,
            guess_lat=guess_lat,
            guess_lng=guess_lng,
            distance=distance,
            score=points,
        )
    except SQLAlchemyError as exc:
        store.rollback()
        recorded = False
        current_app.logger.error(f"[persist-failed] mode=solo user={user_id} error={exc}")

    return jsonify({
        'distance': round(distance, 2),
        'score': points,
        'actual_lat': actual_lat,
        'actual_lng': actual_lng,
        'guess_lat': guess_lat,
        'guess_lng': guess_lng,
        'image_id': image_id,
        'player_id': user_id,
        'recorded': recorded,
    })
