"""Round-by-round progression of a multiplayer room.

Round states: WAITING -> ACTIVE -> (GUESSING) -> RESULTS -> FINISHED.

A round is sealed (ACTIVE/GUESSING -> RESULTS) by whichever comes first:
every current member has guessed, or the round timer fires. Both paths run
under the room lock and go through ``_seal``, which does nothing once the
round has left an accepting status, so the loser of the race is a no-op.
After the results display time the room moves to the next round, or
finishes after the last one.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from geoscope.errors import NotFound, BadState, Forbidden, InvalidInput
from .codes import normalize_code
from .geomath import distance_km, score, valid_coordinate, DEFAULT_DECAY_KM
from .images import Image, ImageCatalog

ACCEPTING = ('ACTIVE', 'GUESSING')


@dataclass(frozen=True)
class Guess:
    player_id: str
    lat: float
    lon: float
    submitted_at: float
    distance_km: float
    score: int
    round_index: Optional[int] = None

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'round_index': self.round_index,
            'lat': self.lat,
            'lng': self.lon,
            'submitted_at': self.submitted_at,
            'distance': self.distance_km,
            'score': self.score,
        }


@dataclass(frozen=True)
class Outcome:
    player_id: str
    username: Optional[str]
    guess: Optional[Guess]
    score: int
    total_score: int

    @property
    def has_guessed(self) -> bool:
        return self.guess is not None

    @property
    def distance_km(self) -> Optional[float]:
        return self.guess.distance_km if self.guess else None

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'username': self.username,
            'guess_lat': self.guess.lat if self.guess else None,
            'guess_lng': self.guess.lon if self.guess else None,
            'distance': self.distance_km,
            'score': self.score,
            'total_score': self.total_score,
            'has_guessed': self.has_guessed,
        }


@dataclass
class RoundState:
    room_code: str
    index: int
    image: Image
    time_limit: Optional[int]
    status: str = 'WAITING'
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    guesses: Dict[str, Guess] = field(default_factory=dict)
    outcomes: List[Outcome] = field(default_factory=list)

    @property
    def accepting(self) -> bool:
        return self.status in ACCEPTING

    def deadline(self) -> Optional[float]:
        if not self.time_limit or self.started_at is None:
            return None
        return self.started_at + self.time_limit

    def seconds_remaining(self, now: float) -> Optional[int]:
        deadline = self.deadline()
        if deadline is None:
            return None
        return max(0, int(deadline - now))


@dataclass
class LiveGame:
    room_code: str
    host_id: str
    total_rounds: int
    auto_advance: bool
    results_display_time: int
    time_limit: Optional[int]
    totals: Dict[str, int] = field(default_factory=dict)
    round: Optional[RoundState] = None


def _round_keys(code: str, index: int):
    return ('intro', code, index), ('timeout', code, index), ('results', code, index)


class RoundEngine:

    def __init__(self, app, registry, store, locks, scheduler, images: Optional[ImageCatalog] = None,
                 clock: Callable[[], float] = time.time, decay_km: float = DEFAULT_DECAY_KM,
                 intro_sec: int = 0, min_players: int = 2):
        self.app = app
        self.registry = registry
        self.store = store
        self.locks = locks
        self.scheduler = scheduler
        self.images = images or ImageCatalog()
        self.clock = clock
        self.decay_km = decay_km
        self.intro_sec = intro_sec
        self.min_players = min_players
        self.games: Dict[str, LiveGame] = {}
        # Set by the orchestrator: notify(room_code, event, payload)
        self.notify: Callable[[str, str, dict], None] = lambda code, event, payload: None

    # ---- game lifecycle ----
    def start_game(self, code, requester_id: str):
        code = normalize_code(code)
        with self.locks.hold(code):
            room = self.registry.get_room(code)
            if room.host_user_id != requester_id:
                raise Forbidden('Only the host can start the game')
            if room.status != 'WAITING':
                raise BadState('Game has already started')
            if len(room.players) < self.min_players:
                raise BadState(f'At least {self.min_players} players are required to start')
            if not all(p.is_ready for p in room.players):
                raise BadState('All players must be ready to start')

            self.registry.update_status(code, requester_id, 'ACTIVE')
            game = LiveGame(
                room_code=code,
                host_id=room.host_user_id,
                total_rounds=room.total_rounds,
                auto_advance=room.auto_advance,
                results_display_time=room.results_display_time,
                time_limit=room.round_time_limit,
                totals={p.user_id: 0 for p in room.players},
            )
            self.games[code] = game
            self.app.logger.info(f"[game-start] room={code} players={len(room.players)} rounds={game.total_rounds}")
            self._begin_round(game, 1)
            return room

    def advance(self, code, requester_id: str):
        """Host moves past the results screen without waiting for the timer."""
        code = normalize_code(code)
        with self.locks.hold(code):
            game = self._game(code)
            if game.host_id != requester_id:
                raise Forbidden('Only the host can advance the game')
            rnd = game.round
            if rnd is None or rnd.status != 'RESULTS':
                raise BadState('Round results are not being shown')
            self._advance_locked(game, rnd.index)
            return self.round_snapshot(code)

    def finish_game(self, code, requester_id: str):
        """Host ends the game early. Guesses already made in the current round still count."""
        code = normalize_code(code)
        with self.locks.hold(code):
            room = self.registry.get_room(code)
            if room.host_user_id != requester_id:
                raise Forbidden('Only the host can end the game')
            if room.status == 'FINISHED':
                return room
            game = self.games.get(code)
            if game is None:
                return self.registry.update_status(code, requester_id, 'FINISHED')
            if game.round is not None and game.round.accepting:
                self._seal(game, 'host_finished')
            self._finish(game)
            return self.registry.get_room(code)

    def discard_room(self, code) -> None:
        code = normalize_code(code)
        with self.locks.hold(code):
            game = self.games.pop(code, None)
            if game is None:
                return
            if game.round is not None:
                for key in _round_keys(code, game.round.index):
                    self.scheduler.cancel(key)
            self.app.logger.info(f"[game-discard] room={code}")

    def on_member_left(self, code, user_id: str) -> None:
        """An explicit leave can complete the all-guessed condition for the rest."""
        code = normalize_code(code)
        with self.locks.hold(code):
            game = self.games.get(code)
            if game is None:
                return
            game.totals.pop(user_id, None)
            rnd = game.round
            if rnd is None or not rnd.accepting:
                return
            members = self.registry.member_ids(code)
            if members and all(m in rnd.guesses for m in members):
                self._seal(game, 'all_guessed')

    # ---- guesses ----
    def submit_guess(self, code, round_index, player_id: str, lat, lon) -> Guess:
        code = normalize_code(code)
        if not valid_coordinate(lat, lon):
            raise InvalidInput('Guess must be a valid latitude/longitude')
        lat, lon = float(lat), float(lon)
        if round_index is not None:
            try:
                round_index = int(round_index)
            except (TypeError, ValueError):
                raise InvalidInput('round_index must be an integer')
        with self.locks.hold(code):
            game = self.games.get(code)
            rnd = game.round if game else None
            if rnd is None:
                raise NotFound('No round in progress')
            if round_index is not None and round_index != rnd.index:
                raise BadState('Round not active or index mismatch')
            if not rnd.accepting:
                raise BadState('Round is not accepting guesses')
            members = self.registry.member_ids(code)
            if player_id not in members:
                raise NotFound('You are not in this room')
            if player_id in rnd.guesses:
                raise BadState('Already guessed this round')
            now = self.clock()
            deadline = rnd.deadline()
            if deadline is not None and now > deadline:
                raise BadState('Time limit exceeded')

            dist = distance_km(rnd.image.lat, rnd.image.lon, lat, lon)
            guess = Guess(player_id, lat, lon, now, dist, score(dist, self.decay_km), rnd.index)
            rnd.guesses[player_id] = guess
            self.app.logger.info(f"[guess] room={code} round={rnd.index} player={player_id} distance={dist:.1f} score={guess.score}")
            self.notify(code, 'guess_submitted', {
                'room_code': code,
                'player_id': player_id,
                'round_index': rnd.index,
                'guess_count': len(rnd.guesses),
                'player_count': len(members),
            })
            if all(m in rnd.guesses for m in members):
                self._seal(game, 'all_guessed')
            return guess

    def on_round_timeout(self, code: str, index: int) -> bool:
        with self.locks.hold(code):
            game = self.games.get(code)
            if game is None or game.round is None or game.round.index != index:
                self.app.logger.info(f"[timeout-skip] room={code} round={index} no matching round")
                return False
            return self._seal(game, 'timeout')

    def on_results_elapsed(self, code: str, index: int) -> bool:
        with self.locks.hold(code):
            game = self.games.get(code)
            if game is None:
                return False
            return self._advance_locked(game, index)

    def open_guessing(self, code: str, index: int) -> bool:
        with self.locks.hold(code):
            game = self.games.get(code)
            rnd = game.round if game else None
            if rnd is None or rnd.index != index or rnd.status != 'ACTIVE':
                return False
            rnd.status = 'GUESSING'
            self.notify(code, 'guessing_opened', {'room_code': code, 'round_index': index})
            return True

    # ---- views ----
    def round_snapshot(self, code, now: Optional[float] = None) -> Optional[dict]:
        code = normalize_code(code)
        with self.locks.hold(code):
            game = self.games.get(code)
            rnd = game.round if game else None
            if rnd is None:
                return None
            now = self.clock() if now is None else now
            return self._snapshot(game, rnd, now)

    def standings(self, code) -> List[dict]:
        code = normalize_code(code)
        with self.locks.hold(code):
            game = self.games.get(code)
            if game is None:
                return []
            return self._standings(game)

    # ---- internals (room lock held) ----
    def _snapshot(self, game: LiveGame, rnd: RoundState, now: float) -> dict:
        payload = {
            'room_code': game.room_code,
            'round_index': rnd.index,
            'total_rounds': game.total_rounds,
            'status': rnd.status,
            'image_url': rnd.image.url,
            'time_limit': rnd.time_limit,
            'time_remaining': rnd.seconds_remaining(now),
            'guessed': sorted(rnd.guesses),
        }
        if rnd.status == 'RESULTS':
            payload['results'] = [o.to_dict() for o in rnd.outcomes]
            payload['actual_location'] = {'lat': rnd.image.lat, 'lng': rnd.image.lon}
        return payload

    def _game(self, code: str) -> LiveGame:
        game = self.games.get(code)
        if game is None:
            raise NotFound('No game in progress')
        return game

    def _begin_round(self, game: LiveGame, index: int) -> RoundState:
        code = game.room_code
        self.registry.set_current_round(code, index)
        rnd = RoundState(code, index, self.images.random_image(), game.time_limit)
        rnd.status = 'ACTIVE'
        rnd.started_at = self.clock()
        game.round = rnd
        self.app.logger.info(f"[round-start] room={code} round={index}/{game.total_rounds} image={rnd.image.id} limit={rnd.time_limit}")

        # Target coordinates stay server-side until the round seals
        self.notify(code, 'round_started', {
            'room_code': code,
            'round_index': index,
            'total_rounds': game.total_rounds,
            'image_url': rnd.image.url,
            'time_limit': rnd.time_limit,
            'status': rnd.status,
        })
        intro_key, timeout_key, _ = _round_keys(code, index)
        if self.intro_sec > 0:
            self.scheduler.schedule(intro_key, self.intro_sec, self.open_guessing, code, index)
        if rnd.time_limit:
            self.scheduler.schedule(timeout_key, rnd.time_limit, self.on_round_timeout, code, index)
        return rnd

    def _seal(self, game: LiveGame, reason: str) -> bool:
        rnd = game.round
        code = game.room_code
        if rnd is None or not rnd.accepting:
            self.app.logger.info(f"[seal-skip] room={code} reason={reason} already sealed")
            return False
        rnd.status = 'RESULTS'
        rnd.ended_at = self.clock()
        intro_key, timeout_key, results_key = _round_keys(code, rnd.index)
        self.scheduler.cancel(intro_key)
        self.scheduler.cancel(timeout_key)

        room = self.registry.get_room(code)
        outcomes = []
        for player in room.players:
            pid = player.user_id
            guess = rnd.guesses.get(pid)
            points = guess.score if guess else 0
            total = game.totals.get(pid, 0) + points
            game.totals[pid] = total
            username = player.user.username if player.user else None
            outcomes.append(Outcome(pid, username, guess, points, total))
        outcomes.sort(key=lambda o: (-o.score, o.distance_km if o.has_guessed else float('inf'), o.player_id))
        rnd.outcomes = outcomes
        self._persist(game, rnd)
        self.app.logger.info(
            f"[round-seal] room={code} round={rnd.index} reason={reason} guessed={len(rnd.guesses)}/{len(outcomes)}"
        )

        self.notify(code, 'round_ended', {
            'room_code': code,
            'round_index': rnd.index,
            'results': [o.to_dict() for o in outcomes],
            'actual_location': {'lat': rnd.image.lat, 'lng': rnd.image.lon},
            'image_url': rnd.image.url,
            'location': rnd.image.location,
            'is_final_round': rnd.index >= game.total_rounds,
        })
        if rnd.index >= game.total_rounds or game.auto_advance:
            self.scheduler.schedule(results_key, game.results_display_time, self.on_results_elapsed, code, rnd.index)
        return True

    def _persist(self, game: LiveGame, rnd: RoundState) -> None:
        """Best effort: a failed write is logged and the game carries on."""
        for outcome in rnd.outcomes:
            try:
                self.registry.record_score(game.room_code, outcome.player_id, outcome.total_score)
                self.store.append_game_result(
                    user_id=outcome.player_id,
                    room_code=game.room_code,
                    round_index=rnd.index,
                    mode='multiplayer',
                    image_url=rnd.image.url,
                    actual_lat=rnd.image.lat,
                    actual_lng=rnd.image.lon,
                    guess_lat=outcome.guess.lat if outcome.guess else None,
                    guess_lng=outcome.guess.lon if outcome.guess else None,
                    distance=outcome.distance_km,
                    score=outcome.score,
                )
            except SQLAlchemyError as exc:
                self.store.rollback()
                self.app.logger.error(
                    f"[persist-failed] room={game.room_code} round={rnd.index} player={outcome.player_id} error={exc}"
                )

    def _advance_locked(self, game: LiveGame, expected_index: int) -> bool:
        rnd = game.round
        code = game.room_code
        if rnd is None or rnd.index != expected_index or rnd.status != 'RESULTS':
            self.app.logger.info(f"[advance-skip] room={code} expected_round={expected_index}")
            return False
        self.scheduler.cancel(_round_keys(code, rnd.index)[2])
        if rnd.index >= game.total_rounds:
            self._finish(game)
        else:
            rnd.status = 'FINISHED'
            self._begin_round(game, rnd.index + 1)
        return True

    def _finish(self, game: LiveGame) -> None:
        code = game.room_code
        if game.round is not None:
            for key in _round_keys(code, game.round.index):
                self.scheduler.cancel(key)
            game.round.status = 'FINISHED'
        self.games.pop(code, None)
        self.registry.update_status(code, game.host_id, 'FINISHED')
        final = self._standings(game)
        self.app.logger.info(f"[game-finish] room={code} winner={final[0]['player_id'] if final else None}")
        self.notify(code, 'game_ended', {'room_code': code, 'final_results': final})
        self.locks.discard(code)

    def _standings(self, game: LiveGame) -> List[dict]:
        try:
            room = self.registry.get_room(game.room_code)
            names = {p.user_id: (p.user.username if p.user else None) for p in room.players}
        except NotFound:
            names = {}
        rows = [
            {'player_id': pid, 'username': names.get(pid), 'total_score': total}
            for pid, total in game.totals.items()
            if not names or pid in names
        ]
        rows.sort(key=lambda r: (-r['total_score'], r['player_id']))
        for rank, row in enumerate(rows, start=1):
            row['rank'] = rank
        return rows
