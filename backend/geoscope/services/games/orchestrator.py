"""Dispatch between connections and the room/round services.

The orchestrator holds no game rules. It forwards calls to the registry and
engine, takes the room lock around compound operations (leave + engine
cleanup, join + subscribe), and fans resulting events out through the
transport: to the whole room, or back to the player who asked.
"""
from typing import Optional, Protocol

from geoscope.errors import NotFound
from .codes import normalize_code


class Transport(Protocol):
    def send_to_player(self, player_id: str, event: str, payload: dict) -> None: ...

    def broadcast_to_room(self, room_code: str, event: str, payload: dict) -> None: ...

    def subscribe(self, room_code: str) -> None: ...

    def unsubscribe(self, room_code: str) -> None: ...


class RoomOrchestrator:

    def __init__(self, app, registry, engine, locks, transport: Transport):
        self.app = app
        self.registry = registry
        self.engine = engine
        self.locks = locks
        self.transport = transport
        engine.notify = self._relay

    def _relay(self, room_code: str, event: str, payload: dict) -> None:
        self.transport.broadcast_to_room(room_code, event, payload)

    def _room_updated(self, room) -> None:
        self.transport.broadcast_to_room(room.code, 'room_updated', {'room_code': room.code, 'room': room.to_dict()})

    # ---- membership ----
    def create_room(self, user_id: str, settings):
        room = self.registry.create_room(user_id, settings)
        return room.to_dict()

    def join_room(self, code, user_id: str, subscribe: bool = False, reattach: bool = False) -> dict:
        """Join as a new member.

        With ``reattach`` an existing member's new connection is attached to
        the room instead of being rejected as a duplicate join.
        """
        code = normalize_code(code)
        with self.locks.hold(code):
            if reattach and self.registry.is_member(code, user_id):
                room = self.registry.get_room(code)
                newly_joined = False
            else:
                room = self.registry.join_room(code, user_id)
                newly_joined = True
            if subscribe:
                self.transport.subscribe(code)
            snapshot = room.to_dict()
            if newly_joined:
                player = room.player(user_id)
                self.transport.broadcast_to_room(code, 'player_joined', {
                    'room_code': code,
                    'player': player.to_dict() if player else {'user_id': user_id},
                })
            self.transport.send_to_player(user_id, 'room_updated', {'room_code': code, 'room': snapshot})
            round_state = self.engine.round_snapshot(code) if room.status == 'ACTIVE' else None
            if round_state is not None:
                self.transport.send_to_player(user_id, 'round_state', round_state)
            return snapshot

    def leave_room(self, code, user_id: str, unsubscribe: bool = False) -> dict:
        code = normalize_code(code)
        with self.locks.hold(code):
            outcome = self.registry.leave_room(code, user_id)
            if unsubscribe:
                self.transport.unsubscribe(code)
            if outcome['room_deleted']:
                self.engine.discard_room(code)
                self.transport.broadcast_to_room(code, 'room_closed', {'room_code': code})
                self.locks.discard(code)
            else:
                self.transport.broadcast_to_room(code, 'player_left', {'room_code': code, 'player_id': user_id})
                self.engine.on_member_left(code, user_id)
            return outcome

    def set_ready(self, code, user_id: str, ready: bool) -> dict:
        code = normalize_code(code)
        with self.locks.hold(code):
            room = self.registry.set_ready(code, user_id, ready)
            self.transport.broadcast_to_room(code, 'player_ready', {
                'room_code': code,
                'player_id': user_id,
                'is_ready': bool(ready),
            })
            return room.to_dict()

    def player_disconnected(self, code: Optional[str], user_id: str) -> None:
        # Not a leave: the player's missing guess resolves at seal time
        if code:
            self.transport.broadcast_to_room(code, 'player_disconnected', {'room_code': code, 'player_id': user_id})

    # ---- game flow ----
    def update_status(self, code, user_id: str, status: str) -> dict:
        code = normalize_code(code)
        with self.locks.hold(code):
            if status == 'ACTIVE':
                self.engine.start_game(code, user_id)
            elif status == 'FINISHED':
                self.engine.finish_game(code, user_id)
            else:
                self.registry.update_status(code, user_id, status)
            room = self.registry.get_room(code)
            self._room_updated(room)
            return room.to_dict()

    def start_game(self, code, user_id: str) -> dict:
        return self.update_status(code, user_id, 'ACTIVE')

    def advance(self, code, user_id: str) -> Optional[dict]:
        return self.engine.advance(code, user_id)

    def submit_guess(self, code, user_id: str, round_index, lat, lng) -> dict:
        guess = self.engine.submit_guess(code, round_index, user_id, lat, lng)
        payload = {'room_code': normalize_code(code), 'round_index': guess.round_index, 'guess': guess.to_dict()}
        self.transport.send_to_player(user_id, 'guess_accepted', payload)
        return payload

    def round_state(self, code, user_id: str) -> Optional[dict]:
        code = normalize_code(code)
        if not self.registry.is_member(code, user_id):
            raise NotFound('You are not in this room')
        return self.engine.round_snapshot(code)

    def room(self, code) -> dict:
        return self.registry.get_room(code).to_dict()

    def rooms_for_user(self, user_id: str) -> list:
        return [r.to_dict() for r in self.registry.rooms_for_user(user_id)]
