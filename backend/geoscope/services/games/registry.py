from dataclasses import dataclass, asdict
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from geoscope.errors import NotFound, BadState, Forbidden, InvalidInput, Internal
from geoscope.models import Room, ROOM_STATUSES
from .codes import RoomCodeGenerator, normalize_code, is_valid_code
from .locks import RoomLocks
from .store import SqlStore


def _int_in_range(data, name, default, low, high, optional=False):
    value = data.get(name, default)
    if value is None:
        if optional:
            return None
        raise InvalidInput(f'{name} is required')
    if isinstance(value, bool):
        raise InvalidInput(f'{name} must be an integer')
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f'{name} must be an integer')
    if not low <= value <= high:
        raise InvalidInput(f'{name} must be between {low} and {high}')
    return value


@dataclass(frozen=True)
class RoomSettings:
    max_players: int = 6
    total_rounds: int = 5
    round_time_limit: Optional[int] = None
    auto_advance: bool = True
    results_display_time: int = 20

    @classmethod
    def from_payload(cls, data) -> 'RoomSettings':
        data = data or {}
        auto_advance = data.get('auto_advance', True)
        if not isinstance(auto_advance, bool):
            raise InvalidInput('auto_advance must be a boolean')
        return cls(
            max_players=_int_in_range(data, 'max_players', 6, 2, 10),
            total_rounds=_int_in_range(data, 'total_rounds', 5, 1, 20),
            round_time_limit=_int_in_range(data, 'round_time_limit', None, 30, 300, optional=True),
            auto_advance=auto_advance,
            results_display_time=_int_in_range(data, 'results_display_time', 20, 5, 60),
        )


class RoomRegistry:
    """Room lifecycle and membership.

    Rooms are created on request, mutated by join/leave/ready/status calls
    and by round progression, and deleted when the host leaves or the last
    member goes. There is no host migration.
    """

    def __init__(self, app, store: SqlStore, locks: RoomLocks, code_attempts: int = 10):
        self.app = app
        self.store = store
        self.locks = locks
        self.codes = RoomCodeGenerator(store.room_exists, app.logger, attempts=code_attempts)

    def get_room(self, code) -> Room:
        code = normalize_code(code)
        room = self.store.find_room_by_code(code) if is_valid_code(code) else None
        if room is None:
            raise NotFound('Room not found')
        return room

    def create_room(self, host_id: str, settings: RoomSettings) -> Room:
        code = self.codes.generate()
        with self.locks.hold(code):
            try:
                room = self.store.create_room(code, host_id, **asdict(settings))
                self.store.create_membership(room, host_id, ready=True)
            except SQLAlchemyError as exc:
                self.store.rollback()
                # a room committed without its host membership would be unjoinable
                orphan = self.store.find_room_by_code(code)
                if orphan is not None:
                    self.store.delete_room(orphan)
                self.app.logger.error(f"[room-create-failed] room={code} host={host_id} error={exc}")
                raise Internal('Could not create the room, please try again')
        self.app.logger.info(f"[room-create] room={code} host={host_id} rounds={settings.total_rounds} max={settings.max_players}")
        return room

    def join_room(self, code, user_id: str) -> Room:
        code = normalize_code(code)
        with self.locks.hold(code):
            room = self.get_room(code)
            if room.status != 'WAITING':
                raise BadState('Room is not accepting new players')
            if room.player(user_id) is not None:
                raise BadState('You are already in this room')
            if len(room.players) >= room.max_players:
                raise BadState('Room is full')
            self.store.create_membership(room, user_id, ready=False)
            self.app.logger.info(f"[room-join] room={code} user={user_id} players={len(room.players)}/{room.max_players}")
            return room

    def leave_room(self, code, user_id: str) -> dict:
        code = normalize_code(code)
        with self.locks.hold(code):
            room = self.get_room(code)
            player = room.player(user_id)
            if player is None:
                raise NotFound('You are not in this room')
            host_left = room.host_user_id == user_id
            self.store.delete_membership(player)
            if host_left or not room.players:
                self.store.delete_room(room)
                self.app.logger.info(f"[room-delete] room={code} reason={'host_left' if host_left else 'empty'}")
                return {'room_deleted': True}
            self.app.logger.info(f"[room-leave] room={code} user={user_id} remaining={len(room.players)}")
            return {'room_deleted': False}

    def set_ready(self, code, user_id: str, ready: bool) -> Room:
        code = normalize_code(code)
        with self.locks.hold(code):
            room = self.get_room(code)
            player = room.player(user_id)
            if player is None:
                raise NotFound('You are not in this room')
            self.store.update_membership(player, is_ready=bool(ready))
            return room

    def update_status(self, code, requester_id: str, new_status: str) -> Room:
        code = normalize_code(code)
        if new_status not in ROOM_STATUSES:
            raise InvalidInput(f'Unknown room status {new_status!r}')
        with self.locks.hold(code):
            room = self.get_room(code)
            if room.host_user_id != requester_id:
                raise Forbidden('Only the host can update room status')
            if room.status == new_status:
                return room
            if ROOM_STATUSES.index(new_status) < ROOM_STATUSES.index(room.status):
                raise BadState(f'Room cannot go from {room.status} back to {new_status}')
            self.store.update_room(room, status=new_status)
            self.app.logger.info(f"[room-status] room={code} status={new_status}")
            return room

    def set_current_round(self, code, index: int) -> Room:
        code = normalize_code(code)
        with self.locks.hold(code):
            room = self.get_room(code)
            return self.store.update_room(room, current_round=index)

    def record_score(self, code, user_id: str, total: int) -> None:
        player = self.store.find_membership(normalize_code(code), user_id)
        if player is not None:
            self.store.update_membership(player, score=total)

    def member_ids(self, code) -> List[str]:
        room = self.get_room(code)
        return [p.user_id for p in room.players]

    def is_member(self, code, user_id: str) -> bool:
        try:
            room = self.get_room(code)
        except NotFound:
            return False
        return room.player(user_id) is not None

    def rooms_for_user(self, user_id: str) -> List[Room]:
        return self.store.rooms_for_user(user_id)
