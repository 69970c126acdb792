"""SQLAlchemy-backed persistence for rooms, memberships and game results.

The registry, engine and stats code only talk to storage through this
class, keyed by room code and user id strings.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from geoscope import db
from geoscope.models import Room, RoomPlayer, GameResult


class SqlStore:

    # ---- rooms ----
    def room_exists(self, code: str) -> bool:
        return db.session.get(Room, code) is not None

    def create_room(self, code: str, host_id: str, **settings) -> Room:
        room = Room(code=code, host_user_id=host_id, status='WAITING', current_round=0, **settings)
        db.session.add(room)
        db.session.commit()
        return room

    def find_room_by_code(self, code: str) -> Optional[Room]:
        return db.session.get(Room, code)

    def update_room(self, room: Room, **fields) -> Room:
        for name, value in fields.items():
            setattr(room, name, value)
        db.session.add(room)
        db.session.commit()
        return room

    def delete_room(self, room: Room) -> None:
        # ORM cascade removes memberships
        db.session.delete(room)
        db.session.commit()

    def rooms_for_user(self, user_id: str, statuses: Iterable[str] = ('WAITING', 'ACTIVE')) -> List[Room]:
        member_codes = db.session.query(RoomPlayer.room_code).filter(RoomPlayer.user_id == user_id)
        return (
            Room.query.filter(Room.status.in_(list(statuses)))
            .filter(db.or_(Room.host_user_id == user_id, Room.code.in_(member_codes)))
            .order_by(Room.created_at.desc())
            .all()
        )

    # ---- memberships ----
    def create_membership(self, room: Room, user_id: str, ready: bool = False) -> RoomPlayer:
        player = RoomPlayer(room_code=room.code, user_id=user_id, score=0, is_ready=ready)
        room.players.append(player)
        db.session.add(player)
        db.session.commit()
        return player

    def find_membership(self, code: str, user_id: str) -> Optional[RoomPlayer]:
        return RoomPlayer.query.filter_by(room_code=code, user_id=user_id).first()

    def update_membership(self, player: RoomPlayer, **fields) -> RoomPlayer:
        for name, value in fields.items():
            setattr(player, name, value)
        db.session.add(player)
        db.session.commit()
        return player

    def delete_membership(self, player: RoomPlayer) -> None:
        room = player.room
        if room is not None and player in room.players:
            room.players.remove(player)
        db.session.delete(player)
        db.session.commit()

    # ---- results ----
    def append_game_result(self, **fields) -> GameResult:
        result = GameResult(**fields)
        db.session.add(result)
        db.session.commit()
        return result

    def query_results(
        self,
        user_id: Optional[str] = None,
        mode: Optional[str] = None,
        since: Optional[datetime] = None,
        players_only: bool = False,
        order: Optional[list] = None,
        limit: Optional[int] = None,
    ) -> List[GameResult]:
        q = GameResult.query
        if user_id is not None:
            q = q.filter(GameResult.user_id == user_id)
        elif players_only:
            q = q.filter(GameResult.user_id.isnot(None))
        if mode and mode != 'all':
            q = q.filter(GameResult.mode == mode)
        if since is not None:
            q = q.filter(GameResult.created_at >= since)
        for column in order or [GameResult.id.asc()]:
            q = q.order_by(column)
        if limit:
            q = q.limit(limit)
        return q.all()

    def rollback(self) -> None:
        db.session.rollback()
