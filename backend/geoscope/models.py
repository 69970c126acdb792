from geoscope import db, bcrypt
from flask_login import UserMixin
from datetime import datetime
import uuid

ROOM_STATUSES = ('WAITING', 'ACTIVE', 'FINISHED')
GAME_MODES = ('solo', 'multiplayer')


def _new_id():
    return str(uuid.uuid4())


class User(UserMixin, db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Room(db.Model):
    __tablename__ = 'rooms'
    code = db.Column(db.String(6), primary_key=True)
    host_user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(16), default='WAITING', nullable=False)  # WAITING, ACTIVE, FINISHED
    max_players = db.Column(db.Integer, default=6, nullable=False)
    total_rounds = db.Column(db.Integer, default=5, nullable=False)
    round_time_limit = db.Column(db.Integer, nullable=True)
    auto_advance = db.Column(db.Boolean, default=True, nullable=False)
    results_display_time = db.Column(db.Integer, default=20, nullable=False)
    current_round = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    host = db.relationship('User', foreign_keys=[host_user_id])
    players = db.relationship(
        'RoomPlayer',
        back_populates='room',
        cascade='all, delete-orphan',
        order_by='RoomPlayer.joined_at',
    )

    def player(self, user_id):
        for p in self.players:
            if p.user_id == user_id:
                return p
        return None

    def to_dict(self, include_players=True):
        payload = {
            'code': self.code,
            'host_user_id': self.host_user_id,
            'status': self.status,
            'max_players': self.max_players,
            'total_rounds': self.total_rounds,
            'round_time_limit': self.round_time_limit,
            'auto_advance': self.auto_advance,
            'results_display_time': self.results_display_time,
            'current_round': self.current_round,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'player_count': len(self.players),
        }
        if include_players:
            payload['players'] = [p.to_dict() for p in self.players]
        return payload


class RoomPlayer(db.Model):
    __tablename__ = 'room_players'
    __table_args__ = (db.UniqueConstraint('room_code', 'user_id', name='uq_room_player'),)
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(6), db.ForeignKey('rooms.code', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    is_ready = db.Column(db.Boolean, default=False, nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    room = db.relationship('Room', back_populates='players')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'score': self.score,
            'is_ready': self.is_ready,
            'is_host': bool(self.room and self.room.host_user_id == self.user_id),
            'joined_at': self.joined_at.isoformat() if self.joined_at else None,
        }


class GameResult(db.Model):
    """One player's outcome for one round. Sole input of the leaderboards."""
    __tablename__ = 'game_results'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True, index=True)
    # Plain column: results outlive the room they were played in
    room_code = db.Column(db.String(6), nullable=True, index=True)
    round_index = db.Column(db.Integer, nullable=True)
    mode = db.Column(db.String(16), nullable=False)  # solo, multiplayer
    image_url = db.Column(db.Text, nullable=True)
    actual_lat = db.Column(db.Float, nullable=True)
    actual_lng = db.Column(db.Float, nullable=True)
    guess_lat = db.Column(db.Float, nullable=True)
    guess_lng = db.Column(db.Float, nullable=True)
    # NULL distance marks a missed guess
    distance = db.Column(db.Float, nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'room_code': self.room_code,
            'round_index': self.round_index,
            'mode': self.mode,
            'distance': self.distance,
            'score': self.score,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
