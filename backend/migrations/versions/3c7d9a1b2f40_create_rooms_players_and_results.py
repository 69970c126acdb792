"""create users, rooms, room_players and game_results

Revision ID: 3c7d9a1b2f40
Revises:
Create Date: 2025-09-14 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7d9a1b2f40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'users' not in existing_tables:
        op.create_table(
            'users',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_users_username', 'users', ['username'], unique=True)

    if 'rooms' not in existing_tables:
        op.create_table(
            'rooms',
            sa.Column('code', sa.String(length=6), primary_key=True),
            sa.Column('host_user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='WAITING'),
            sa.Column('max_players', sa.Integer(), nullable=False, server_default='6'),
            sa.Column('total_rounds', sa.Integer(), nullable=False, server_default='5'),
            sa.Column('round_time_limit', sa.Integer(), nullable=True),
            sa.Column('auto_advance', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('results_display_time', sa.Integer(), nullable=False, server_default='20'),
            sa.Column('current_round', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )

    if 'room_players' not in existing_tables:
        op.create_table(
            'room_players',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_code', sa.String(length=6), sa.ForeignKey('rooms.code', ondelete='CASCADE'), nullable=False),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_ready', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('joined_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('room_code', 'user_id', name='uq_room_player'),
        )
        op.create_index('ix_room_players_room_code', 'room_players', ['room_code'])

    if 'game_results' not in existing_tables:
        op.create_table(
            'game_results',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('room_code', sa.String(length=6), nullable=True),
            sa.Column('round_index', sa.Integer(), nullable=True),
            sa.Column('mode', sa.String(length=16), nullable=False),
            sa.Column('image_url', sa.Text(), nullable=True),
            sa.Column('actual_lat', sa.Float(), nullable=True),
            sa.Column('actual_lng', sa.Float(), nullable=True),
            sa.Column('guess_lat', sa.Float(), nullable=True),
            sa.Column('guess_lng', sa.Float(), nullable=True),
            sa.Column('distance', sa.Float(), nullable=True),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_game_results_user_id', 'game_results', ['user_id'])
        op.create_index('ix_game_results_room_code', 'game_results', ['room_code'])
        op.create_index('ix_game_results_created_at', 'game_results', ['created_at'])


def downgrade():
    op.drop_table('game_results')
    op.drop_table('room_players')
    op.drop_table('rooms')
    op.drop_table('users')
