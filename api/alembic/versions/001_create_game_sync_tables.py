"""Crear tablas users, games y rounds para el sync de GeoGuessr

Revision ID: 001_game_sync
Revises:
Create Date: 2026-10-17

Cambios:
- users: cookie de sesión de GeoGuessr y marca de último sync
- games: una fila por partida, clave natural game_token
- rounds: rondas por partida, únicas por (game_id, round_number)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001_game_sync'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('session_cookie', sa.String(4096), nullable=True),
        sa.Column('last_sync', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_username', 'users', ['username'])

    op.create_table(
        'games',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('game_token', sa.String(64), nullable=False),
        sa.Column('game_mode', sa.String(50), nullable=False),
        sa.Column('map_id', sa.String(100), nullable=False),
        sa.Column('map_name', sa.String(200), nullable=False),
        sa.Column('total_score', sa.Integer(), nullable=False),
        sa.Column('played_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('game_state', sa.String(20), nullable=True),
        sa.Column('round_count', sa.Integer(), nullable=True),
        sa.Column('time_limit', sa.Integer(), nullable=True),
        sa.Column('forbid_moving', sa.Boolean(), nullable=True),
        sa.Column('forbid_zooming', sa.Boolean(), nullable=True),
        sa.Column('forbid_rotating', sa.Boolean(), nullable=True),
        sa.Column('panorama_provider', sa.Integer(), nullable=True),
        sa.Column('bounds_min_lat', sa.Float(), nullable=True),
        sa.Column('bounds_min_lng', sa.Float(), nullable=True),
        sa.Column('bounds_max_lat', sa.Float(), nullable=True),
        sa.Column('bounds_max_lng', sa.Float(), nullable=True),
        sa.Column('details_fetched', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_games_id', 'games', ['id'])
    op.create_index('ix_games_user_id', 'games', ['user_id'])
    op.create_index('ix_games_game_token', 'games', ['game_token'], unique=True)
    op.create_index('ix_games_game_mode', 'games', ['game_mode'])
    op.create_index('ix_games_map_id', 'games', ['map_id'])
    op.create_index('ix_games_played_at', 'games', ['played_at'])
    op.create_index('ix_games_details_fetched', 'games', ['details_fetched'])
    op.create_index('ix_games_user_played_at', 'games', ['user_id', 'played_at'])
    op.create_index('ix_games_user_details_fetched', 'games', ['user_id', 'details_fetched'])

    op.create_table(
        'rounds',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('actual_lat', sa.Float(), nullable=False),
        sa.Column('actual_lng', sa.Float(), nullable=False),
        sa.Column('actual_country_code', sa.String(5), nullable=True),
        sa.Column('guess_lat', sa.Float(), nullable=False),
        sa.Column('guess_lng', sa.Float(), nullable=False),
        sa.Column('country_guess', sa.String(5), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('distance_meters', sa.Float(), nullable=False),
        sa.Column('distance_km', sa.Float(), nullable=False),
        sa.Column('time_taken', sa.Integer(), nullable=False),
        sa.Column('is_correct_country', sa.Boolean(), nullable=False),
        sa.Column('pano_id', sa.String(255), nullable=True),
        sa.Column('heading', sa.Float(), nullable=True),
        sa.Column('pitch', sa.Float(), nullable=True),
        sa.Column('zoom', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('game_id', 'round_number', name='uq_rounds_game_round_number'),
    )
    op.create_index('ix_rounds_id', 'rounds', ['id'])
    op.create_index('ix_rounds_game_id', 'rounds', ['game_id'])
    op.create_index('ix_rounds_user_id', 'rounds', ['user_id'])
    op.create_index('ix_rounds_actual_country_code', 'rounds', ['actual_country_code'])
    op.create_index('ix_rounds_is_correct_country', 'rounds', ['is_correct_country'])
    op.create_index('ix_rounds_user_country', 'rounds', ['user_id', 'actual_country_code'])


def downgrade() -> None:
    # Las rondas dependen de games vía FK: se eliminan primero
    op.drop_table('rounds')
    op.drop_table('games')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
