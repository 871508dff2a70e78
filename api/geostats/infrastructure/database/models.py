"""
Modelos de base de datos (ORM).
"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Index,
)
from sqlalchemy.sql import func

from geostats.infrastructure.database.session import Base


class UserModel(Base):
    """
    Usuario de la aplicación con su cookie de sesión de GeoGuessr.

    La cookie se usa tal cual como header Cookie en cada request del sync.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    username = Column(String(255), nullable=False, index=True)
    session_cookie = Column(String(4096), nullable=True)
    last_sync = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"


class GameModel(Base):
    """
    Partida sincronizada desde GeoGuessr.

    game_token es la clave natural: un re-sync del mismo token actualiza
    esta fila, nunca crea otra. details_fetched indica que el detalle
    completo (rondas incluidas) ya fue persistido.
    """

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    game_token = Column(String(64), nullable=False, unique=True, index=True)

    game_mode = Column(String(50), nullable=False, index=True)
    map_id = Column(String(100), nullable=False, index=True)
    map_name = Column(String(200), nullable=False)
    total_score = Column(Integer, nullable=False)
    played_at = Column(DateTime(timezone=True), nullable=False, index=True)

    game_state = Column(String(20), default="finished")
    round_count = Column(Integer, default=5)
    time_limit = Column(Integer, default=0)
    forbid_moving = Column(Boolean, default=False)
    forbid_zooming = Column(Boolean, default=False)
    forbid_rotating = Column(Boolean, default=False)
    panorama_provider = Column(Integer, default=1)

    # Límites geográficos del mapa
    bounds_min_lat = Column(Float, nullable=True)
    bounds_min_lng = Column(Float, nullable=True)
    bounds_max_lat = Column(Float, nullable=True)
    bounds_max_lng = Column(Float, nullable=True)

    details_fetched = Column(Boolean, default=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_games_user_played_at", "user_id", "played_at"),
        Index("ix_games_user_details_fetched", "user_id", "details_fetched"),
    )

    def __repr__(self):
        return f"<Game(id={self.id}, token={self.game_token}, score={self.total_score})>"


class RoundModel(Base):
    """
    Ronda de una partida (1..5).

    Las rondas pertenecen exclusivamente a su partida: en cada re-sync
    se borran y se reinsertan completas.
    """

    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, index=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)

    # Ubicación real
    actual_lat = Column(Float, nullable=False)
    actual_lng = Column(Float, nullable=False)
    actual_country_code = Column(String(5), nullable=True, index=True)

    # Guess del jugador
    guess_lat = Column(Float, nullable=False)
    guess_lng = Column(Float, nullable=False)
    country_guess = Column(String(5), nullable=True)

    # Performance
    score = Column(Integer, nullable=False)
    distance_meters = Column(Float, nullable=False)
    distance_km = Column(Float, nullable=False)
    time_taken = Column(Integer, nullable=False)
    is_correct_country = Column(Boolean, nullable=False, index=True)

    # Street View
    pano_id = Column(String(255), nullable=True)
    heading = Column(Float, nullable=True)
    pitch = Column(Float, nullable=True)
    zoom = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("game_id", "round_number", name="uq_rounds_game_round_number"),
        Index("ix_rounds_user_country", "user_id", "actual_country_code"),
    )

    def __repr__(self):
        return f"<Round(game_id={self.game_id}, n={self.round_number}, score={self.score})>"
