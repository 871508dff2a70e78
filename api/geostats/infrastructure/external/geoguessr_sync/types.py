"""
Tipos y utilidades puras para el pipeline GeoGuessr -> base de datos.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Union

# Tipo de entrada del feed que corresponde a una partida terminada.
FEED_ENTRY_GAME_COMPLETED = 1

MAX_ROUNDS = 5
MAX_ROUND_SCORE = 5000


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    SQLite devuelve datetimes naive aunque la columna sea timezone=True;
    normalizamos para comparar/serializar de forma consistente.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FeedEntry:
    """Entrada cruda del feed privado. payload llega como string JSON."""

    type: int
    payload: Any
    time: Optional[str] = None

    @property
    def is_game_completion(self) -> bool:
        return self.type == FEED_ENTRY_GAME_COMPLETED


@dataclass(frozen=True)
class FeedPage:
    """Una página del feed más el cursor opaco de la siguiente (si existe)."""

    entries: tuple[FeedEntry, ...]
    next_cursor: Optional[str] = None

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "FeedPage":
        entries = tuple(
            FeedEntry(
                type=int(raw.get("type") or 0),
                payload=raw.get("payload"),
                time=raw.get("time"),
            )
            for raw in payload.get("entries") or []
            if isinstance(raw, dict)
        )
        # Cursor vacío equivale a "no hay más páginas".
        next_cursor = payload.get("paginationToken") or None
        return cls(entries=entries, next_cursor=next_cursor)


@dataclass(frozen=True)
class FeedGame:
    """Resumen de partida incluido en el payload de una entrada del feed."""

    game_token: str
    map_slug: Optional[str] = None
    map_name: Optional[str] = None
    points: Optional[int] = None
    game_mode: Optional[str] = None


@dataclass(frozen=True)
class SinglePayload:
    """Payload de entrada con una sola partida."""

    game: FeedGame

    @property
    def games(self) -> tuple[FeedGame, ...]:
        return (self.game,)


@dataclass(frozen=True)
class BatchPayload:
    """Payload de entrada que agrupa varias partidas (array JSON)."""

    games: tuple[FeedGame, ...]


FeedPayload = Union[SinglePayload, BatchPayload]


# ---------------------------------------------------------------------------
# Registros normalizados (listos para persistir)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GameRecord:
    """
    Registro padre. game_token es la clave natural.

    Todos los campos (salvo la clave) se consideran mutables y se
    reemplazan completos en cada re-sync.
    """

    game_token: str
    game_mode: str
    map_id: str
    map_name: str
    total_score: int
    played_at: datetime
    game_state: str = "finished"
    round_count: int = MAX_ROUNDS
    time_limit: int = 0
    forbid_moving: bool = False
    forbid_zooming: bool = False
    forbid_rotating: bool = False
    panorama_provider: int = 1
    bounds_min_lat: Optional[float] = None
    bounds_min_lng: Optional[float] = None
    bounds_max_lat: Optional[float] = None
    bounds_max_lng: Optional[float] = None
    details_fetched: bool = True


@dataclass(frozen=True)
class RoundRecord:
    """Registro hijo, identificado por (partida, round_number)."""

    round_number: int
    actual_lat: float
    actual_lng: float
    actual_country_code: Optional[str]
    guess_lat: float
    guess_lng: float
    country_guess: Optional[str]
    score: int
    distance_meters: float
    distance_km: float
    time_taken: int
    is_correct_country: bool
    pano_id: Optional[str] = None
    heading: Optional[float] = None
    pitch: Optional[float] = None
    zoom: Optional[float] = None


@dataclass(frozen=True)
class NormalizedGame:
    game: GameRecord
    rounds: tuple[RoundRecord, ...]
    warnings: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Progreso y resultado del run
# ---------------------------------------------------------------------------


class SyncPhase(str, Enum):
    """Fases de un run de sincronización."""

    IDLE = "idle"
    STARTING = "starting"
    FETCHING_FEED = "fetching_feed"
    PROCESSING_GAMES = "processing_games"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncPhase.COMPLETED, SyncPhase.FAILED, SyncPhase.CANCELLED)


@dataclass(frozen=True)
class ProgressEvent:
    phase: SyncPhase
    processed_count: int
    total_count: int
    message: str


ProgressObserver = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class SyncError:
    """Error registrado durante un run: (identificador, mensaje)."""

    identifier: str
    message: str


@dataclass(frozen=True)
class PageError:
    """Página del feed que no se pudo obtener tras agotar los intentos."""

    page_number: int
    cursor: Optional[str]
    message: str

    def as_sync_error(self) -> SyncError:
        return SyncError(identifier=f"page:{self.page_number}", message=self.message)


@dataclass(frozen=True)
class SyncResult:
    """
    Snapshot inmutable del resultado de un run.

    success solo es True si el run terminó sin ningún error registrado;
    un run con fallos parciales igual deja comiteados los items procesados.
    """

    success: bool
    phase: SyncPhase
    items_processed: int
    items_created: int
    items_updated: int
    errors: tuple[SyncError, ...] = field(default_factory=tuple)
    duration_ms: int = 0
    items_discovered: int = 0
    items_skipped: int = 0
    pages_processed: int = 0
