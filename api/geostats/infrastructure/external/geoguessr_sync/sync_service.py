"""
Servicio de sincronización GeoGuessr -> base de datos.

Diseño (resumen):
- Fase 1: recorre el feed y obtiene la lista deduplicada de tokens de partida
- Fase 2: por cada token, en orden de descubrimiento:
    skip si la partida ya tiene details_fetched (salvo force_refresh)
    -> descarga + normalización del detalle
    -> UPSERT de la partida + reemplazo completo de sus rondas
    -> commit
- Los errores por partida se registran y el run continúa
- Solo AuthError y FeedUnavailableError terminan el run como failed

Un run procesa una partida a la vez: GeoGuessr es el cuello de botella y
hay que limitar el ritmo de todas formas.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geostats.core.config import Settings, settings as default_settings
from geostats.infrastructure.repositories.user_repository import UserRepository

from .errors import AuthError, DetailError, FeedUnavailableError
from .feed_paginator import FeedPaginator
from .game_details import GameDetailFetcher
from .game_repository import GameSyncRepository
from .geoguessr_client import GeoGuessrClient, GeoGuessrCredentials
from .rate_limiter import RateLimiter
from .sync_config import SyncOptions
from .types import (
    ProgressEvent,
    ProgressObserver,
    SyncError,
    SyncPhase,
    SyncResult,
    utc_now,
)

_ITEM_CREATED = "created"
_ITEM_UPDATED = "updated"
_ITEM_SKIPPED = "skipped"


@dataclass
class SyncCounts:
    pages_processed: int = 0
    items_discovered: int = 0
    items_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_skipped: int = 0


@dataclass
class SyncSession:
    """
    Estado transitorio de un run. Solo lo muta el orquestador y se descarta
    al convertirlo en SyncResult; nunca se persiste.
    """

    user_id: str
    seen_identifiers: set[str] = field(default_factory=set)
    cursor: Optional[str] = None
    counts: SyncCounts = field(default_factory=SyncCounts)
    errors: list[SyncError] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    def record_error(self, identifier: str, message: str) -> None:
        self.errors.append(SyncError(identifier=identifier, message=message))

    def to_result(self, phase: SyncPhase) -> SyncResult:
        return SyncResult(
            success=phase == SyncPhase.COMPLETED and not self.errors,
            phase=phase,
            items_processed=self.counts.items_processed,
            items_created=self.counts.items_created,
            items_updated=self.counts.items_updated,
            errors=tuple(self.errors),
            duration_ms=int((time.monotonic() - self.started_at) * 1000),
            items_discovered=self.counts.items_discovered,
            items_skipped=self.counts.items_skipped,
            pages_processed=self.counts.pages_processed,
        )


class GameSyncService:
    """
    Orquestador del pipeline para un usuario.

    Estados: idle -> running -> completed | failed | cancelled.
    La cancelación es cooperativa: se observa entre partidas (y entre
    páginas del feed), nunca a mitad de una descarga o escritura.
    """

    def __init__(
        self,
        *,
        client: GeoGuessrClient,
        session_factory: async_sessionmaker[AsyncSession],
        options: SyncOptions,
        observer: Optional[ProgressObserver] = None,
        cancel_event: Optional[asyncio.Event] = None,
        page_limiter: Optional[RateLimiter] = None,
        item_limiter: Optional[RateLimiter] = None,
        cooldown: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._session_factory = session_factory
        self._options = options
        self._observer = observer
        self._cancel_event = cancel_event or asyncio.Event()
        self._page_limiter = page_limiter or RateLimiter(options.page_interval_s)
        self._item_limiter = item_limiter or RateLimiter(options.item_interval_s)
        self._cooldown = cooldown
        self._clock = clock
        self._fetcher = GameDetailFetcher(client, clock=clock)
        self.session: Optional[SyncSession] = None

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    def _emit(self, phase: SyncPhase, processed: int, total: int, message: str) -> None:
        if self._observer is None:
            return
        self._observer(
            ProgressEvent(phase=phase, processed_count=processed, total_count=total, message=message)
        )

    def _finish(self, state: SyncSession, phase: SyncPhase, total: int) -> SyncResult:
        result = state.to_result(phase)
        summary = (
            f"[geo-sync] Sync {phase.value} en {result.duration_ms}ms: "
            f"{result.items_created} nuevas, {result.items_updated} actualizadas, "
            f"{result.items_skipped} omitidas, {len(result.errors)} errores"
        )
        if result.success:
            logger.success(summary)
        else:
            logger.warning(summary)
        self._emit(phase, state.counts.items_processed + state.counts.items_skipped, total, summary)
        return result

    async def run(self, user_id: str) -> SyncResult:
        """
        Ejecuta un run completo y retorna el resultado (no lanza por errores de datos).

        Un fallo inesperado termina el run como failed pero conserva los
        contadores de las partidas ya comiteadas.
        """
        state = SyncSession(user_id=user_id)
        self.session = state
        logger.info(f"[geo-sync] Iniciando sync para usuario {user_id}")
        self._emit(SyncPhase.STARTING, 0, 0, "Iniciando sincronización")
        try:
            return await self._run_phases(state)
        except Exception as e:
            logger.exception(f"[geo-sync] Sync de {user_id} falló inesperadamente: {e}")
            state.record_error("run", str(e) or type(e).__name__)
            return self._finish(state, SyncPhase.FAILED, state.counts.items_discovered)

    async def _run_phases(self, state: SyncSession) -> SyncResult:
        # Fase 1: feed
        self._emit(SyncPhase.FETCHING_FEED, 0, 0, "Recorriendo feed de partidas")
        paginator = FeedPaginator(
            self._client,
            options=self._options,
            rate_limiter=self._page_limiter,
            cooldown=self._cooldown,
            cancel_event=self._cancel_event,
            on_page=lambda pages, found: self._emit(
                SyncPhase.FETCHING_FEED, pages, 0, f"Página {pages}: {found} partidas encontradas"
            ),
        )
        try:
            tokens, page_errors = await paginator.collect_all_identifiers(seen=state.seen_identifiers)
        except (AuthError, FeedUnavailableError) as e:
            state.counts.pages_processed = paginator.pages_processed
            logger.error(f"[geo-sync] Sync abortado: {e}")
            state.record_error("feed", str(e))
            return self._finish(state, SyncPhase.FAILED, 0)

        state.cursor = paginator.last_cursor
        state.counts.pages_processed = paginator.pages_processed
        state.counts.items_discovered = len(tokens)
        for page_error in page_errors:
            state.errors.append(page_error.as_sync_error())

        if self._cancel_event.is_set():
            return self._finish(state, SyncPhase.CANCELLED, len(tokens))

        # Fase 2: detalle por partida
        total = len(tokens)
        self._emit(SyncPhase.PROCESSING_GAMES, 0, total, f"Procesando {total} partidas")
        for index, token in enumerate(tokens, start=1):
            if self._cancel_event.is_set():
                logger.info(f"[geo-sync] Cancelado antes de procesar {token} ({index}/{total})")
                return self._finish(state, SyncPhase.CANCELLED, total)

            try:
                outcome = await self._process_one(state, token)
            except AuthError as e:
                logger.error(f"[geo-sync] Sesión inválida durante el detalle de {token}: {e}")
                state.record_error(token, str(e))
                return self._finish(state, SyncPhase.FAILED, total)
            except DetailError as e:
                logger.error(f"[geo-sync] {e}")
                state.record_error(token, e.reason)
                outcome = None
            except SQLAlchemyError as e:
                logger.error(f"[geo-sync] Error de base de datos guardando {token}: {e}")
                state.record_error(token, f"error de base de datos: {type(e).__name__}")
                outcome = None

            self._emit(
                SyncPhase.PROCESSING_GAMES,
                index,
                total,
                f"Partida {index}/{total}: {token} ({outcome or 'error'})",
            )

        await self._stamp_last_sync(state)
        return self._finish(state, SyncPhase.COMPLETED, total)

    async def _process_one(self, state: SyncSession, token: str) -> str:
        if not self._options.force_refresh:
            async with self._session_factory() as db:
                if await GameSyncRepository(db).is_details_fetched(token):
                    logger.debug(f"[geo-sync] {token} ya sincronizada, se omite")
                    state.counts.items_skipped += 1
                    return _ITEM_SKIPPED

        await self._item_limiter.acquire()
        normalized = await self._fetcher.fetch_and_normalize(token)

        async with self._session_factory() as db:
            try:
                outcome = await GameSyncRepository(db).save_normalized_game(
                    normalized, user_id=state.user_id
                )
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                raise

        state.counts.items_processed += 1
        if outcome.is_new:
            state.counts.items_created += 1
        else:
            state.counts.items_updated += 1
        logger.info(
            f"[geo-sync] {token} guardada ({'nueva' if outcome.is_new else 'actualizada'}, "
            f"{len(normalized.rounds)} rondas)"
        )
        return _ITEM_CREATED if outcome.is_new else _ITEM_UPDATED

    async def _stamp_last_sync(self, state: SyncSession) -> None:
        async with self._session_factory() as db:
            try:
                await UserRepository(db).touch_last_sync(state.user_id, self._clock())
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"[geo-sync] No se pudo registrar last_sync de {state.user_id}: {e}")
                state.record_error("last_sync", f"error de base de datos: {type(e).__name__}")


def build_client(session_cookie: str, *, config: Settings = default_settings) -> GeoGuessrClient:
    """Constructor del cliente leyendo timeouts/reintentos desde Settings."""
    return GeoGuessrClient(
        GeoGuessrCredentials(session_cookie=session_cookie),
        base_url=config.GEOGUESSR_BASE_URL,
        timeout_s=config.GEOGUESSR_TIMEOUT_S,
        max_retries=config.GEOGUESSR_MAX_RETRIES,
        min_backoff_s=config.GEOGUESSR_MIN_BACKOFF_S,
        max_backoff_s=config.GEOGUESSR_MAX_BACKOFF_S,
    )
