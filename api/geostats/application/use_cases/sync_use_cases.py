"""
Casos de uso para sincronizar el historial de partidas de GeoGuessr.

Patrón asíncrono:
- start_sync inicia el run en background y retorna inmediatamente un handle.
- El frontend hace polling a get_status hasta que la fase sea terminal.
- Como máximo un run activo por usuario (AlreadyRunningError).

El estado vive en un SyncStatusStore inyectado (en memoria, con TTL para
runs terminados) y el registro de runs activos pertenece a cada instancia
de SyncRunManager: no hay estado global compartido entre instancias.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geostats.application.dto.sync_dto import (
    ConnectionTestDTO,
    SyncErrorDTO,
    SyncHandleDTO,
    SyncResultDTO,
    SyncStatusDTO,
)
from geostats.core.config import settings
from geostats.infrastructure.external.geoguessr_sync.geoguessr_client import GeoGuessrClient
from geostats.infrastructure.external.geoguessr_sync.sync_config import (
    SyncOptions,
    sync_options_from_settings,
)
from geostats.infrastructure.external.geoguessr_sync.sync_service import (
    GameSyncService,
    SyncSession,
    build_client,
)
from geostats.infrastructure.external.geoguessr_sync.types import (
    ProgressEvent,
    SyncError,
    SyncPhase,
    SyncResult,
    utc_now,
)
from geostats.infrastructure.repositories.user_repository import UserRepository
from geostats.shared.exceptions.domain import (
    DomainException,
    EntityNotFoundException,
    MissingCredentialsException,
)
from geostats.shared.exceptions.sync import AlreadyRunningError, NotRunningError


@dataclass
class SyncRunStatus:
    """Estado de un run (activo o terminado) para polling."""

    user_id: str
    run_id: str
    phase: SyncPhase
    processed_count: int
    total_count: int
    message: str
    started_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime] = None
    result: Optional[SyncResult] = None
    expires_at: Optional[float] = None


class SyncStatusStore:
    """
    Canal de estado de los runs, indexado por usuario.

    Los runs terminados expiran tras ttl_s segundos; los activos no expiran.
    Se usa siempre desde el event loop, sin hilos.
    """

    def __init__(self, ttl_s: float = 3600.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: Dict[str, SyncRunStatus] = {}

    def put(self, status: SyncRunStatus) -> None:
        self._entries[status.user_id] = status

    def get(self, user_id: str) -> Optional[SyncRunStatus]:
        self.purge_expired()
        return self._entries.get(user_id)

    def update(self, user_id: str, **changes: Any) -> None:
        status = self._entries.get(user_id)
        if status is None:
            return
        for k, v in changes.items():
            setattr(status, k, v)
        status.updated_at = utc_now()

    def apply_event(self, user_id: str, event: ProgressEvent) -> None:
        """Observer de progreso del orquestador."""
        self.update(
            user_id,
            phase=event.phase,
            processed_count=event.processed_count,
            total_count=event.total_count,
            message=event.message,
        )

    def finish(self, user_id: str, result: SyncResult) -> None:
        now = utc_now()
        self.update(
            user_id,
            phase=result.phase,
            result=result,
            finished_at=now,
            expires_at=self._clock() + self._ttl_s,
        )

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            user_id
            for user_id, status in self._entries.items()
            if status.expires_at is not None and status.expires_at <= now
        ]
        for user_id in expired:
            del self._entries[user_id]
        if expired:
            logger.debug(f"[geo-sync] {len(expired)} estados de sync expirados eliminados")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class _ActiveRun:
    run_id: str
    user_id: str
    cancel_event: asyncio.Event
    task: Optional["asyncio.Task[SyncResult]"] = None
    client: Optional[GeoGuessrClient] = None


def _result_dto(result: Optional[SyncResult]) -> Optional[SyncResultDTO]:
    if result is None:
        return None
    return SyncResultDTO.model_validate(result, from_attributes=True)


def _interrupted_result(service: Any, phase: SyncPhase, message: str, started: float) -> SyncResult:
    """Resultado de un run que no llegó a cerrar; conserva los contadores ya acumulados."""
    error = SyncError(identifier="run", message=message)
    session = getattr(service, "session", None)
    if isinstance(session, SyncSession):
        return replace(session.to_result(phase), success=False, errors=tuple(session.errors) + (error,))
    return SyncResult(
        success=False,
        phase=phase,
        items_processed=0,
        items_created=0,
        items_updated=0,
        errors=(error,),
        duration_ms=int((time.monotonic() - started) * 1000),
    )


class SyncRunManager:
    """
    Orquestador de runs de sincronización por usuario.

    Cada run corre como asyncio.Task; las llamadas bloqueantes a GeoGuessr
    se delegan a hilos desde el propio pipeline.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        status_store: Optional[SyncStatusStore] = None,
        options: Optional[SyncOptions] = None,
        client_factory: Callable[[str], GeoGuessrClient] = build_client,
        service_factory: Callable[..., GameSyncService] = GameSyncService,
    ) -> None:
        self._session_factory = session_factory
        self._status_store = status_store or SyncStatusStore(ttl_s=settings.SYNC_STATUS_TTL_S)
        self._options = options or sync_options_from_settings()
        self._client_factory = client_factory
        self._service_factory = service_factory
        self._runs: Dict[str, _ActiveRun] = {}
        self._lock = asyncio.Lock()

    @property
    def status_store(self) -> SyncStatusStore:
        return self._status_store

    def is_running(self, user_id: str) -> bool:
        return user_id in self._runs

    async def _load_session_cookie(self, user_id: str) -> str:
        async with self._session_factory() as db:
            user = await UserRepository(db).get_by_id(user_id)
        if user is None:
            raise EntityNotFoundException("Usuario", user_id)
        if not user.session_cookie:
            raise MissingCredentialsException(user_id)
        return user.session_cookie

    async def _load_last_sync(self, user_id: str) -> tuple[bool, Optional[datetime]]:
        async with self._session_factory() as db:
            user = await UserRepository(db).get_by_id(user_id)
        if user is None:
            return False, None
        return True, user.last_sync

    async def start_sync(
        self,
        user_id: str,
        *,
        max_pages: Optional[int] = None,
        force_refresh: bool = False,
    ) -> SyncHandleDTO:
        """
        Inicia un run en background.

        Raises:
            AlreadyRunningError: si ya hay un run activo para el usuario
            EntityNotFoundException: si el usuario no existe
            MissingCredentialsException: si el usuario no tiene cookie
        """
        async with self._lock:
            if user_id in self._runs:
                raise AlreadyRunningError(user_id)

            session_cookie = await self._load_session_cookie(user_id)
            options = self._options.with_overrides(max_pages=max_pages, force_refresh=force_refresh)

            run = _ActiveRun(
                run_id=str(uuid.uuid4()),
                user_id=user_id,
                cancel_event=asyncio.Event(),
                client=self._client_factory(session_cookie),
            )
            now = utc_now()
            self._status_store.put(
                SyncRunStatus(
                    user_id=user_id,
                    run_id=run.run_id,
                    phase=SyncPhase.STARTING,
                    processed_count=0,
                    total_count=0,
                    message="Iniciando sincronización",
                    started_at=now,
                    updated_at=now,
                )
            )

            service = self._service_factory(
                client=run.client,
                session_factory=self._session_factory,
                options=options,
                observer=lambda event: self._status_store.apply_event(user_id, event),
                cancel_event=run.cancel_event,
            )
            self._runs[user_id] = run
            run.task = asyncio.create_task(self._run(run, service))

        logger.info(
            f"[geo-sync] Run {run.run_id} iniciado para {user_id} "
            f"(max_pages={options.max_pages}, force_refresh={options.force_refresh})"
        )
        return SyncHandleDTO(
            run_id=run.run_id,
            user_id=user_id,
            phase=SyncPhase.STARTING,
            message="Sincronización iniciada",
            started_at=now,
        )

    async def _run(self, run: _ActiveRun, service: GameSyncService) -> SyncResult:
        started = time.monotonic()
        try:
            result = await service.run(run.user_id)
        except asyncio.CancelledError:
            logger.warning(f"[geo-sync] Run {run.run_id} abortado antes de terminar")
            self._status_store.finish(
                run.user_id,
                _interrupted_result(service, SyncPhase.CANCELLED, "Run abortado durante el apagado", started),
            )
            raise
        except Exception as e:
            logger.exception(f"[geo-sync] Run {run.run_id} falló inesperadamente: {e}")
            result = _interrupted_result(service, SyncPhase.FAILED, str(e) or type(e).__name__, started)
        finally:
            if run.client is not None:
                run.client.close()
            self._runs.pop(run.user_id, None)

        self._status_store.finish(run.user_id, result)
        return result

    async def get_status(self, user_id: str) -> SyncStatusDTO:
        """
        Estado actual del sync del usuario (no bloqueante).

        Raises:
            EntityNotFoundException: si el usuario no existe y no hay run registrado
        """
        status = self._status_store.get(user_id)
        user_exists, last_sync = await self._load_last_sync(user_id)
        if status is None and not user_exists:
            raise EntityNotFoundException("Usuario", user_id)

        if status is None:
            return SyncStatusDTO(
                user_id=user_id,
                phase=SyncPhase.IDLE,
                is_running=False,
                message="Sin sincronizaciones recientes",
                last_sync=last_sync,
            )

        errors = [SyncErrorDTO.model_validate(e) for e in status.result.errors] if status.result else []
        return SyncStatusDTO(
            user_id=user_id,
            run_id=status.run_id,
            phase=status.phase,
            is_running=self.is_running(user_id),
            processed_count=status.processed_count,
            total_count=status.total_count,
            message=status.message,
            errors=errors,
            started_at=status.started_at,
            updated_at=status.updated_at,
            finished_at=status.finished_at,
            last_sync=last_sync,
            result=_result_dto(status.result),
        )

    async def cancel(self, user_id: str) -> SyncStatusDTO:
        """
        Pide la cancelación cooperativa del run activo.

        Raises:
            NotRunningError: si el usuario no tiene un run activo
        """
        run = self._runs.get(user_id)
        if run is None:
            raise NotRunningError(user_id)

        run.cancel_event.set()
        self._status_store.update(user_id, message="Cancelación solicitada")
        logger.info(f"[geo-sync] Cancelación solicitada para run {run.run_id} ({user_id})")
        return await self.get_status(user_id)

    async def wait(self, user_id: str) -> Optional[SyncResult]:
        """Espera el fin del run activo; si no hay, retorna el último resultado registrado."""
        run = self._runs.get(user_id)
        if run is not None and run.task is not None:
            return await run.task
        status = self._status_store.get(user_id)
        return status.result if status else None

    async def test_connection(
        self,
        *,
        user_id: Optional[str] = None,
        session_cookie: Optional[str] = None,
    ) -> ConnectionTestDTO:
        """Prueba una cookie (explícita o la guardada del usuario) contra el feed."""
        if not session_cookie:
            if not user_id:
                raise DomainException("Se requiere user_id o session_cookie", error_code="MISSING_CREDENTIALS")
            session_cookie = await self._load_session_cookie(user_id)

        client = self._client_factory(session_cookie)
        try:
            connected = await asyncio.to_thread(client.test_connection)
        finally:
            client.close()

        message = "Conexión con GeoGuessr OK" if connected else "Cookie de sesión inválida o expirada"
        return ConnectionTestDTO(connected=connected, message=message)

    async def shutdown(self, timeout_s: float = 10.0) -> None:
        """Cancela los runs activos y espera a que terminen (o los aborta al vencer timeout_s)."""
        runs = list(self._runs.values())
        if not runs:
            return

        logger.info(f"[geo-sync] Deteniendo {len(runs)} runs activos")
        for run in runs:
            run.cancel_event.set()

        tasks = [run.task for run in runs if run.task is not None]
        done, pending = await asyncio.wait(tasks, timeout=timeout_s)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"[geo-sync] {len(pending)} runs abortados al vencer el timeout de apagado")
            await asyncio.gather(*pending, return_exceptions=True)
