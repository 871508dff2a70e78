"""
Endpoints para sincronizar el historial de partidas de GeoGuessr.

El run corre en background: refresh responde 202 con un handle y el
frontend hace polling a status hasta que la fase sea terminal.
"""
from fastapi import APIRouter, Depends, status

from geostats.api.v1.dependencies.use_case_deps import get_sync_run_manager
from geostats.application.dto.sync_dto import (
    ConnectionTestDTO,
    ConnectionTestRequestDTO,
    SyncHandleDTO,
    SyncStartRequestDTO,
    SyncStatusDTO,
)
from geostats.application.use_cases.sync_use_cases import SyncRunManager


router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post(
    "/refresh",
    response_model=SyncHandleDTO,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Iniciar sincronización de partidas"
)
async def start_sync(
    payload: SyncStartRequestDTO,
    manager: SyncRunManager = Depends(get_sync_run_manager),
) -> SyncHandleDTO:
    """
    Inicia un run de sincronización para el usuario.

    - 409 si ya hay un run activo para el usuario
    - 404 si el usuario no existe
    - 400 si el usuario no tiene cookie de sesión
    """
    return await manager.start_sync(
        payload.user_id,
        max_pages=payload.max_pages,
        force_refresh=payload.force_refresh,
    )


@router.get(
    "/status/{user_id}",
    response_model=SyncStatusDTO,
    summary="Estado del sync de un usuario"
)
async def get_sync_status(
    user_id: str,
    manager: SyncRunManager = Depends(get_sync_run_manager),
) -> SyncStatusDTO:
    return await manager.get_status(user_id)


@router.post(
    "/cancel/{user_id}",
    response_model=SyncStatusDTO,
    summary="Cancelar el sync activo"
)
async def cancel_sync(
    user_id: str,
    manager: SyncRunManager = Depends(get_sync_run_manager),
) -> SyncStatusDTO:
    """La cancelación es cooperativa: se aplica al terminar la partida en curso."""
    return await manager.cancel(user_id)


@router.post(
    "/test",
    response_model=ConnectionTestDTO,
    summary="Probar la cookie de sesión contra GeoGuessr"
)
async def test_connection(
    payload: ConnectionTestRequestDTO,
    manager: SyncRunManager = Depends(get_sync_run_manager),
) -> ConnectionTestDTO:
    return await manager.test_connection(
        user_id=payload.user_id,
        session_cookie=payload.session_cookie,
    )
