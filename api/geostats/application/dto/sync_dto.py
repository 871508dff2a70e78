"""
DTOs para la sincronización del historial de partidas de GeoGuessr.

El flujo es asíncrono:
- POST /sync/refresh inicia el run en background y retorna un handle (202)
- el frontend hace polling a /sync/status/{user_id} hasta que la fase sea
  terminal (completed, failed o cancelled)
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from geostats.infrastructure.external.geoguessr_sync.types import SyncPhase


class SyncStartRequestDTO(BaseModel):
    """Request para iniciar un sync."""

    user_id: str = Field(..., min_length=1, max_length=36, description="ID del usuario a sincronizar")
    max_pages: Optional[int] = Field(
        None,
        ge=1,
        le=50,
        description="Tope de páginas del feed. Si se omite, el run corta por fin de feed o páginas sin datos nuevos.",
    )
    force_refresh: bool = Field(
        False,
        description="Re-descarga partidas ya sincronizadas y reemplaza sus rondas",
    )


class ConnectionTestRequestDTO(BaseModel):
    """Request para probar una cookie de sesión (de un usuario guardado o suelta)."""

    user_id: Optional[str] = Field(None, max_length=36)
    session_cookie: Optional[str] = Field(None, min_length=1)


class SyncHandleDTO(BaseModel):
    """Respuesta inmediata al iniciar un run."""

    run_id: str
    user_id: str
    phase: SyncPhase
    message: str
    started_at: datetime


class SyncErrorDTO(BaseModel):
    identifier: str
    message: str

    class Config:
        from_attributes = True


class SyncResultDTO(BaseModel):
    """Resultado final de un run."""

    success: bool
    phase: SyncPhase
    items_processed: int
    items_created: int
    items_updated: int
    items_discovered: int = 0
    items_skipped: int = 0
    pages_processed: int = 0
    duration_ms: int = 0
    errors: List[SyncErrorDTO] = Field(default_factory=list)

    class Config:
        """Configuración de Pydantic."""
        from_attributes = True


class SyncStatusDTO(BaseModel):
    """Estado actual del sync de un usuario (polling)."""

    user_id: str
    run_id: Optional[str] = None
    phase: SyncPhase = Field(..., description="Fase actual o última fase registrada")
    is_running: bool
    processed_count: int = 0
    total_count: int = 0
    message: str = ""
    errors: List[SyncErrorDTO] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    last_sync: Optional[datetime] = None
    result: Optional[SyncResultDTO] = None


class ConnectionTestDTO(BaseModel):
    """Resultado de probar la cookie contra el feed."""

    connected: bool
    message: str
