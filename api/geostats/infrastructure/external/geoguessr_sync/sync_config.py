"""
Configuración de un run de sync GeoGuessr -> base de datos.

Los umbrales son heurísticas ajustables: los defaults vienen de Settings
pero cada run puede sobreescribirlos (tests, CLI).

Este módulo no realiza I/O: solo define configuración.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from geostats.core.config import Settings, settings as default_settings


@dataclass(frozen=True)
class SyncOptions:
    """
    Parámetros de un run.

    - max_pages: tope explícito de páginas del feed (None = sin tope; el run
      queda acotado por el fin del feed o por empty_page_threshold)
    - force_refresh: ignora details_fetched y re-descarga todas las partidas
    - empty_page_threshold: páginas consecutivas sin tokens nuevos para cortar
    - page_failure_limit: intentos por página a nivel paginador antes de
      registrar un PageError (cada intento ya incluye los reintentos del cliente)
    - max_page_errors: total de PageError tolerados en el run; al alcanzarlo se
      deja de paginar
    - failed_page_cooldown_s: pausa antes de reintentar una página fallida
    - page_interval_s / item_interval_s: ritmo mínimo entre requests
    """

    max_pages: Optional[int] = None
    force_refresh: bool = False
    empty_page_threshold: int = 3
    page_failure_limit: int = 2
    max_page_errors: int = 5
    failed_page_cooldown_s: float = 2.0
    page_interval_s: float = 0.8
    item_interval_s: float = 0.5

    def __post_init__(self) -> None:
        if self.max_pages is not None and self.max_pages < 1:
            raise ValueError("max_pages debe ser >= 1 o None")
        if self.empty_page_threshold < 1:
            raise ValueError("empty_page_threshold debe ser >= 1")
        if self.page_failure_limit < 1:
            raise ValueError("page_failure_limit debe ser >= 1")
        if self.max_page_errors < 1:
            raise ValueError("max_page_errors debe ser >= 1")

    def with_overrides(
        self,
        *,
        max_pages: Optional[int] = None,
        force_refresh: Optional[bool] = None,
    ) -> "SyncOptions":
        changes: dict = {}
        if max_pages is not None:
            changes["max_pages"] = max_pages
        if force_refresh is not None:
            changes["force_refresh"] = force_refresh
        return replace(self, **changes) if changes else self


def sync_options_from_settings(config: Settings = default_settings) -> SyncOptions:
    """Construye las opciones por defecto de un run a partir de Settings."""
    return SyncOptions(
        empty_page_threshold=config.SYNC_EMPTY_PAGE_THRESHOLD,
        page_failure_limit=config.SYNC_PAGE_FAILURE_LIMIT,
        max_page_errors=config.SYNC_MAX_PAGE_ERRORS,
        failed_page_cooldown_s=config.SYNC_FAILED_PAGE_COOLDOWN_S,
        page_interval_s=config.SYNC_PAGE_INTERVAL_S,
        item_interval_s=config.SYNC_ITEM_INTERVAL_S,
    )
