"""
Dependencias para inyección de casos de uso.
"""
from fastapi import Request

from geostats.application.use_cases.sync_use_cases import SyncRunManager


def get_sync_run_manager(request: Request) -> SyncRunManager:
    """
    Dependencia para obtener el gestor de runs de sync.

    La instancia se crea una sola vez en create_application y vive en
    app.state: el registro de runs activos debe ser compartido entre requests.

    Returns:
        SyncRunManager: Gestor de runs de la aplicación
    """
    return request.app.state.sync_manager
