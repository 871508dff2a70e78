"""
Casos de uso de la aplicación.
"""
from .sync_use_cases import SyncRunManager, SyncRunStatus, SyncStatusStore

__all__ = ["SyncRunManager", "SyncRunStatus", "SyncStatusStore"]
