"""
Data Transfer Objects (DTOs) para la capa de aplicación.
"""
from .sync_dto import (
    ConnectionTestDTO,
    ConnectionTestRequestDTO,
    SyncErrorDTO,
    SyncHandleDTO,
    SyncResultDTO,
    SyncStartRequestDTO,
    SyncStatusDTO,
)

__all__ = [
    "ConnectionTestDTO",
    "ConnectionTestRequestDTO",
    "SyncErrorDTO",
    "SyncHandleDTO",
    "SyncResultDTO",
    "SyncStartRequestDTO",
    "SyncStatusDTO",
]
