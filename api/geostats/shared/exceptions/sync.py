"""
Señales de control del ciclo de vida de un sync.

No son errores de datos: indican que la operación pedida no aplica
al estado actual del run del usuario.
"""
from geostats.shared.exceptions.base import AppException


class AlreadyRunningError(AppException):
    """Ya hay un sync activo para el usuario."""

    def __init__(self, user_id: str):
        super().__init__(
            message="Ya hay una sincronización en curso para este usuario",
            status_code=409,
            error_code="SYNC_ALREADY_RUNNING",
            details={"user_id": user_id}
        )
        self.user_id = user_id


class NotRunningError(AppException):
    """No hay un sync activo que cancelar."""

    def __init__(self, user_id: str):
        super().__init__(
            message="No hay una sincronización activa para este usuario",
            status_code=404,
            error_code="SYNC_NOT_RUNNING",
            details={"user_id": user_id}
        )
        self.user_id = user_id
