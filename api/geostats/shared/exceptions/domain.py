"""
Excepciones relacionadas con la lógica de dominio.
"""
from typing import Any

from geostats.shared.exceptions.base import AppException


class DomainException(AppException):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, error_code: str = "DOMAIN_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details
        )


class EntityNotFoundException(DomainException):
    """Excepción cuando no se encuentra una entidad."""

    def __init__(self, entity_name: str, entity_id: Any):
        super().__init__(
            message=f"{entity_name} con ID {entity_id} no encontrado",
            error_code="ENTITY_NOT_FOUND",
            details={"entity": entity_name, "id": str(entity_id)}
        )
        self.status_code = 404


class MissingCredentialsException(DomainException):
    """El usuario no tiene cookie de sesión de GeoGuessr registrada."""

    def __init__(self, user_id: str):
        super().__init__(
            message="No hay cookie de sesión de GeoGuessr para el usuario",
            error_code="MISSING_CREDENTIALS",
            details={"user_id": user_id}
        )
