"""
Middleware para manejo centralizado de errores.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Convierte cualquier excepción no manejada en un 500 genérico."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            # loguru formatea el mensaje: las llaves del error se escapan
            error_msg = str(exc).replace("{", "{{").replace("}", "}}")
            logger.opt(exception=exc).error(
                f"Error no manejado en {request.method} {request.url.path}: {error_msg}"
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "INTERNAL_SERVER_ERROR",
                    "message": "Ha ocurrido un error interno del servidor",
                    "details": {}
                }
            )
