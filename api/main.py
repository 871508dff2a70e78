"""
Punto de entrada principal de la aplicación FastAPI.
Configura la aplicación, middlewares, rutas y ciclo de vida.
"""
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from geostats.core.config import settings, get_cors_origins
from geostats.core.events import lifespan
from geostats.api.v1.router import api_router
from geostats.api.middlewares.error_handler import ErrorHandlerMiddleware
from geostats.application.use_cases.sync_use_cases import SyncRunManager
from geostats.infrastructure.database.session import AsyncSessionLocal
from geostats.shared.exceptions.base import AppException


def create_application(sync_manager: Optional[SyncRunManager] = None) -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.

    Args:
        sync_manager: Gestor de runs a usar (los tests inyectan uno propio)

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Backend de estadísticas de GeoGuessr: sincronización del historial de partidas",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Configurar CORS
    cors_origins = get_cors_origins(settings.CORS_ORIGINS)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware personalizado para manejo de errores
    application.add_middleware(ErrorHandlerMiddleware)

    # Registro de runs compartido entre requests
    application.state.sync_manager = sync_manager or SyncRunManager(session_factory=AsyncSessionLocal)

    # Incluir routers de la API
    application.include_router(api_router, prefix="/api")

    # Manejador global de excepciones personalizadas
    @application.exception_handler(AppException)
    async def app_exception_handler(request, exc: AppException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.details
            }
        )

    # Health check endpoint
    @application.get("/health", tags=["Health"])
    async def health_check():
        """Endpoint para verificar el estado de la aplicación."""
        return {
            "status": "healthy",
            "app_name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT
        }

    return application


# Crear instancia de la aplicación
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
