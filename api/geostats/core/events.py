"""
Ciclo de vida de la aplicación (inicio y cierre).
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from loguru import logger

from geostats.core.config import settings
from geostats.infrastructure.database.session import init_db, close_db


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Inicializa recursos al arrancar y los libera al cerrar.

    Al cerrar se cancelan los runs de sync activos antes de cerrar la base
    de datos: un run a medio escribir necesita la conexión para su commit.
    """
    try:
        logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Entorno: {settings.ENVIRONMENT}")

        # Inicializar base de datos (crea tablas si no existen)
        await init_db()
        logger.info("Base de datos inicializada")

        # Configurar logging adicional
        logger.add(
            settings.LOG_FILE,
            rotation="500 MB",
            retention="10 days",
            level=settings.LOG_LEVEL
        )

        logger.success("Aplicación iniciada correctamente")
        _print_available_urls()
    except Exception as e:
        logger.error(f"Error durante startup: {e}")
        logger.exception("Detalle del error:")
        raise

    yield

    logger.info("Cerrando aplicación...")

    sync_manager = getattr(app.state, "sync_manager", None)
    if sync_manager is not None:
        await sync_manager.shutdown()
        logger.info("Runs de sync detenidos")

    await close_db()
    logger.info("Conexiones de base de datos cerradas")

    logger.success("Aplicación cerrada correctamente")


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicación."""
    access_host = "localhost" if settings.HOST == "0.0.0.0" else settings.HOST
    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync:        {base_url}/api/v1/sync/refresh</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
