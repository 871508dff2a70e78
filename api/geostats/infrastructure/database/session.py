"""
Gestión de sesiones de base de datos.
"""
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import declarative_base

from geostats.core.config import settings


# Base para modelos de SQLAlchemy
Base = declarative_base()


def _create_engine_args(database_url: str) -> dict:
    """
    Construye los argumentos del engine según el tipo de base de datos.
    PostgreSQL usa pool de conexiones, SQLite no lo soporta.
    """
    args = {
        "echo": settings.DEBUG,
        "future": True,
    }

    # Configuración de pool solo para PostgreSQL
    if "postgresql" in database_url:
        args.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,  # Verifica conexión antes de usar
        })

    return args


# Engine de base de datos
engine = create_async_engine(
    settings.effective_database_url,
    **_create_engine_args(settings.effective_database_url)
)

# Session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def init_db() -> None:
    """Inicializa la base de datos creando todas las tablas."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Cierra las conexiones de la base de datos."""
    await engine.dispose()
