"""
Configuración de fixtures para pytest.
"""
import os

# La app crea su engine al importarse: en tests apunta a SQLite en memoria
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import geostats.infrastructure.database  # noqa: F401  (registra los modelos en Base)
from geostats.infrastructure.database.models import UserModel
from geostats.infrastructure.database.session import Base
from geostats.infrastructure.external.geoguessr_sync.sync_config import SyncOptions


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory sobre una base en memoria nueva para cada test.

    StaticPool mantiene una única conexión: cada sesión abierta por el
    pipeline ve las mismas tablas.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sesión de base de datos para tests de repositorio."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def stored_user(session_factory) -> UserModel:
    """Usuario con cookie de sesión guardada."""
    async with session_factory() as session:
        user = UserModel(id="user-1", username="explorer", session_cookie="_ncfa=abc123")
        session.add(user)
        await session.commit()
    return user


@pytest.fixture
def fast_options() -> SyncOptions:
    """Opciones sin esperas reales entre requests."""
    return SyncOptions(
        empty_page_threshold=3,
        page_failure_limit=2,
        failed_page_cooldown_s=0.0,
        page_interval_s=0.0,
        item_interval_s=0.0,
    )
