"""
Implementación del repositorio de usuarios.
Maneja las operaciones de base de datos para la entidad UserModel.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from geostats.infrastructure.database.models import UserModel


class UserRepository:
    """Repositorio para gestionar usuarios en la base de datos."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        """
        Obtiene un usuario por su ID.
        """
        result = await self.db.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        return result.scalars().first()

    async def touch_last_sync(self, user_id: str, synced_at: datetime) -> None:
        """Registra la hora del último sync completado."""
        await self.db.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(last_sync=synced_at)
        )
