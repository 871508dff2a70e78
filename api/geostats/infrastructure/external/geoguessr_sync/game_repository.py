"""
Repositorio de partidas/rondas (SQLAlchemy async) para el sync.

- UPSERT de la partida por clave natural (game_token)
- reemplazo completo de las rondas de una partida (delete + insert)

No hace commit: el orquestador controla la transacción (un commit por
partida). El delete + insert no es atómico frente a lectores concurrentes
fuera de esa transacción; el sync corre como batch offline.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from geostats.infrastructure.database.models import GameModel, RoundModel

from .types import GameRecord, NormalizedGame, RoundRecord

_GAME_MUTABLE_FIELDS = tuple(f.name for f in fields(GameRecord) if f.name != "game_token")
_ROUND_FIELDS = tuple(f.name for f in fields(RoundRecord))


@dataclass(frozen=True)
class UpsertOutcome:
    game_id: int
    is_new: bool


class GameSyncRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_token(self, game_token: str) -> Optional[GameModel]:
        result = await self.db.execute(
            select(GameModel).where(GameModel.game_token == game_token)
        )
        return result.scalars().first()

    async def is_details_fetched(self, game_token: str) -> bool:
        """Señal de skip idempotente: la partida ya está sincronizada completa."""
        result = await self.db.execute(
            select(GameModel.details_fetched).where(GameModel.game_token == game_token)
        )
        return bool(result.scalar_one_or_none())

    async def upsert_game(self, record: GameRecord, *, user_id: str) -> UpsertOutcome:
        """
        Inserta la partida si no existe; si existe, reemplaza todos sus campos mutables.

        El reemplazo es del registro completo (no merge campo a campo) para
        no arrastrar valores viejos entre versiones del payload.
        """
        game = await self.get_by_token(record.game_token)
        is_new = game is None
        if is_new:
            game = GameModel(game_token=record.game_token)
            self.db.add(game)

        game.user_id = user_id
        for name in _GAME_MUTABLE_FIELDS:
            setattr(game, name, getattr(record, name))

        await self.db.flush()
        return UpsertOutcome(game_id=game.id, is_new=is_new)

    async def replace_rounds(
        self,
        game_id: int,
        rounds: Iterable[RoundRecord],
        *,
        user_id: str,
    ) -> int:
        """
        Borra todas las rondas de la partida e inserta el set nuevo en orden 1..N.

        Returns:
            Cantidad de rondas insertadas.
        """
        await self.db.execute(delete(RoundModel).where(RoundModel.game_id == game_id))

        ordered = sorted(rounds, key=lambda r: r.round_number)
        self.db.add_all(
            [
                RoundModel(
                    game_id=game_id,
                    user_id=user_id,
                    **{name: getattr(r, name) for name in _ROUND_FIELDS},
                )
                for r in ordered
            ]
        )
        await self.db.flush()
        return len(ordered)

    async def save_normalized_game(self, normalized: NormalizedGame, *, user_id: str) -> UpsertOutcome:
        outcome = await self.upsert_game(normalized.game, user_id=user_id)
        await self.replace_rounds(outcome.game_id, normalized.rounds, user_id=user_id)
        return outcome

    async def list_rounds(self, game_id: int) -> list[RoundModel]:
        result = await self.db.execute(
            select(RoundModel)
            .where(RoundModel.game_id == game_id)
            .order_by(RoundModel.round_number)
        )
        return list(result.scalars().all())
