"""
Tests de GameSyncRepository sobre SQLite en memoria (aiosqlite).
"""
from dataclasses import replace
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from geostats.infrastructure.database.models import GameModel, RoundModel, UserModel
from geostats.infrastructure.external.geoguessr_sync.game_details import normalize_game_details
from geostats.infrastructure.external.geoguessr_sync.game_repository import GameSyncRepository
from geostats.infrastructure.repositories.user_repository import UserRepository

from geoguessr_fakes import game_detail

SYNCED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _normalized(token: str, rounds: int = 5, **kwargs):
    return normalize_game_details(game_detail(token, rounds=rounds, **kwargs), synced_at=SYNCED_AT)


@pytest.mark.asyncio
async def test_upsert_inserts_then_updates_in_place(db_session):
    repo = GameSyncRepository(db_session)
    record = _normalized("g1").game

    first = await repo.upsert_game(record, user_id="user-1")
    second = await repo.upsert_game(replace(record, total_score=123, map_name="Renamed"), user_id="user-1")
    await db_session.commit()

    assert first.is_new is True
    assert second.is_new is False
    assert first.game_id == second.game_id

    game = await repo.get_by_token("g1")
    assert game.total_score == 123
    assert game.map_name == "Renamed"
    count = await db_session.scalar(select(func.count()).select_from(GameModel))
    assert count == 1


@pytest.mark.asyncio
async def test_upsert_replaces_whole_record(db_session):
    repo = GameSyncRepository(db_session)
    record = _normalized("g1").game

    await repo.upsert_game(record, user_id="user-1")
    await repo.upsert_game(replace(record, bounds_min_lat=None, forbid_moving=True), user_id="user-1")
    await db_session.commit()

    game = await repo.get_by_token("g1")
    assert game.bounds_min_lat is None
    assert game.forbid_moving is True


@pytest.mark.asyncio
async def test_replace_rounds_deletes_previous_set(db_session):
    repo = GameSyncRepository(db_session)
    outcome = await repo.save_normalized_game(_normalized("g1", rounds=5), user_id="user-1")
    await db_session.commit()

    inserted = await repo.replace_rounds(outcome.game_id, _normalized("g1", rounds=3).rounds, user_id="user-1")
    await db_session.commit()

    rounds = await repo.list_rounds(outcome.game_id)
    assert inserted == 3
    assert [r.round_number for r in rounds] == [1, 2, 3]
    total = await db_session.scalar(select(func.count()).select_from(RoundModel))
    assert total == 3


@pytest.mark.asyncio
async def test_replace_rounds_inserts_in_sequence_order(db_session):
    repo = GameSyncRepository(db_session)
    normalized = _normalized("g1", rounds=4)
    outcome = await repo.upsert_game(normalized.game, user_id="user-1")

    await repo.replace_rounds(outcome.game_id, reversed(normalized.rounds), user_id="user-1")
    await db_session.commit()

    rounds = await repo.list_rounds(outcome.game_id)
    assert [r.round_number for r in sorted(rounds, key=lambda r: r.id)] == [1, 2, 3, 4]
    assert all(r.user_id == "user-1" for r in rounds)


@pytest.mark.asyncio
async def test_is_details_fetched(db_session):
    repo = GameSyncRepository(db_session)
    assert await repo.is_details_fetched("g1") is False

    await repo.save_normalized_game(_normalized("g1"), user_id="user-1")
    await db_session.commit()

    assert await repo.is_details_fetched("g1") is True


@pytest.mark.asyncio
async def test_touch_last_sync(db_session):
    db_session.add(UserModel(id="user-1", username="explorer"))
    await db_session.commit()
    repo = UserRepository(db_session)

    await repo.touch_last_sync("user-1", SYNCED_AT)
    await db_session.commit()
    db_session.expire_all()

    user = await repo.get_by_id("user-1")
    assert user.last_sync.replace(tzinfo=timezone.utc) == SYNCED_AT
