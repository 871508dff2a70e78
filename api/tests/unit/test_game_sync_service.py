"""
Tests del orquestador GameSyncService (pipeline completo contra SQLite en memoria).

El cliente de GeoGuessr es un fake en memoria; no hay esperas reales.
"""
import asyncio
import json
from unittest.mock import Mock

import pytest
import requests
from sqlalchemy import func, select

from geostats.infrastructure.database.models import GameModel, RoundModel, UserModel
from geostats.infrastructure.external.geoguessr_sync.errors import AuthError, TransientFetchError
from geostats.infrastructure.external.geoguessr_sync.geoguessr_client import (
    GeoGuessrClient,
    GeoGuessrCredentials,
)
from geostats.infrastructure.external.geoguessr_sync.sync_service import GameSyncService
from geostats.infrastructure.external.geoguessr_sync.types import SyncPhase

from geoguessr_fakes import FakeGeoGuessrClient, feed_page, game_detail


async def _no_wait(_seconds: float) -> None:
    return None


def _service(client, session_factory, options, **kwargs) -> GameSyncService:
    return GameSyncService(
        client=client,
        session_factory=session_factory,
        options=options,
        cooldown=_no_wait,
        **kwargs,
    )


def _json_response(payload) -> Mock:
    resp = Mock()
    resp.status_code = 200
    resp.headers = {}
    resp.json = Mock(return_value=payload)
    return resp


async def _count(session_factory, model) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(model))


class TestConcreteScenario:
    @pytest.mark.asyncio
    async def test_single_game_single_round(self, session_factory, fast_options, stored_user):
        detail = game_detail("g1", rounds=1, score=5000, country="se")
        detail["player"]["guesses"][0]["distanceInMeters"] = 0
        client = FakeGeoGuessrClient(pages={None: feed_page("g1")}, details={"g1": detail})

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.success is True
        assert result.phase == SyncPhase.COMPLETED
        assert result.items_processed == 1
        assert result.items_created == 1
        assert result.items_updated == 0
        assert result.errors == ()

        async with session_factory() as db:
            game = (await db.execute(select(GameModel))).scalars().one()
            (round_1,) = (await db.execute(select(RoundModel))).scalars().all()
            user = await db.get(UserModel, "user-1")

        assert game.game_token == "g1"
        assert game.details_fetched is True
        assert game.user_id == "user-1"
        assert round_1.distance_km == 0
        assert round_1.is_correct_country is True
        assert round_1.score == 5000
        assert user.last_sync is not None


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_second_run_creates_nothing(self, session_factory, fast_options):
        pages = {None: feed_page("g1", "g2")}
        details = {"g1": game_detail("g1"), "g2": game_detail("g2")}

        first = await _service(FakeGeoGuessrClient(pages, details), session_factory, fast_options).run("user-1")
        client = FakeGeoGuessrClient(pages, details)
        second = await _service(client, session_factory, fast_options).run("user-1")

        assert first.items_created == 2
        assert second.items_created == 0
        assert second.items_skipped == 2
        assert second.success is True
        # Las partidas ya completas no se vuelven a pedir
        assert client.detail_calls == []
        assert await _count(session_factory, GameModel) == 2
        assert await _count(session_factory, RoundModel) == 10

    @pytest.mark.asyncio
    async def test_force_refresh_updates_existing(self, session_factory, fast_options):
        pages = {None: feed_page("g1")}
        await _service(
            FakeGeoGuessrClient(pages, {"g1": game_detail("g1")}), session_factory, fast_options
        ).run("user-1")

        result = await _service(
            FakeGeoGuessrClient(pages, {"g1": game_detail("g1")}),
            session_factory,
            fast_options.with_overrides(force_refresh=True),
        ).run("user-1")

        assert result.items_created == 0
        assert result.items_updated == 1
        assert result.items_processed == 1
        assert await _count(session_factory, GameModel) == 1


class TestDedup:
    @pytest.mark.asyncio
    async def test_overlapping_pages_fetch_each_game_once(self, session_factory, fast_options):
        client = FakeGeoGuessrClient(
            pages={None: feed_page("g1", "g2", next_cursor="c2"), "c2": feed_page("g2", "g3")},
            details={t: game_detail(t) for t in ("g1", "g2", "g3")},
        )

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert client.detail_calls == ["g1", "g2", "g3"]
        assert result.items_discovered == 3
        assert result.pages_processed == 2
        assert await _count(session_factory, GameModel) == 3


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_one_bad_game_does_not_abort_run(self, session_factory, fast_options):
        tokens = ["g1", "g2", "g3", "g4", "g5"]
        details = {t: game_detail(t) for t in tokens}
        details["g3"] = TransientFetchError("502 persistente")
        client = FakeGeoGuessrClient(pages={None: feed_page(*tokens)}, details=details)

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.phase == SyncPhase.COMPLETED
        assert result.success is False
        assert result.items_processed == 4
        assert len(result.errors) == 1
        assert result.errors[0].identifier == "g3"

        async with session_factory() as db:
            stored = set((await db.execute(select(GameModel.game_token))).scalars().all())
        assert stored == {"g1", "g2", "g4", "g5"}

    @pytest.mark.asyncio
    async def test_page_error_is_reported_but_run_completes(self, session_factory, fast_options):
        client = FakeGeoGuessrClient(
            pages={
                None: feed_page("g1", next_cursor="c2"),
                "c2": [TransientFetchError("503"), TransientFetchError("503"), feed_page("g2")],
            },
            details={"g1": game_detail("g1"), "g2": game_detail("g2")},
        )

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.phase == SyncPhase.COMPLETED
        assert result.items_created == 2
        assert [e.identifier for e in result.errors] == ["page:2"]
        assert result.success is False

    @pytest.mark.asyncio
    async def test_body_cut_on_detail_is_recorded_against_that_game(self, session_factory, fast_options):
        def request(method, url, params=None, headers=None, timeout=None):
            if url.endswith("/api/v4/feed/private"):
                entries = [{"type": 1, "payload": json.dumps({"gameToken": t})} for t in ("g1", "g2", "g3")]
                return _json_response({"entries": entries})
            token = url.rsplit("/", 1)[-1]
            if token == "g2":
                raise requests.exceptions.ChunkedEncodingError("conn broken")
            return _json_response(game_detail(token))

        session = Mock(spec=requests.Session)
        session.request.side_effect = request
        client = GeoGuessrClient(
            GeoGuessrCredentials(session_cookie="_ncfa=abc123"),
            session=session,
            base_url="https://geo.test",
            sleep=lambda _s: None,
        )

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.phase == SyncPhase.COMPLETED
        assert result.items_created == 2
        assert [e.identifier for e in result.errors] == ["g2"]
        assert "ChunkedEncodingError" in result.errors[0].message

        async with session_factory() as db:
            stored = set((await db.execute(select(GameModel.game_token))).scalars().all())
        assert stored == {"g1", "g3"}

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_committed_counts(self, session_factory, fast_options):
        client = FakeGeoGuessrClient(
            pages={None: feed_page("g1", "g2", "g3")},
            details={"g1": game_detail("g1"), "g2": RuntimeError("bug"), "g3": game_detail("g3")},
        )

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.phase == SyncPhase.FAILED
        assert result.items_created == 1
        assert result.items_discovered == 3
        assert [e.identifier for e in result.errors] == ["run"]
        assert await _count(session_factory, GameModel) == 1


class TestChildReplacement:
    @pytest.mark.asyncio
    async def test_round_count_change_replaces_children(self, session_factory, fast_options):
        pages = {None: feed_page("g1")}
        await _service(
            FakeGeoGuessrClient(pages, {"g1": game_detail("g1", rounds=5)}), session_factory, fast_options
        ).run("user-1")

        result = await _service(
            FakeGeoGuessrClient(pages, {"g1": game_detail("g1", rounds=3)}),
            session_factory,
            fast_options.with_overrides(force_refresh=True),
        ).run("user-1")

        assert result.success is True
        async with session_factory() as db:
            numbers = (
                await db.execute(select(RoundModel.round_number).order_by(RoundModel.round_number))
            ).scalars().all()
        assert numbers == [1, 2, 3]


class TestFatalConditions:
    @pytest.mark.asyncio
    async def test_invalid_session_fails_run(self, session_factory, fast_options, stored_user):
        client = FakeGeoGuessrClient(pages={None: AuthError("401", status_code=401)})

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.phase == SyncPhase.FAILED
        assert result.success is False
        assert result.errors[0].identifier == "feed"
        async with session_factory() as db:
            user = await db.get(UserModel, "user-1")
        assert user.last_sync is None

    @pytest.mark.asyncio
    async def test_feed_unavailable_fails_run(self, session_factory, fast_options):
        client = FakeGeoGuessrClient(pages={None: TransientFetchError("timeout")})

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.phase == SyncPhase.FAILED
        assert result.items_processed == 0

    @pytest.mark.asyncio
    async def test_auth_error_mid_run_stops_processing(self, session_factory, fast_options):
        client = FakeGeoGuessrClient(
            pages={None: feed_page("g1", "g2", "g3")},
            details={
                "g1": game_detail("g1"),
                "g2": AuthError("403", status_code=403),
                "g3": game_detail("g3"),
            },
        )

        result = await _service(client, session_factory, fast_options).run("user-1")

        assert result.phase == SyncPhase.FAILED
        assert result.items_created == 1
        assert client.detail_calls == ["g1", "g2"]


class TestCancellationAndProgress:
    @pytest.mark.asyncio
    async def test_cancel_is_observed_between_games(self, session_factory, fast_options):
        cancel = asyncio.Event()
        tokens = ["g1", "g2", "g3"]
        client = FakeGeoGuessrClient(pages={None: feed_page(*tokens)}, details={t: game_detail(t) for t in tokens})

        def observer(event):
            if event.phase == SyncPhase.PROCESSING_GAMES and event.processed_count == 1:
                cancel.set()

        result = await _service(
            client, session_factory, fast_options, observer=observer, cancel_event=cancel
        ).run("user-1")

        assert result.phase == SyncPhase.CANCELLED
        assert result.items_created == 1
        # La partida en curso termina completa antes de cortar
        assert await _count(session_factory, RoundModel) == 5
        assert client.detail_calls == ["g1"]

    @pytest.mark.asyncio
    async def test_progress_events_cover_every_phase(self, session_factory, fast_options):
        events = []
        client = FakeGeoGuessrClient(
            pages={None: feed_page("g1", "g2")},
            details={"g1": game_detail("g1"), "g2": game_detail("g2")},
        )

        await _service(client, session_factory, fast_options, observer=events.append).run("user-1")

        phases = [e.phase for e in events]
        assert phases[0] == SyncPhase.STARTING
        assert SyncPhase.FETCHING_FEED in phases
        assert phases[-1] == SyncPhase.COMPLETED
        per_game = [e for e in events if e.phase == SyncPhase.PROCESSING_GAMES and e.processed_count > 0]
        assert [(e.processed_count, e.total_count) for e in per_game] == [(1, 2), (2, 2)]
