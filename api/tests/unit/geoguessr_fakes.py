"""
Dobles de prueba y builders de payloads de GeoGuessr compartidos por los tests.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from geostats.infrastructure.external.geoguessr_sync.types import FeedEntry, FeedPage


def completion_entry(*tokens: str, batch: bool = False) -> FeedEntry:
    """Entrada de tipo 1; con batch=True el payload es un array con wrappers {payload: ...}."""
    if batch:
        items = [{"type": 1, "payload": json.dumps({"gameToken": t, "mapName": "World"})} for t in tokens]
        return FeedEntry(type=1, payload=json.dumps(items), time="2024-01-01T00:00:00Z")
    (token,) = tokens
    payload = {"gameToken": token, "mapSlug": "world", "mapName": "World", "points": 20000, "gameMode": "Standard"}
    return FeedEntry(type=1, payload=json.dumps(payload), time="2024-01-01T00:00:00Z")


def feed_page(*tokens: str, next_cursor: Optional[str] = None) -> FeedPage:
    """Página con una entrada de partida terminada por token."""
    return FeedPage(entries=tuple(completion_entry(t) for t in tokens), next_cursor=next_cursor)


def game_detail(token: str, *, rounds: int = 5, score: int = 4000, country: str = "se") -> dict[str, Any]:
    """Payload de /api/v3/games/{token} con N rondas completas."""
    return {
        "token": token,
        "mode": "standard",
        "state": "finished",
        "roundCount": rounds,
        "timeLimit": 0,
        "forbidMoving": False,
        "forbidZooming": False,
        "forbidRotating": False,
        "map": "world",
        "mapName": "A Diverse World",
        "panoramaProvider": 1,
        "bounds": {"min": {"lat": -60.0, "lng": -180.0}, "max": {"lat": 80.0, "lng": 180.0}},
        "rounds": [
            {
                "lat": 59.3 + i,
                "lng": 18.0 + i,
                "panoId": f"pano-{i}",
                "heading": 90.0,
                "pitch": 0.0,
                "zoom": 0.0,
                "streakLocationCode": country,
                "startTime": "2024-03-01T10:00:00.000Z",
            }
            for i in range(rounds)
        ],
        "player": {
            "totalScore": {"amount": str(score * rounds), "unit": "points"},
            "guesses": [
                {
                    "lat": 59.3 + i,
                    "lng": 18.0 + i,
                    "roundScoreInPoints": score,
                    "distanceInMeters": 1500.0,
                    "time": 30,
                    "streakLocationCode": country.upper(),
                }
                for i in range(rounds)
            ],
        },
    }


class FakeGeoGuessrClient:
    """
    Cliente en memoria con la misma interfaz que GeoGuessrClient.

    pages: cursor -> FeedPage | Exception | lista de esos (una salida por llamada)
    details: token -> dict | Exception
    """

    def __init__(
        self,
        pages: Optional[dict[Optional[str], Any]] = None,
        details: Optional[dict[str, Any]] = None,
        *,
        connected: bool = True,
    ) -> None:
        self.pages = dict(pages or {})
        self.details = dict(details or {})
        self.connected = connected
        self.page_calls: list[Optional[str]] = []
        self.detail_calls: list[str] = []
        self.closed = False

    @staticmethod
    def _resolve(outcome: Any) -> Any:
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def list_page(self, cursor: Optional[str] = None) -> FeedPage:
        self.page_calls.append(cursor)
        return self._resolve(self.pages[cursor])

    def fetch_detail(self, game_token: str) -> dict[str, Any]:
        self.detail_calls.append(game_token)
        return self._resolve(self.details[game_token])

    def test_connection(self) -> bool:
        return self.connected

    def close(self) -> None:
        self.closed = True


class InfiniteFeedClient(FakeGeoGuessrClient):
    """Feed sin fin: cada página trae cursor siguiente; page_tokens(n) define su contenido."""

    def __init__(self, page_tokens) -> None:
        super().__init__()
        self._page_tokens = page_tokens

    def list_page(self, cursor: Optional[str] = None) -> FeedPage:
        self.page_calls.append(cursor)
        number = 1 if cursor is None else int(cursor.split("-")[1])
        return feed_page(*self._page_tokens(number), next_cursor=f"c-{number + 1}")
