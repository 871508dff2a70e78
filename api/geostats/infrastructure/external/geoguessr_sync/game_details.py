"""
Descarga y normalización del detalle de partida.

Transforma el payload de /api/v3/games/{token} en:
- un GameRecord (registro padre)
- una lista ordenada de RoundRecord (una por ronda)

Las rondas se arman emparejando por posición la lista "rounds" (ubicación
real) con "player.guesses": el índice i de ambas forma la ronda i+1. Si
falta alguno de los dos en un índice, esa ronda se omite con warning.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional

from loguru import logger

from .errors import AuthError, DetailError, GeoGuessrSyncError
from .geoguessr_client import GeoGuessrClient
from .types import (
    MAX_ROUND_SCORE,
    MAX_ROUNDS,
    GameRecord,
    NormalizedGame,
    RoundRecord,
    ensure_utc,
    utc_now,
)


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(float(value))


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def normalize_country_code(value: Any) -> Optional[str]:
    """Códigos de país en mayúsculas; vacío o None -> None."""
    if not value or not isinstance(value, str):
        return None
    return value.strip().upper() or None


def _parse_start_time(rounds: list[Any]) -> Optional[datetime]:
    if not rounds or not isinstance(rounds[0], dict):
        return None
    raw = rounds[0].get("startTime")
    if not raw:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(str(raw).replace("Z", "+00:00")))
    except ValueError:
        return None


def _build_round(number: int, round_data: dict[str, Any], guess: dict[str, Any]) -> RoundRecord:
    actual_code = normalize_country_code(round_data.get("streakLocationCode"))
    guess_code = normalize_country_code(guess.get("streakLocationCode"))
    distance_meters = float(guess.get("distanceInMeters") or 0)
    score = _to_int(guess.get("roundScoreInPoints"))
    if not 0 <= score <= MAX_ROUND_SCORE:
        raise ValueError(f"score fuera de rango: {score}")

    return RoundRecord(
        round_number=number,
        actual_lat=float(round_data["lat"]),
        actual_lng=float(round_data["lng"]),
        actual_country_code=actual_code,
        guess_lat=float(guess["lat"]),
        guess_lng=float(guess["lng"]),
        country_guess=guess_code,
        score=score,
        distance_meters=distance_meters,
        distance_km=distance_meters / 1000,
        time_taken=_to_int(guess.get("time")),
        is_correct_country=actual_code is not None and actual_code == guess_code,
        pano_id=round_data.get("panoId"),
        heading=_to_float(round_data.get("heading")),
        pitch=_to_float(round_data.get("pitch")),
        zoom=_to_float(round_data.get("zoom")),
    )


def normalize_game_details(details: dict[str, Any], *, synced_at: datetime) -> NormalizedGame:
    """
    Normaliza el payload de detalle a registros listos para persistir.

    Raises:
        KeyError / ValueError / TypeError si faltan campos del registro padre.
    """
    token = details["token"]
    if not token or not isinstance(token, str):
        raise ValueError("detalle sin token")

    player = details.get("player") or {}
    total_score = player.get("totalScore") or {}
    bounds = details.get("bounds") or {}
    bounds_min = bounds.get("min") or {}
    bounds_max = bounds.get("max") or {}
    rounds = details.get("rounds") or []
    guesses = player.get("guesses") or []
    map_id = str(details.get("map") or "")

    game = GameRecord(
        game_token=token,
        game_mode=str(details.get("mode") or "standard"),
        map_id=map_id,
        map_name=str(details.get("mapName") or map_id),
        total_score=_to_int(total_score.get("amount")),
        played_at=_parse_start_time(rounds) or ensure_utc(synced_at),
        game_state=str(details.get("state") or "finished"),
        round_count=_to_int(details.get("roundCount"), default=len(rounds) or MAX_ROUNDS),
        time_limit=_to_int(details.get("timeLimit")),
        forbid_moving=bool(details.get("forbidMoving")),
        forbid_zooming=bool(details.get("forbidZooming")),
        forbid_rotating=bool(details.get("forbidRotating")),
        panorama_provider=_to_int(details.get("panoramaProvider"), default=1),
        bounds_min_lat=_to_float(bounds_min.get("lat")),
        bounds_min_lng=_to_float(bounds_min.get("lng")),
        bounds_max_lat=_to_float(bounds_max.get("lat")),
        bounds_max_lng=_to_float(bounds_max.get("lng")),
        details_fetched=True,
    )

    round_records: list[RoundRecord] = []
    warnings: list[str] = []
    for index in range(max(len(rounds), len(guesses))):
        number = index + 1
        if number > MAX_ROUNDS:
            warnings.append(f"{token}: {max(len(rounds), len(guesses))} rondas, se ignoran las posteriores a {MAX_ROUNDS}")
            break

        round_data = rounds[index] if index < len(rounds) else None
        guess = guesses[index] if index < len(guesses) else None
        if not isinstance(round_data, dict) or not isinstance(guess, dict):
            warnings.append(f"{token}: falta ubicación real o guess en ronda {number}")
            continue

        try:
            round_records.append(_build_round(number, round_data, guess))
        except (KeyError, TypeError, ValueError) as e:
            warnings.append(f"{token}: ronda {number} inválida ({e})")

    return NormalizedGame(game=game, rounds=tuple(round_records), warnings=tuple(warnings))


class GameDetailFetcher:
    """
    Obtiene el detalle de una partida y lo normaliza.

    Cualquier fallo de red/API o de parseo se reporta como DetailError
    (etiquetado con el token). AuthError se propaga: la sesión es inválida
    para todo el run, no solo para esta partida.
    """

    def __init__(
        self,
        client: GeoGuessrClient,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._clock = clock

    async def fetch_and_normalize(self, game_token: str) -> NormalizedGame:
        try:
            details = await asyncio.to_thread(self._client.fetch_detail, game_token)
        except AuthError:
            raise
        except GeoGuessrSyncError as e:
            raise DetailError(game_token, str(e)) from e

        try:
            normalized = normalize_game_details(details, synced_at=self._clock())
        except (KeyError, TypeError, ValueError) as e:
            raise DetailError(game_token, f"payload de detalle inválido ({type(e).__name__}: {e})") from e

        if normalized.game.game_token != game_token:
            raise DetailError(
                game_token,
                f"el detalle corresponde a otra partida ({normalized.game.game_token})",
            )

        for warning in normalized.warnings:
            logger.warning(f"[geo-sync] {warning}")

        return normalized
