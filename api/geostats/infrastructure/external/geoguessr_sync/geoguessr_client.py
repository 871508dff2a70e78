"""
Cliente mínimo de la API web de GeoGuessr (sin SDKs externos).

Requisitos cubiertos:
- requests
- dos tipos de request: página del feed privado y detalle de partida
- cookie de sesión adjunta en cada llamada
- reintentos con backoff exponencial acotado (red, timeout, 429, 5xx)
- 401/403 fallan de inmediato: la sesión es inválida y reintentar gasta cuota
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests
from loguru import logger

from .errors import AuthError, GeoGuessrApiError, TransientFetchError
from .types import FeedPage

FEED_PATH = "/api/v4/feed/private"
GAME_DETAILS_PATH = "/api/v3/games/{token}"

_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass(frozen=True)
class GeoGuessrCredentials:
    """Cookie de sesión completa (incluye _ncfa). Solo lectura durante el run."""

    session_cookie: str

    def __repr__(self) -> str:
        return "GeoGuessrCredentials(session_cookie=***)"


class GeoGuessrClient:
    """
    Cliente HTTP de GeoGuessr.

    Importante:
    - No interpreta el detalle de partida: lo retorna como dict; la
      normalización vive en game_details.py.
    - Es síncrono (requests); el orquestador lo ejecuta en threads para no
      bloquear el event loop.
    """

    def __init__(
        self,
        credentials: GeoGuessrCredentials,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = "https://www.geoguessr.com",
        timeout_s: float = 30,
        max_retries: int = 2,
        min_backoff_s: float = 1.0,
        max_backoff_s: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._sleep = sleep
        self._session = session or requests.Session()

    def list_page(self, cursor: Optional[str] = None) -> FeedPage:
        """
        Obtiene una página del feed privado.

        - cursor None -> primera página
        - cursor opaco -> página siguiente (paginationToken)
        """
        query: list[tuple[str, Any]] = []
        if cursor:
            query.append(("paginationToken", cursor))

        payload = self._request_json("GET", f"{self._base_url}{FEED_PATH}", query=query)
        if not isinstance(payload, dict):
            raise GeoGuessrApiError("El feed devolvió un cuerpo que no es un objeto JSON")
        return FeedPage.from_json(payload)

    def fetch_detail(self, game_token: str) -> dict[str, Any]:
        """Obtiene el detalle completo de una partida (rondas + guesses)."""
        if not game_token:
            raise ValueError("game_token no puede estar vacío")

        url = f"{self._base_url}{GAME_DETAILS_PATH.format(token=game_token)}"
        payload = self._request_json("GET", url, query=[])
        if not isinstance(payload, dict):
            raise GeoGuessrApiError(
                f"El detalle de {game_token} no es un objeto JSON"
            )
        return payload

    def test_connection(self) -> bool:
        """
        Verifica que la cookie de sesión sea utilizable pidiendo la primera página.

        Solo AuthError se traduce a False: cualquier otro fallo se propaga
        porque no dice nada sobre la validez de la sesión.
        """
        try:
            page = self.list_page()
        except AuthError as e:
            logger.warning(f"[geo-sync] Conexión rechazada por GeoGuessr: {e}")
            return False
        logger.info(f"[geo-sync] Conexión OK, {len(page.entries)} entradas en la primera página")
        return True

    def close(self) -> None:
        self._session.close()

    def _backoff_seconds(self, attempt: int, retry_after: Optional[str]) -> float:
        if retry_after:
            try:
                return min(self._max_backoff_s, float(retry_after))
            except ValueError:
                pass
        # Exponencial simple + jitter proporcional
        base = min(self._max_backoff_s, self._min_backoff_s * (2**attempt))
        return base + (0.15 * base)

    def _request_json(
        self, method: str, url: str, *, query: list[tuple[str, Any]]
    ) -> Any:
        """
        Request HTTP con backoff.

        Estrategia:
        - Cualquier requests.RequestException (incluye cuerpo cortado a mitad): reintento con backoff.
        - 429: respeta Retry-After si existe, si no exponencial con jitter.
        - 5xx: exponencial con jitter.
        - 401/403: AuthError inmediato.
        - Otros 4xx: GeoGuessrApiError inmediato.
        """
        headers = dict(_DEFAULT_HEADERS)
        headers["Referer"] = f"{self._base_url}/"
        headers["Cookie"] = self._creds.session_cookie

        last_error = ""
        for attempt in range(self._max_retries + 1):
            retry_after: Optional[str] = None
            try:
                logger.debug(f"[geo-sync] {method} {url} (intento {attempt + 1})")
                resp = self._session.request(
                    method=method,
                    url=url,
                    params=query,
                    headers=headers,
                    timeout=self._timeout_s,
                )
            except requests.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if 200 <= resp.status_code < 300:
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise GeoGuessrApiError(
                            f"Respuesta no es JSON válido ({url})",
                            status_code=resp.status_code,
                        ) from e

                if resp.status_code in (401, 403):
                    raise AuthError(
                        f"GeoGuessr rechazó la sesión ({resp.status_code}); actualiza la cookie",
                        status_code=resp.status_code,
                    )

                # Errores no recuperables
                if resp.status_code != 429 and not 500 <= resp.status_code < 600:
                    raise GeoGuessrApiError(
                        f"GeoGuessr request falló {resp.status_code}: {resp.text[:500]}",
                        status_code=resp.status_code,
                    )

                last_error = f"HTTP {resp.status_code}"
                retry_after = resp.headers.get("Retry-After")

            # Errores recuperables
            if attempt >= self._max_retries:
                break

            sleep_s = self._backoff_seconds(attempt, retry_after)
            logger.warning(
                f"[geo-sync] {last_error} en {url}; reintento {attempt + 1}/{self._max_retries} en {sleep_s:.2f}s"
            )
            self._sleep(sleep_s)

        raise TransientFetchError(
            f"GeoGuessr no respondió tras {self._max_retries} reintentos ({url}): {last_error}"
        )
