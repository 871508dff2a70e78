"""
Paginador del feed privado de GeoGuessr.

Recorre páginas con el cursor opaco (paginationToken), extrae los tokens
de partida de las entradas de tipo "partida terminada" y deduplica entre
páginas.

Condiciones de corte:
- la página no trae cursor (fin real del feed)
- se alcanzó max_pages
- N páginas consecutivas sin tokens nuevos (el resto del feed ya es conocido)
- se acumularon max_page_errors páginas fallidas
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from .errors import AuthError, FeedUnavailableError, GeoGuessrSyncError, PayloadParseError
from .geoguessr_client import GeoGuessrClient
from .rate_limiter import RateLimiter
from .sync_config import SyncOptions
from .types import BatchPayload, FeedGame, FeedPage, FeedPayload, PageError, SinglePayload

STOP_END_OF_FEED = "end_of_feed"
STOP_MAX_PAGES = "max_pages"
STOP_NO_NEW_ITEMS = "no_new_items"
STOP_PAGE_ERROR = "page_error"
STOP_CANCELLED = "cancelled"


def _game_from_json(obj: Any) -> Optional[FeedGame]:
    if not isinstance(obj, dict):
        return None
    token = obj.get("gameToken")
    if not token or not isinstance(token, str):
        return None
    points = obj.get("points")
    return FeedGame(
        game_token=token,
        map_slug=obj.get("mapSlug"),
        map_name=obj.get("mapName"),
        points=int(points) if isinstance(points, (int, float)) else None,
        game_mode=obj.get("gameMode"),
    )


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError as e:
            raise PayloadParseError(f"Payload no es JSON válido: {raw[:200]!r}") from e
    return raw


def parse_feed_payload(raw: Any) -> FeedPayload:
    """
    Resuelve el payload de una entrada del feed a SinglePayload o BatchPayload.

    - objeto JSON -> SinglePayload (debe traer gameToken)
    - array JSON -> BatchPayload; cada item es la partida o un wrapper
      {"payload": partida}. Items sin gameToken se descartan.
    """
    data = _decode(raw)

    if isinstance(data, list):
        games = []
        for item in data:
            inner = item.get("payload", item) if isinstance(item, dict) else item
            game = _game_from_json(_decode(inner))
            if game is not None:
                games.append(game)
        return BatchPayload(games=tuple(games))

    if isinstance(data, dict):
        game = _game_from_json(data)
        if game is None:
            raise PayloadParseError("Payload de partida sin gameToken")
        return SinglePayload(game=game)

    raise PayloadParseError(f"Forma de payload no soportada: {type(data).__name__}")


class FeedPaginator:
    """
    Recolecta los tokens de partida de todo el feed (o hasta el tope).

    Política ante fallos de página:
    - cada intento fallido (el cliente ya agotó sus reintentos) suma al
      contador de la página y se reintenta tras un cooldown más largo
    - al llegar a page_failure_limit se registra un PageError, la página
      cuenta contra max_pages y se sigue desde el mismo cursor tras el cooldown
    - al acumular max_page_errors PageError se deja de paginar conservando
      los tokens ya descubiertos
    - si nunca se obtuvo ninguna página, el run aborta con FeedUnavailableError
    - AuthError se propaga siempre
    """

    def __init__(
        self,
        client: GeoGuessrClient,
        *,
        options: SyncOptions,
        rate_limiter: Optional[RateLimiter] = None,
        cooldown: Callable[[float], Awaitable[None]] = asyncio.sleep,
        cancel_event: Optional[asyncio.Event] = None,
        on_page: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        self._client = client
        self._options = options
        self._rate_limiter = rate_limiter or RateLimiter(options.page_interval_s)
        self._cooldown = cooldown
        self._cancel_event = cancel_event
        self._on_page = on_page
        self.pages_processed = 0
        self.stop_reason: Optional[str] = None
        self.last_cursor: Optional[str] = None

    async def collect_all_identifiers(
        self,
        max_pages: Optional[int] = None,
        *,
        seen: Optional[set[str]] = None,
    ) -> tuple[list[str], list[PageError]]:
        """
        Recorre el feed y retorna (tokens nuevos en orden de descubrimiento, errores de página).

        Args:
            max_pages: tope de páginas; None usa options.max_pages
            seen: set de tokens ya vistos en el run (se muta)
        """
        if max_pages is None:
            max_pages = self._options.max_pages
        seen = seen if seen is not None else set()

        tokens: list[str] = []
        page_errors: list[PageError] = []
        cursor: Optional[str] = None
        empty_streak = 0
        failures = 0
        fetched_any = False
        self.pages_processed = 0
        self.stop_reason = None
        self.last_cursor = None

        logger.info(
            f"[geo-sync] Recorriendo feed (max_pages={max_pages if max_pages is not None else 'sin tope'})"
        )

        while True:
            if max_pages is not None and self.pages_processed + len(page_errors) >= max_pages:
                self.stop_reason = STOP_MAX_PAGES
                break
            if self._cancel_event is not None and self._cancel_event.is_set():
                self.stop_reason = STOP_CANCELLED
                break

            page_number = self.pages_processed + 1
            await self._rate_limiter.acquire()
            try:
                page = await asyncio.to_thread(self._client.list_page, cursor)
            except AuthError:
                raise
            except GeoGuessrSyncError as e:
                failures += 1
                if failures < self._options.page_failure_limit:
                    logger.warning(
                        f"[geo-sync] Fallo página {page_number} ({failures}/{self._options.page_failure_limit}): {e}. "
                        f"Reintentando en {self._options.failed_page_cooldown_s}s"
                    )
                    await self._cooldown(self._options.failed_page_cooldown_s)
                    continue
                if not fetched_any:
                    raise FeedUnavailableError(
                        f"No se pudo obtener la primera página del feed: {e}"
                    ) from e
                page_errors.append(PageError(page_number=page_number, cursor=cursor, message=str(e)))
                failures = 0
                if len(page_errors) >= self._options.max_page_errors:
                    logger.error(
                        f"[geo-sync] {len(page_errors)} páginas fallidas; se deja de paginar "
                        f"con {len(tokens)} tokens ya descubiertos"
                    )
                    self.stop_reason = STOP_PAGE_ERROR
                    break
                logger.error(
                    f"[geo-sync] Página {page_number} falló tras {self._options.page_failure_limit} intentos: {e}. "
                    f"Se retoma desde el último cursor en {self._options.failed_page_cooldown_s}s"
                )
                await self._cooldown(self._options.failed_page_cooldown_s)
                continue

            failures = 0
            fetched_any = True
            self.pages_processed += 1

            new_tokens = self._extract_new_tokens(page, seen)
            tokens.extend(new_tokens)
            logger.info(
                f"[geo-sync] Página {page_number}: {len(page.entries)} entradas, {len(new_tokens)} tokens nuevos"
            )
            if self._on_page is not None:
                self._on_page(self.pages_processed, len(tokens))

            if not new_tokens:
                empty_streak += 1
                if empty_streak >= self._options.empty_page_threshold:
                    logger.info(
                        f"[geo-sync] {empty_streak} páginas seguidas sin datos nuevos; se asume fin del feed"
                    )
                    self.stop_reason = STOP_NO_NEW_ITEMS
                    break
            else:
                empty_streak = 0

            if not page.next_cursor:
                logger.info("[geo-sync] Fin del feed (sin paginationToken)")
                self.stop_reason = STOP_END_OF_FEED
                break

            cursor = page.next_cursor
            self.last_cursor = cursor

        logger.info(
            f"[geo-sync] {len(tokens)} tokens únicos en {self.pages_processed} páginas (corte: {self.stop_reason})"
        )
        return tokens, page_errors

    @staticmethod
    def _extract_new_tokens(page: FeedPage, seen: set[str]) -> list[str]:
        new_tokens: list[str] = []
        for entry in page.entries:
            if not entry.is_game_completion:
                continue
            try:
                payload = parse_feed_payload(entry.payload)
            except PayloadParseError as e:
                logger.warning(f"[geo-sync] Entrada ignorada: {e}")
                continue
            for game in payload.games:
                if game.game_token in seen:
                    continue
                seen.add(game.game_token)
                new_tokens.append(game.game_token)
        return new_tokens
