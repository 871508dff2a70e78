"""
Taxonomía de errores del sync con GeoGuessr.

Política de propagación:
- AuthError y FeedUnavailableError terminan el run (estado failed).
- TransientFetchError se reintenta en el cliente; si se agota, el caller
  decide (página -> PageError, detalle -> DetailError).
- DetailError se registra por partida y el run continúa.
"""

from __future__ import annotations


class GeoGuessrSyncError(RuntimeError):
    """Error base del pipeline GeoGuessr."""


class GeoGuessrApiError(GeoGuessrSyncError):
    """Respuesta no recuperable de la API (4xx distinto de auth, JSON inválido)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(GeoGuessrApiError):
    """Cookie de sesión inválida o expirada (401/403). No se reintenta."""


class TransientFetchError(GeoGuessrSyncError):
    """Fallo de red, timeout, 429 o 5xx que persistió tras los reintentos."""


class FeedUnavailableError(GeoGuessrSyncError):
    """No se pudo obtener ninguna página del feed."""


class PayloadParseError(GeoGuessrSyncError):
    """El payload de una entrada del feed no es JSON válido o no tiene la forma esperada."""


class DetailError(GeoGuessrSyncError):
    """Fallo al obtener o normalizar el detalle de una partida concreta."""

    def __init__(self, game_token: str, message: str) -> None:
        super().__init__(f"Fallo procesando partida {game_token}: {message}")
        self.game_token = game_token
        self.reason = message
