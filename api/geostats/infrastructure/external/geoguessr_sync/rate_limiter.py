"""
Limitador de ritmo (token bucket) para las requests del sync.

Es un auto-limite fijo para no sobrecargar GeoGuessr, no una reacción a
un rate limit señalado por el servidor (eso lo maneja el cliente con 429).

El reloj y la función de espera son inyectables para testear sin
esperas reales.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """
    Token bucket async.

    - interval_s: tiempo para reponer un token (1 / tasa)
    - capacity: ráfaga máxima; con capacity=1 equivale a un intervalo
      mínimo entre llamadas consecutivas.

    El bucket arranca lleno, por lo que la primera llamada no espera.
    """

    def __init__(
        self,
        interval_s: float,
        *,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval_s < 0:
            raise ValueError("interval_s no puede ser negativo")
        if capacity < 1:
            raise ValueError("capacity debe ser >= 1")
        self._interval_s = interval_s
        self._capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated_at = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._updated_at = now
        if self._interval_s == 0:
            self._tokens = float(self._capacity)
            return
        self._tokens = min(float(self._capacity), self._tokens + elapsed / self._interval_s)

    async def acquire(self) -> float:
        """
        Consume un token, esperando si el bucket está vacío.

        Returns:
            Segundos esperados (0.0 si había token disponible).
        """
        self._refill()
        waited = 0.0
        if self._tokens < 1:
            waited = (1 - self._tokens) * self._interval_s
            await self._sleep(waited)
            self._refill()
        self._tokens = max(0.0, self._tokens - 1)
        return waited
