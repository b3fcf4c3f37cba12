"""
Límite de peticiones por cliente con ventana fija.

Cada clave (la IP normalizada) tiene un contador que se reinicia cuando
vence su ventana. Estado en memoria del proceso: en serverless cada
instancia cuenta por separado.
"""
import logging
import math
import time
from typing import Callable, Dict, NamedTuple, Tuple

logger = logging.getLogger(__name__)


class RateLimitResult(NamedTuple):
    allowed: bool
    limit: int
    remaining: int
    reset_after: float

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset_after))


class RateLimiter:
    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        # clave -> (inicio de la ventana, peticiones en la ventana)
        self._windows: Dict[str, Tuple[float, int]] = {}

    def _prune(self, now: float) -> None:
        expired = [key for key, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        start, count = self._windows.get(key, (now, 0))
        if now - start >= self.window_seconds:
            start, count = now, 0
        # Limpieza perezosa para que el mapa no crezca sin límite
        if len(self._windows) > 10000:
            self._prune(now)

        count += 1
        self._windows[key] = (start, count)
        reset_after = max(0.0, self.window_seconds - (now - start))
        allowed = count <= self.max_requests
        if not allowed and count == self.max_requests + 1:
            logger.warning(f"⛔ Límite de peticiones alcanzado para {key}")
        return RateLimitResult(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_after=reset_after,
        )

    def reset(self) -> None:
        self._windows.clear()
