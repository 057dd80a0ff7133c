"""Middleware Starlette pour mesurer le temps de traitement des requêtes.

Ajoute l'en-tête `X-Process-Time-ms` et journalise les requêtes plus lentes que le seuil
(les appels au modèle génératif dominent la latence des opérations d'interprétation).
"""

import time
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from sipnread.core.logging import get_logger

log = get_logger("timing")


class TimingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self, app: ASGIApp, header_name: str = "X-Process-Time-ms", slow_ms: int = 10_000
    ) -> None:
        super().__init__(app)
        self.header_name = header_name
        self.slow_ms = slow_ms

    async def dispatch(self, request, call_next: Callable):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        response.headers[self.header_name] = str(elapsed_ms)
        if elapsed_ms >= self.slow_ms:
            log.warning(
                "slow_request", path=request.url.path, method=request.method, elapsed_ms=elapsed_ms
            )
        return response
