"""Rate limiting QPS par client.

Le client est identifié par le jeton `Authorization` s'il est présent, sinon par l'adresse
distante. Limite configurable via `RATE_LIMIT_CLIENT_QPS` (défaut 5).

En cas de blocage: 429 dans l'enveloppe d'erreur standard et incrément du compteur
`rate_limit_blocks_total{reason="qps"}`.
"""

from __future__ import annotations

import hashlib
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from sipnread.apigw.errors import create_error_response
from sipnread.app.metrics import RATE_LIMIT_BLOCKS
from sipnread.core.settings import get_settings


class _Limiter:
    def __init__(self, qps: int) -> None:
        self.qps = max(1, int(qps))
        # client -> (window_start_monotonic, count)
        self._buckets: dict[str, tuple[float, int]] = {}

    def allow(self, client: str) -> bool:
        now = time.perf_counter()
        start, count = self._buckets.get(client, (now, 0))
        # fenêtre glissante d'une seconde sur horloge monotone
        if now - start >= 1.0:
            start, count = now, 0
        if count >= self.qps:
            self._buckets[client] = (start, count)
            return False
        self._buckets[client] = (start, count + 1)
        return True


def client_key(request: Request) -> str:
    auth = request.headers.get("Authorization")
    if auth:
        return "tok:" + hashlib.sha256(auth.encode()).hexdigest()[:16]
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, qps: int | None = None) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        settings = get_settings()
        self.exempt_health = settings.RATE_LIMIT_EXEMPT_HEALTH
        self.limiter = _Limiter(qps=qps or settings.RATE_LIMIT_CLIENT_QPS or 5)

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        path = request.url.path
        if path.startswith("/metrics"):
            return await call_next(request)
        if path.startswith("/health") and self.exempt_health:
            return await call_next(request)
        if not self.limiter.allow(client_key(request)):
            RATE_LIMIT_BLOCKS.labels(reason="qps").inc()
            return create_error_response(
                429, "RATE_LIMITED", "rate limit exceeded", getattr(request.state, "trace_id", None)
            )
        return await call_next(request)
