"""
Métriques Prometheus pour l'application.

Ce module définit les métriques HTTP, celles des opérations d'interprétation (appels de flow,
erreurs par code, latence, tokens), du garde-fou LLM, du rate limit et du cycle de vie des
demandes de lecture personnalisée.
"""

import time

from fastapi import APIRouter, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

# Flows d'interprétation
FLOW_REQUESTS = Counter(
    "flow_requests_total",
    "Total generative flow executions",
    ["flow", "model"],
)
FLOW_ERRORS = Counter(
    "flow_errors_total",
    "Total generative flow failures",
    ["flow", "code"],
)
FLOW_LATENCY = Histogram(
    "flow_latency_seconds",
    "Latency of generative flow executions",
    ["flow", "model"],
)
LLM_TOKENS_TOTAL = Counter(
    "llm_tokens_total",
    "Accumulated LLM tokens",
    ["flow", "model"],
)
UNCONFIRMED_SYMBOLS = Counter(
    "flow_unconfirmed_user_symbols_total",
    "User-proposed symbols not visually confirmed by the model",
)

# LLM Guard metrics
LLM_GUARD_BLOCKS = Counter(
    "llm_guard_block_total",
    "Total requests blocked by LLM Guard",
    ["rule"],
)
LLM_GUARD_PII_MASKED = Counter(
    "llm_guard_pii_masked_total",
    "Total PII masking operations performed on outputs",
    ["kind"],
)

# Security/quotas metrics
RATE_LIMIT_BLOCKS = Counter(
    "rate_limit_blocks_total",
    "Total requests blocked by rate limiting",
    ["reason"],
)

# Workflow lecture personnalisée
REQUEST_TRANSITIONS = Counter(
    "personalization_transitions_total",
    "Status transitions of personalization requests",
    ["from_status", "to_status"],
)
TRANSCRIPTIONS = Counter(
    "transcriptions_total",
    "Transcription jobs by outcome",
    ["outcome"],
)
STORAGE_UPLOADS = Counter(
    "storage_uploads_total",
    "Objects written to storage",
    ["kind"],
)


@metrics_router.get("/metrics")
def metrics():
    """Expose les métriques Prometheus au format texte."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def route_label(request: Request) -> str:
    """Gabarit de la route (`/readings/{reading_id}`) plutôt que le chemin, pour borner les labels."""
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware Prometheus: comptage des requêtes et latence par gabarit de route."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        route = route_label(request)
        REQUEST_COUNT.labels(request.method, route, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
        return response
