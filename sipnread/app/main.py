"""
Application principale FastAPI.

Ce module assemble tous les composants de l'application : middlewares, gestion des erreurs,
routes et métriques.

Responsabilités du module:
- Initialiser le logging structuré et le tracing
- Construire l'application FastAPI avec son titre/debug
- Ajouter les middlewares (request id, rate limit, métriques, timing)
- Monter les routers (santé, auth, opérations d'interprétation, lectures, lectures
  personnalisées, profil, dépôts d'images, contenus, métriques)
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from sipnread.api.routes_auth import router as auth_router
from sipnread.api.routes_content import router as content_router
from sipnread.api.routes_flows import router as flows_router
from sipnread.api.routes_health import router as health_router
from sipnread.api.routes_personalization import router as personalization_router
from sipnread.api.routes_profile import router as profile_router
from sipnread.api.routes_readings import router as readings_router
from sipnread.api.routes_uploads import router as uploads_router
from sipnread.apigw.errors import register_error_handlers
from sipnread.app.metrics import PrometheusMiddleware, metrics_router
from sipnread.app.middleware_rate_limit import RateLimitMiddleware
from sipnread.app.tracing import setup_tracing
from sipnread.core.container import container
from sipnread.core.logging import setup_logging
from sipnread.middlewares.request_id import RequestIDMiddleware
from sipnread.middlewares.timing import TimingMiddleware


def create_app() -> FastAPI:
    """
    Construit et retourne l'application FastAPI prête à l'usage.

    Étapes:
    - Configure le logging structuré (structlog, JSON hors dev) et le tracing OTLP optionnel
    - Ajoute les middlewares; le request id est posé en premier (middleware le plus externe)
    - Enregistre les gestionnaires d'erreurs (enveloppe standard)
    - Publie les routes
    """
    settings = container.settings
    setup_logging(
        level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
        json_logs=settings.APP_ENV not in ("dev", "test"),
    )
    setup_tracing(settings)
    app = FastAPI(title=settings.APP_NAME, debug=settings.APP_DEBUG)
    app.add_middleware(TimingMiddleware)
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(flows_router)
    app.include_router(readings_router)
    app.include_router(personalization_router)
    app.include_router(profile_router)
    app.include_router(uploads_router)
    app.include_router(content_router)
    app.include_router(metrics_router)
    return app


app = create_app()
