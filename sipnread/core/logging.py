"""Configuration de logging basée sur structlog.

Objectif du module
------------------
- Logs console lisibles en développement, JSON une ligne par événement ailleurs.
- Fusionner le contexte de requête (request_id, user) posé par les middlewares.
"""

import logging
import sys

import structlog


def setup_logging(level: int = logging.DEBUG, json_logs: bool = False):
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str):
    """Logger structlog lié à un composant nommé (`component=...` dans chaque événement)."""
    return structlog.get_logger(component).bind(component=component)
