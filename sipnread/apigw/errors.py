"""Gestion standardisée des erreurs API avec enveloppes d'erreur.

Toutes les erreurs sortent sous la même enveloppe JSON:
`{success: false, code, message, trace_id, details?}`. Les erreurs du domaine sont
projetées sur un statut HTTP par leur classe.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from sipnread.core.logging import get_logger
from sipnread.domain.errors import (
    EmptyOutputError,
    InvalidTransitionError,
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    RemoteCallError,
    SchemaValidationError,
    SipNReadError,
    ValidationError,
)

log = get_logger("apigw")

# ordre significatif: la première classe correspondante l'emporte
DOMAIN_STATUS: tuple[tuple[type[SipNReadError], int], ...] = (
    (ValidationError, 422),
    (SchemaValidationError, 502),
    (EmptyOutputError, 502),
    (RemoteCallError, 503),
    (NotAuthenticatedError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
)

HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
}


@dataclass
class ErrorEnvelope:
    """Enveloppe d'erreur standard des réponses API."""

    code: str
    message: str
    trace_id: str | None = None
    details: dict[str, Any] | None = None


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    trace_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Construit une réponse d'erreur standardisée."""
    envelope = ErrorEnvelope(code=code, message=message, trace_id=trace_id, details=details)
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "code": envelope.code,
            "message": envelope.message,
            "trace_id": envelope.trace_id,
            **({"details": envelope.details} if envelope.details else {}),
        },
    )


def extract_trace_id(request: Request) -> str | None:
    """Trace id: en-tête `X-Trace-ID`, sinon l'id de requête posé par le middleware."""
    trace_id = request.headers.get("X-Trace-ID")
    if trace_id:
        return trace_id
    return getattr(request.state, "trace_id", None)


def status_for(exc: SipNReadError) -> int:
    for cls, status in DOMAIN_STATUS:
        if isinstance(exc, cls):
            return status
    return 500


def handle_domain_error(request: Request, exc: SipNReadError) -> JSONResponse:
    """Projette une erreur du domaine sur l'enveloppe standard."""
    status = status_for(exc)
    trace_id = extract_trace_id(request)
    log.warning(
        "domain_error",
        code=exc.code,
        status_code=status,
        error_message=exc.message,
        path=request.url.path,
    )
    return create_error_response(status, exc.code, exc.message, trace_id, exc.details)


def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    """Enveloppe standard pour les HTTPException FastAPI."""
    code = HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    log.warning("http_exception", code=code, status_code=exc.status_code, path=request.url.path)
    response = create_error_response(exc.status_code, code, str(exc.detail), extract_trace_id(request))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Erreurs de validation du corps de requête: premier champ en cause."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "<root>"
    return create_error_response(
        422,
        ValidationError.code,
        f"{field}: {first.get('msg', 'invalid')}",
        extract_trace_id(request),
        {"field": field, "constraint": str(first.get("type", "invalid"))},
    )


def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
    """Erreur inattendue: 500 sans divulguer le détail."""
    log.error(
        "unexpected_error",
        exception_type=type(exc).__name__,
        path=request.url.path,
        exc_info=exc,
    )
    return create_error_response(
        500, "INTERNAL_ERROR", "An unexpected error occurred", extract_trace_id(request)
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SipNReadError, handle_domain_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_generic_exception)
