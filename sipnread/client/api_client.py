"""
Client HTTP de l'API Sip-n-Read (httpx).

Chaque appel renvoie le corps JSON décodé ou lève une erreur typée reconstruite depuis
l'enveloppe d'erreur (`code`, `message`): `ValidationError`, `SchemaValidationError`,
`EmptyOutputError`, `NotAuthenticatedError` ou, à défaut, `RemoteCallError`.
"""

from __future__ import annotations

import base64
from typing import Any

import httpx

from sipnread.core.logging import get_logger
from sipnread.domain.errors import (
    EmptyOutputError,
    NotAuthenticatedError,
    RemoteCallError,
    SchemaValidationError,
    SipNReadError,
    ValidationError,
)

log = get_logger("api_client")


def _raise_for_envelope(resp: httpx.Response) -> None:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    code = body.get("code", "")
    message = body.get("message") or resp.text[:200] or f"HTTP {resp.status_code}"
    details = body.get("details") or {}
    if code in ("VALIDATION_ERROR", "PROMPT_TOO_LONG"):
        raise ValidationError(details.get("field", "<root>"), details.get("constraint", code), message)
    if code == "SCHEMA_VALIDATION_FAILED":
        raise SchemaValidationError(details.get("field", "<root>"), details.get("constraint", code), message)
    if code == "EMPTY_OUTPUT":
        raise EmptyOutputError(message)
    if resp.status_code == 401:
        raise NotAuthenticatedError(message)
    raise RemoteCallError("api", message)


class SipNReadClient:
    """Client synchrone des routes de l'API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_s: float = 60.0,
        http: httpx.Client | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.http = http or httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            headers=headers,
        )

    def _call(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as err:
            raise RemoteCallError("api", f"Request to {url} failed: {err}") from err
        if resp.status_code >= 400:
            _raise_for_envelope(resp)
        return resp.json()

    def upload_image(self, name: str, data: bytes, mime_type: str, index: int) -> str:
        """Dépose une image et renvoie son URL publique."""
        body = {
            "fileName": name,
            "mimeType": mime_type,
            "dataBase64": base64.b64encode(data).decode("ascii"),
            "index": index,
        }
        return self._call("POST", "/uploads/images", json=body)["url"]

    def analyze_tea_leaf_patterns(
        self,
        photo_urls: list[str],
        user_question: str | None = None,
        user_symbol_names: list[str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"photoDataUris": photo_urls}
        if user_question:
            body["userQuestion"] = user_question
        if user_symbol_names:
            body["userSymbolNames"] = user_symbol_names
        return self._call("POST", "/flows/analyze-tea-leaf-patterns", json=body)

    def save_reading_data(self, payload: dict[str, Any]) -> str:
        """Enregistre une lecture; renvoie son identifiant."""
        return self._call("POST", "/readings", json=payload)["readingId"]

    def extract_symbols(self, text: str) -> list[dict[str, Any]]:
        body = self._call("POST", "/flows/extract-symbols", json={"interpretationText": text})
        return body.get("extractedSymbols", [])

    def process_and_transcribe_audio(self, request_id: str, audio: bytes, mime_type: str) -> str:
        body = {"audioBase64": base64.b64encode(audio).decode("ascii"), "mimeType": mime_type}
        return self._call("POST", f"/personalized-readings/{request_id}/dictation", json=body)[
            "operationName"
        ]

    def refresh_transcription(self, request_id: str) -> dict[str, Any]:
        return self._call("POST", f"/personalized-readings/{request_id}/transcription/refresh")

    def close(self) -> None:
        self.http.close()


__all__ = ["SipNReadClient", "SipNReadError"]
