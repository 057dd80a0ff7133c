"""
Client de transcription vocale longue durée (Google Cloud Speech-to-Text, API REST v1).

Deux appels:
- `start(...)` lance `speech:longrunningrecognize` et renvoie le nom de l'opération;
- `poll(name)` lit `operations/{name}` et renvoie `{done, transcript | error}`.

Pas de callback: l'avancement n'est connu qu'au moment d'un `poll` explicite.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import google.auth
import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest

from sipnread.core.logging import get_logger
from sipnread.domain.errors import RemoteCallError

log = get_logger("speech")

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

# encodages explicites pour les conteneurs compressés; les autres sont détectés par l'API
_ENCODINGS = {
    "audio/webm": "WEBM_OPUS",
    "audio/ogg": "OGG_OPUS",
    "audio/flac": "FLAC",
}


@dataclass(frozen=True)
class TranscriptionPoll:
    """État d'une opération de transcription."""

    done: bool
    transcript: str | None = None
    error: str | None = None


def recognition_config(mime_type: str, language_code: str, model: str) -> dict[str, Any]:
    """Configuration de reconnaissance: ponctuation automatique, mono, sans horodatage des mots."""
    config: dict[str, Any] = {
        "languageCode": language_code,
        "enableAutomaticPunctuation": True,
        "model": model,
        "audioChannelCount": 1,
        "enableWordTimeOffsets": False,
    }
    encoding = _ENCODINGS.get(mime_type.split(";", 1)[0].strip().lower())
    if encoding:
        config["encoding"] = encoding
    return config


def parse_operation(op: dict[str, Any]) -> TranscriptionPoll:
    """Interprète une ressource `Operation` (transcripts du 1er alternatif joints par ligne)."""
    if not op.get("done"):
        return TranscriptionPoll(done=False)
    if op.get("error"):
        return TranscriptionPoll(done=True, error=op["error"].get("message") or "Transcription failed.")
    results = (op.get("response") or {}).get("results") or []
    if not results:
        return TranscriptionPoll(done=True, transcript=None)
    transcript = "\n".join(
        ((r.get("alternatives") or [{}])[0].get("transcript") or "") for r in results
    )
    return TranscriptionPoll(done=True, transcript=transcript)


class SpeechClient(ABC):
    """Interface du service de transcription."""

    @abstractmethod
    def start(
        self, mime_type: str, *, audio_uri: str | None = None, audio_base64: str | None = None
    ) -> str:
        """Lance une reconnaissance longue durée; renvoie le nom de l'opération."""
        ...

    @abstractmethod
    def poll(self, operation_name: str) -> TranscriptionPoll:
        """Renvoie l'état courant de l'opération."""
        ...


class GoogleSpeechClient(SpeechClient):
    """Client REST (httpx) authentifié par les identifiants applicatifs par défaut."""

    def __init__(
        self,
        base_url: str = "https://speech.googleapis.com/v1",
        language_code: str = "en-US",
        model: str = "latest_long",
        timeout_s: float = 30.0,
        credentials=None,
        http: httpx.Client | None = None,
    ):
        """Initialise le client HTTP et les identifiants (résolus paresseusement)."""
        self.language_code = language_code
        self.model = model
        self._credentials = credentials
        self.http = http or httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    def _token(self) -> str:
        try:
            if self._credentials is None:
                self._credentials, _ = google.auth.default(scopes=_SCOPES)
            if not self._credentials.valid:
                self._credentials.refresh(GoogleAuthRequest())
        except GoogleAuthError as err:
            raise RemoteCallError("speech", f"Speech API credentials unavailable: {err}") from err
        return self._credentials.token

    def _call(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._token()}"}
        try:
            resp = self.http.request(method, url, headers=headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as err:
            raise RemoteCallError(
                "speech", f"Speech API error {err.response.status_code}: {err.response.text[:200]}"
            ) from err
        except httpx.HTTPError as err:
            raise RemoteCallError("speech", f"Speech API error: {err}") from err
        return resp.json()

    def start(
        self, mime_type: str, *, audio_uri: str | None = None, audio_base64: str | None = None
    ) -> str:
        if not audio_uri and not audio_base64:
            raise ValueError("audio_uri or audio_base64 is required")
        audio = {"uri": audio_uri} if audio_uri else {"content": audio_base64}
        body = {
            "config": recognition_config(mime_type, self.language_code, self.model),
            "audio": audio,
        }
        op = self._call("POST", "/speech:longrunningrecognize", json=body)
        name = op.get("name")
        if not name:
            raise RemoteCallError("speech", "Speech API returned no operation name")
        log.info("transcription_started", operation=name)
        return str(name)

    def poll(self, operation_name: str) -> TranscriptionPoll:
        return parse_operation(self._call("GET", f"/operations/{operation_name}"))
