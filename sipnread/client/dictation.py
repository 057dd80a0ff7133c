"""
Dictée de l'interprétation par le tassologue.

Deux stratégies derrière une même interface, choisie une fois au démarrage selon les
capacités de l'environnement:
- reconnaissance vocale locale (un reconnaisseur fourni par l'hôte), texte immédiat;
- transcription distante: l'audio est envoyé à l'API qui lance une reconnaissance
  asynchrone, le résultat est récupéré par `poll`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from sipnread.client.api_client import SipNReadClient
from sipnread.core.logging import get_logger

log = get_logger("dictation")

# (audio, mime_type) -> texte reconnu
Recognizer = Callable[[bytes, str], str]


@dataclass(frozen=True)
class DictationResult:
    status: str  # pending | completed | failed
    text: str | None = None
    error: str | None = None
    operation_name: str | None = None

    @property
    def done(self) -> bool:
        return self.status != "pending"


class DictationStrategy(ABC):
    name: str

    @abstractmethod
    def dictate(self, request_id: str, audio: bytes, mime_type: str) -> DictationResult: ...

    @abstractmethod
    def poll(self, request_id: str) -> DictationResult: ...


class LocalRecognitionDictation(DictationStrategy):
    name = "local"

    def __init__(self, recognizer: Recognizer):
        self.recognizer = recognizer
        self._last: dict[str, DictationResult] = {}

    def dictate(self, request_id: str, audio: bytes, mime_type: str) -> DictationResult:
        text = (self.recognizer(audio, mime_type) or "").strip()
        if text:
            result = DictationResult("completed", text=text)
        else:
            result = DictationResult("failed", error="No speech was recognized.")
        self._last[request_id] = result
        return result

    def poll(self, request_id: str) -> DictationResult:
        return self._last.get(request_id, DictationResult("failed", error="No dictation recorded."))


class RemoteTranscriptionDictation(DictationStrategy):
    name = "remote"

    def __init__(self, client: SipNReadClient):
        self.client = client

    def dictate(self, request_id: str, audio: bytes, mime_type: str) -> DictationResult:
        op = self.client.process_and_transcribe_audio(request_id, audio, mime_type)
        log.info("dictation_submitted", request_id=request_id, operation=op)
        return DictationResult("pending", operation_name=op)

    def poll(self, request_id: str) -> DictationResult:
        body = self.client.refresh_transcription(request_id)
        status = body.get("status", "pending")
        if status == "completed":
            return DictationResult("completed", text=body.get("transcript"))
        if status == "failed":
            return DictationResult("failed", error=body.get("message"))
        return DictationResult("pending")


def select_dictation_strategy(
    client: SipNReadClient, recognizer: Recognizer | None = None
) -> DictationStrategy:
    """Reconnaissance locale si disponible, sinon transcription distante."""
    if recognizer is not None:
        return LocalRecognitionDictation(recognizer)
    return RemoteTranscriptionDictation(client)
