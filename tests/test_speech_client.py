"""Tests du client de transcription longue durée."""

from __future__ import annotations

import json
from unittest.mock import Mock

import httpx
import pytest

from sipnread.domain.errors import RemoteCallError
from sipnread.infra.speech_client import GoogleSpeechClient, parse_operation, recognition_config


def test_recognition_config() -> None:
    config = recognition_config("audio/webm;codecs=opus", "en-US", "latest_long")
    assert config["encoding"] == "WEBM_OPUS"
    assert config["enableAutomaticPunctuation"] is True
    assert config["audioChannelCount"] == 1
    assert "encoding" not in recognition_config("audio/wav", "en-US", "latest_long")


def test_parse_operation_states() -> None:
    """Teste l'interprétation d'une opération: en cours, erreur, résultats, vide."""
    assert parse_operation({"name": "1"}).done is False
    failed = parse_operation({"done": True, "error": {"code": 3, "message": "bad audio"}})
    assert (failed.done, failed.error) == (True, "bad audio")
    ok = parse_operation(
        {
            "done": True,
            "response": {
                "results": [
                    {"alternatives": [{"transcript": "I see an anchor."}, {"transcript": "ignored"}]},
                    {"alternatives": [{"transcript": "Stability ahead."}]},
                ]
            },
        }
    )
    assert ok.transcript == "I see an anchor.\nStability ahead."
    assert parse_operation({"done": True, "response": {}}).transcript is None


def _client(handler) -> GoogleSpeechClient:
    creds = Mock(valid=True, token="tok")
    http = httpx.Client(base_url="https://speech.test/v1", transport=httpx.MockTransport(handler))
    return GoogleSpeechClient(credentials=creds, http=http)


def test_start_and_poll() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"name": "op-42"})
        return httpx.Response(200, json={"done": False})

    client = _client(handler)
    assert client.start("audio/webm", audio_uri="gs://b/a.webm") == "op-42"
    body = json.loads(seen[0].content)
    assert body["audio"] == {"uri": "gs://b/a.webm"}
    assert seen[0].headers["Authorization"] == "Bearer tok"
    assert client.poll("op-42").done is False
    assert seen[1].url.path == "/v1/operations/op-42"


def test_http_error_is_remote_failure() -> None:
    client = _client(lambda request: httpx.Response(403, text="denied"))
    with pytest.raises(RemoteCallError) as exc:
        client.start("audio/webm", audio_uri="gs://b/a.webm")
    assert "403" in exc.value.message


def test_start_requires_audio() -> None:
    with pytest.raises(ValueError):
        _client(lambda request: httpx.Response(200, json={})).start("audio/webm")
