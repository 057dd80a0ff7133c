"""Tests de l'exécuteur de requêtes génératives."""

from __future__ import annotations

import pytest

from sipnread.app.metrics import FLOW_ERRORS
from sipnread.domain.errors import EmptyOutputError, RemoteCallError, SchemaValidationError
from sipnread.domain.generation import DEFAULT_SAFETY_SETTINGS, GenerativeExecutor, parse_json_payload
from sipnread.domain.prompts import PromptDocument
from sipnread.domain.schemas import AnalyzeTeaLeafPatternsOutput, ExtractSymbolsOutput
from tests.fakes import PHOTO_1, StubLLM, analysis_output

PROMPT = PromptDocument(name="p", text="Read the cup.", media=(PHOTO_1,))


def test_parse_json_payload_variants() -> None:
    """Teste le parse brut: JSON nu, bloc clôturé, vide."""
    assert parse_json_payload('{"a": 1}') == {"a": 1}
    assert parse_json_payload('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_payload("   ") is None
    assert parse_json_payload("null") is None
    with pytest.raises(SchemaValidationError) as exc:
        parse_json_payload("the leaves say yes")
    assert exc.value.constraint == "json_invalid"


def test_execute_returns_typed_output_and_forwards_request() -> None:
    llm = StubLLM().queue(analysis_output())
    out = GenerativeExecutor(llm).execute("f", PROMPT, AnalyzeTeaLeafPatternsOutput)
    assert isinstance(out, AnalyzeTeaLeafPatternsOutput)
    (req,) = llm.requests
    assert req.text == "Read the cup."
    assert req.media == (PHOTO_1,)
    assert req.safety_settings == DEFAULT_SAFETY_SETTINGS
    assert "aiSymbolsDetected" in req.response_schema["properties"]


def test_default_safety_thresholds() -> None:
    """Teste les seuils par défaut: discours haineux bloqué au seuil haut seulement."""
    assert DEFAULT_SAFETY_SETTINGS["HARM_CATEGORY_HATE_SPEECH"] == "BLOCK_ONLY_HIGH"
    others = {k: v for k, v in DEFAULT_SAFETY_SETTINGS.items() if k != "HARM_CATEGORY_HATE_SPEECH"}
    assert set(others.values()) == {"BLOCK_MEDIUM_AND_ABOVE"}


def test_safety_overrides_merge_with_defaults() -> None:
    llm = StubLLM().queue({"extractedSymbols": []})
    GenerativeExecutor(llm).execute(
        "f",
        PROMPT,
        ExtractSymbolsOutput,
        safety_overrides={"HARM_CATEGORY_HARASSMENT": "BLOCK_NONE"},
    )
    sent = llm.requests[0].safety_settings
    assert sent["HARM_CATEGORY_HARASSMENT"] == "BLOCK_NONE"
    assert sent["HARM_CATEGORY_HATE_SPEECH"] == "BLOCK_ONLY_HIGH"


def test_empty_output_required_vs_optional() -> None:
    """Teste qu'une sortie vide lève si requise, et renvoie None sinon."""
    ex = GenerativeExecutor(StubLLM().queue("", "null"))
    with pytest.raises(EmptyOutputError):
        ex.execute("f", PROMPT, AnalyzeTeaLeafPatternsOutput)
    assert ex.execute("f", PROMPT, ExtractSymbolsOutput, required=False) is None


def test_invalid_output_never_partial() -> None:
    bad = analysis_output()
    del bad["aiInterpretation"]
    ex = GenerativeExecutor(StubLLM().queue(bad))
    before = FLOW_ERRORS.labels("f_bad", "SCHEMA_VALIDATION_FAILED")._value.get()  # type: ignore[attr-defined]
    with pytest.raises(SchemaValidationError):
        ex.execute("f_bad", PROMPT, AnalyzeTeaLeafPatternsOutput)
    after = FLOW_ERRORS.labels("f_bad", "SCHEMA_VALIDATION_FAILED")._value.get()  # type: ignore[attr-defined]
    assert after == before + 1


def test_remote_error_propagates() -> None:
    ex = GenerativeExecutor(StubLLM().queue(RemoteCallError("gemini", "quota exceeded")))
    with pytest.raises(RemoteCallError) as exc:
        ex.execute("f", PROMPT, AnalyzeTeaLeafPatternsOutput)
    assert "quota" in exc.value.message
