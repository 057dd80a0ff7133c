"""Opérations d'interprétation exposées (analyse des motifs, interprétation simple, extraction).

Chaque opération compose: sanitisation de l'entrée -> validation contre son schéma -> rendu du
prompt -> exécution générative -> contrôles métier sur la sortie. Une entrée invalide échoue
avant tout appel distant. Aucun retry.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from sipnread.app.metrics import UNCONFIRMED_SYMBOLS
from sipnread.app.middleware_llm_guard import sanitize_input, validate_output
from sipnread.core.logging import get_logger
from sipnread.domain.errors import SchemaValidationError, ValidationError
from sipnread.domain.generation import GenerativeExecutor
from sipnread.domain.prompts import (
    DEFAULT_PROMPT_MAX_CHARS,
    render_analyze_prompt,
    render_extract_prompt,
    render_interpretation_prompt,
)
from sipnread.domain.schemas import (
    AnalyzeTeaLeafPatternsInput,
    AnalyzeTeaLeafPatternsOutput,
    DetectedSymbol,
    ExtractSymbolsInput,
    ExtractSymbolsOutput,
    GenerateInterpretationInput,
    GenerateInterpretationOutput,
    Origin,
    validate_input,
)

log = get_logger("flows")

ANALYZE_FLOW = "analyzeTeaLeafPatternsFlow"
INTERPRET_FLOW = "generateInterpretationFlow"
EXTRACT_FLOW = "extractSymbolsFlow"


def _as_payload(data: Any) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, exclude_none=True, mode="json")
    if isinstance(data, Mapping):
        return dict(data)
    raise ValidationError("<root>", "dict_type", "Input must be an object")


def unconfirmed_user_symbols(
    user_symbol_names: list[str] | None, detected: list[DetectedSymbol]
) -> list[str]:
    """Symboles proposés par l'utilisateur absents de la liste confirmée (comparaison sans casse)."""
    confirmed = [
        s.symbol_name.casefold() for s in detected if s.origin is Origin.USER_CONFIRMED
    ]
    missing: list[str] = []
    for name in user_symbol_names or []:
        needle = name.casefold()
        if not any(needle in c for c in confirmed):
            missing.append(name)
    return missing


class InterpretationFlows:
    """Orchestrateur des trois opérations d'interprétation."""

    def __init__(
        self,
        executor: GenerativeExecutor,
        max_prompt_chars: int = DEFAULT_PROMPT_MAX_CHARS,
        enforce_acknowledgement: bool = True,
    ) -> None:
        """Initialise l'orchestrateur avec un exécuteur génératif."""
        self.executor = executor
        self.max_prompt_chars = max_prompt_chars
        self.enforce_acknowledgement = enforce_acknowledgement

    def analyze_tea_leaf_patterns(
        self, data: AnalyzeTeaLeafPatternsInput | Mapping[str, Any]
    ) -> AnalyzeTeaLeafPatternsOutput:
        """
        Analyse jusqu'à 4 photos d'une même tasse.

        Les symboles proposés par l'utilisateur ne figurent dans la liste que s'ils sont
        confirmés visuellement; chaque symbole non confirmé doit être cité dans le récit,
        sinon la sortie est refusée (`SchemaValidationError`).
        """
        inp = validate_input(AnalyzeTeaLeafPatternsInput, sanitize_input(_as_payload(data)))
        prompt = render_analyze_prompt(inp, self.max_prompt_chars)
        out = self.executor.execute(ANALYZE_FLOW, prompt, AnalyzeTeaLeafPatternsOutput)

        missing = unconfirmed_user_symbols(inp.user_symbol_names, out.ai_symbols_detected)
        if missing:
            UNCONFIRMED_SYMBOLS.inc(len(missing))
            narrative = out.ai_interpretation.casefold()
            silent = [name for name in missing if name.casefold() not in narrative]
            if silent and self.enforce_acknowledgement:
                raise SchemaValidationError(
                    "aiInterpretation",
                    "unconfirmed_symbol_not_acknowledged",
                    "Schema validation failed: interpretation does not address user symbol(s) "
                    + ", ".join(silent),
                )
            log.info("unconfirmed_user_symbols", count=len(missing), acknowledged=not silent)
        return out.model_copy(update={"ai_interpretation": validate_output(out.ai_interpretation)})

    def generate_interpretation(
        self, data: GenerateInterpretationInput | Mapping[str, Any]
    ) -> GenerateInterpretationOutput:
        """Interprétation simplifiée d'une seule image (récit seul)."""
        inp = validate_input(GenerateInterpretationInput, sanitize_input(_as_payload(data)))
        prompt = render_interpretation_prompt(inp, self.max_prompt_chars)
        out = self.executor.execute(INTERPRET_FLOW, prompt, GenerateInterpretationOutput)
        return out.model_copy(update={"interpretation": validate_output(out.interpretation)})

    def extract_symbols_from_text(
        self, data: ExtractSymbolsInput | Mapping[str, Any]
    ) -> ExtractSymbolsOutput:
        """Extrait (nom, position horaire explicite) d'un texte; sortie vide -> liste vide."""
        inp = validate_input(ExtractSymbolsInput, sanitize_input(_as_payload(data)))
        prompt = render_extract_prompt(inp, self.max_prompt_chars)
        out = self.executor.execute(EXTRACT_FLOW, prompt, ExtractSymbolsOutput, required=False)
        return out or ExtractSymbolsOutput(extracted_symbols=[])
