"""
Exécution des requêtes génératives.

`GenerativeExecutor.execute` envoie un prompt rendu (texte + images) au modèle avec une
contrainte de sortie structurée, puis parse et valide la réponse contre le schéma déclaré.

Issues possibles, toujours distinguables:
- succès: objet typé conforme au schéma;
- `SchemaValidationError`: JSON invalide ou non conforme (jamais de sortie partielle);
- `EmptyOutputError`: aucune sortie alors qu'une sortie est requise;
- `RemoteCallError`: échec réseau/auth/quota du fournisseur (propagé tel quel).

Aucun retry ni cache: une requête produit au plus un appel distant.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel

from sipnread.app.metrics import FLOW_ERRORS, FLOW_LATENCY, FLOW_REQUESTS, LLM_TOKENS_TOTAL
from sipnread.app.tracing import flow_span
from sipnread.core.logging import get_logger
from sipnread.domain.errors import EmptyOutputError, SchemaValidationError, SipNReadError
from sipnread.domain.prompts import PromptDocument
from sipnread.domain.schemas import output_json_schema, validate_output
from sipnread.infra.llm.base import LLM, GenerationRequest

log = get_logger("generation")

M = TypeVar("M", bound=BaseModel)

# Seuils de blocage par catégorie, partagés par toutes les opérations
DEFAULT_SAFETY_SETTINGS: dict[str, str] = {
    "HARM_CATEGORY_HATE_SPEECH": "BLOCK_ONLY_HIGH",
    "HARM_CATEGORY_DANGEROUS_CONTENT": "BLOCK_MEDIUM_AND_ABOVE",
    "HARM_CATEGORY_HARASSMENT": "BLOCK_MEDIUM_AND_ABOVE",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT": "BLOCK_MEDIUM_AND_ABOVE",
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_json_payload(raw: str) -> Any:
    """Parse la sortie brute du modèle (tolère un bloc ```json ... ```). `None` si vide."""
    text = (raw or "").strip()
    if not text:
        return None
    m = _FENCE_RE.match(text)
    if m:
        text = m.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as err:
        raise SchemaValidationError(
            "<root>", "json_invalid", f"Schema validation failed: model output is not JSON ({err.msg})"
        ) from err


class GenerativeExecutor:
    """Exécuteur de requêtes génératives à sortie structurée."""

    def __init__(
        self,
        llm: LLM,
        safety_settings: Mapping[str, str] | None = None,
        model: str | None = None,
    ) -> None:
        """Initialise l'exécuteur avec un client LLM et des seuils de sécurité par défaut."""
        self.llm = llm
        self.safety_settings = dict(safety_settings or DEFAULT_SAFETY_SETTINGS)
        self.model = model

    def execute(
        self,
        flow: str,
        prompt: PromptDocument,
        output_schema: type[M],
        *,
        required: bool = True,
        safety_overrides: Mapping[str, str] | None = None,
        temperature: float | None = None,
    ) -> M | None:
        """
        Exécute une requête et renvoie la sortie validée.

        Args:
            flow: nom de l'opération (métriques, logs, span).
            prompt: prompt rendu (texte et images).
            output_schema: schéma de sortie attendu.
            required: si False, une sortie vide renvoie `None` au lieu de lever.
            safety_overrides: seuils remplaçant ceux par défaut pour cet appel.
            temperature: température d'échantillonnage optionnelle.

        Raises:
            SchemaValidationError, EmptyOutputError, RemoteCallError.
        """
        safety = {**self.safety_settings, **(safety_overrides or {})}
        request = GenerationRequest(
            text=prompt.text,
            media=prompt.media,
            response_schema=output_json_schema(output_schema),
            safety_settings=safety,
            model=self.model,
            temperature=temperature,
        )
        model_label = self.model or getattr(self.llm, "model", "") or self.llm.name
        FLOW_REQUESTS.labels(flow, model_label).inc()
        start = time.perf_counter()
        with flow_span(flow, model=model_label, media_count=len(prompt.media)):
            try:
                raw, usage = self.llm.generate(request, with_usage=True)
                result = self._validate(raw, output_schema, required)
            except SipNReadError as err:
                FLOW_ERRORS.labels(flow, err.code).inc()
                log.warning("flow_failed", flow=flow, code=err.code, error=err.message)
                raise
            finally:
                FLOW_LATENCY.labels(flow, model_label).observe(time.perf_counter() - start)
        if usage.get("total_tokens"):
            LLM_TOKENS_TOTAL.labels(flow, model_label).inc(usage["total_tokens"])
        log.info("flow_completed", flow=flow, prompt_chars=len(prompt), empty=result is None)
        return result

    def _validate(self, raw: str, output_schema: type[M], required: bool) -> M | None:
        payload = parse_json_payload(raw)
        if payload is None:
            if required:
                raise EmptyOutputError("Model returned no output.")
            return None
        return validate_output(output_schema, payload)
