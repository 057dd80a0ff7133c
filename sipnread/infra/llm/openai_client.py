"""
Client génératif basé sur l'API OpenAI (chat.completions, mode JSON).

Les images sont transmises comme parties `image_url` (URL publique ou data URI) avant le
texte d'instructions. Les seuils de sécurité propres à Gemini n'ont pas d'équivalent ici et
sont ignorés.
"""

from __future__ import annotations

from typing import Any, Literal, overload

import openai
from openai import OpenAI

from sipnread.core.logging import get_logger
from sipnread.domain.errors import RemoteCallError
from sipnread.infra.llm.base import LLM, GenerationRequest

log = get_logger("openai")


class OpenAILLM(LLM):
    """LLM multimodal basé sur OpenAI."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout_s: float = 60.0,
        client: Any | None = None,
    ) -> None:
        """Initialise le client OpenAI."""
        self.model = model
        self.client = client or OpenAI(api_key=api_key, timeout=timeout_s)

    @overload
    def generate(
        self, request: GenerationRequest, *, with_usage: Literal[True]
    ) -> tuple[str, dict[str, int]]: ...

    @overload
    def generate(
        self, request: GenerationRequest, *, with_usage: Literal[False] = False
    ) -> str: ...

    def generate(
        self, request: GenerationRequest, *, with_usage: bool = False
    ) -> str | tuple[str, dict[str, int]]:
        """
        Génère du texte JSON (et éventuellement les métriques d'usage).

        - with_usage=False (défaut) -> str
        - with_usage=True -> (str, dict[str, int])
        """
        content: list[dict[str, Any]] = [
            {"type": "image_url", "image_url": {"url": ref}} for ref in request.media
        ]
        content.append({"type": "text", "text": request.text})
        kwargs: dict[str, Any] = {"response_format": {"type": "json_object"}}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        try:
            resp = self.client.chat.completions.create(
                model=request.model or self.model,
                messages=[{"role": "user", "content": content}],
                **kwargs,
            )
        except openai.OpenAIError as err:
            log.warning("openai_call_failed", error=type(err).__name__)
            raise RemoteCallError("openai", f"OpenAI call failed: {err}") from err

        choice = resp.choices[0] if resp.choices else None
        text = getattr(getattr(choice, "message", None), "content", None) or ""
        usage = self._extract_usage_dict(resp)
        return (text, usage) if with_usage else text

    def _extract_usage_dict(self, resp: Any) -> dict[str, int]:
        """Extrait les infos d'usage depuis la réponse OpenAI. Toujours un dict."""
        usage = getattr(resp, "usage", None)
        if not usage:
            return {}
        return {
            "prompt_tokens": int(getattr(usage, "prompt_tokens", 0) or 0),
            "completion_tokens": int(getattr(usage, "completion_tokens", 0) or 0),
            "total_tokens": int(getattr(usage, "total_tokens", 0) or 0),
        }
