"""
Client génératif basé sur l'API Gemini (SDK google-genai).

Les images sont jointes comme parties de contenu (octets inline pour data URI et http,
référence `gs://` passée telle quelle), suivies du texte d'instructions. La sortie est
contrainte en JSON (`response_mime_type`), avec le schéma de sortie et les seuils de sécurité
fournis par la requête.
"""

from __future__ import annotations

from typing import Any, Literal, overload

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from sipnread.core.logging import get_logger
from sipnread.domain.errors import RemoteCallError
from sipnread.infra.llm.base import LLM, GenerationRequest
from sipnread.infra.llm.media import decode_data_uri, fetch_image, guess_mime, is_data_uri

log = get_logger("gemini")


class GeminiLLM(LLM):
    """LLM multimodal basé sur Gemini."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-2.0-flash",
        client: Any | None = None,
    ) -> None:
        """Initialise le client (injection possible pour les tests)."""
        self.model = model
        self.client = client or genai.Client(api_key=api_key)

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
        """Appelle `generate_content` et renvoie le texte (et l'usage si demandé)."""
        contents = [self._image_part(ref) for ref in request.media]
        contents.append(types.Part.from_text(text=request.text))
        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_json_schema=request.response_schema,
            temperature=request.temperature,
            safety_settings=[
                types.SafetySetting(category=cat, threshold=thr)
                for cat, thr in request.safety_settings.items()
            ],
        )
        try:
            resp = self.client.models.generate_content(
                model=request.model or self.model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as err:
            log.warning("gemini_call_failed", code=getattr(err, "code", None))
            raise RemoteCallError("gemini", f"Gemini call failed: {err}") from err

        text = resp.text or ""
        usage = self._extract_usage_dict(resp)
        return (text, usage) if with_usage else text

    def _image_part(self, ref: str) -> types.Part:
        if is_data_uri(ref):
            img = decode_data_uri(ref)
            return types.Part.from_bytes(data=img.data, mime_type=img.mime_type)
        if ref.startswith("gs://"):
            return types.Part.from_uri(file_uri=ref, mime_type=guess_mime(ref))
        img = fetch_image(ref)
        return types.Part.from_bytes(data=img.data, mime_type=img.mime_type)

    def _extract_usage_dict(self, resp: Any) -> dict[str, int]:
        meta = getattr(resp, "usage_metadata", None)
        if not meta:
            return {}
        return {
            "prompt_tokens": int(getattr(meta, "prompt_token_count", 0) or 0),
            "completion_tokens": int(getattr(meta, "candidates_token_count", 0) or 0),
            "total_tokens": int(getattr(meta, "total_token_count", 0) or 0),
        }
