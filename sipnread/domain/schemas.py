"""
Contrats d'entrée/sortie des opérations d'interprétation.

Ce module déclare, pour chacune des trois opérations IA (analyse des motifs, interprétation
simple, extraction de symboles), la forme exacte acceptée en entrée et la forme que la sortie
du modèle doit respecter: formats (URL), plafonds de cardinalité (4 images, 4 symboles),
bornes entières (positions horaires 0-12) et ensembles énumérés (origine d'un symbole).

Les noms de champs exposés (alias camelCase) sont ceux échangés avec le modèle et avec le
client; les attributs Python restent en snake_case.

`validate_input` / `validate_output` sont les seuls points d'entrée: ils renvoient un objet
typé ou lèvent une erreur nommant le champ et la contrainte violée. Aucun effet de bord.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, TypeVar

from pydantic import (
    AfterValidator,
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from sipnread.core.constants import (
    CLOCK_POSITION_MAX,
    CLOCK_POSITION_MIN,
    MAX_IMAGES,
    MAX_USER_SYMBOLS,
)
from sipnread.domain.errors import SchemaValidationError, ValidationError

QUESTION_MAX_LEN = 1000
SYMBOL_NAME_MAX_LEN = 80
# 4 URLs de cette taille, question et symboles au maximum tiennent dans DEFAULT_PROMPT_MAX_CHARS
IMAGE_URL_MAX_LEN = 2048

_url_adapter = TypeAdapter(AnyUrl)
_DATA_URI_RE = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,[A-Za-z0-9+/=\s]+$")
_PIXEL_RE = re.compile(r"\b\d+\s*(px|pixels?)\b|\b[xy]\s*[=:]\s*\d+", re.IGNORECASE)


def _check_url(value: str) -> str:
    """Valide une URL sans la normaliser (la chaîne d'origine est conservée)."""
    url = _url_adapter.validate_python(value)
    if url.scheme not in {"http", "https", "gs"}:
        raise ValueError(f"unsupported url scheme: {url.scheme}")
    return value


def _check_image_ref(value: str) -> str:
    """Accepte une URL publique ou une data URI base64."""
    if value.startswith("data:"):
        if not _DATA_URI_RE.match(value):
            raise ValueError("invalid data uri, expected data:<mimetype>;base64,<data>")
        return value
    return _check_url(value)


ImageUrl = Annotated[
    str, StringConstraints(max_length=IMAGE_URL_MAX_LEN), AfterValidator(_check_url)
]
ImageRef = Annotated[str, AfterValidator(_check_image_ref)]
SymbolName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=SYMBOL_NAME_MAX_LEN)
]
Question = Annotated[str, StringConstraints(max_length=QUESTION_MAX_LEN)]
ClockPosition = Annotated[int, Field(ge=CLOCK_POSITION_MIN, le=CLOCK_POSITION_MAX, strict=True)]


class Origin(str, Enum):
    """Provenance d'un symbole détecté."""

    USER_CONFIRMED = "user-identified and confirmed"
    AI_DISCOVERED = "ai-discovered"


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def dump(self) -> dict[str, Any]:
        """Sérialise avec les alias publics et sans les champs optionnels absents."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# analyzeTeaLeafPatterns
# ---------------------------------------------------------------------------


class AnalyzeTeaLeafPatternsInput(_Schema):
    """Entrée de l'analyse: jusqu'à 4 photos, question et symboles pressentis optionnels."""

    photo_urls: list[ImageUrl] | None = Field(
        default=None, max_length=MAX_IMAGES, alias="photoDataUris"
    )
    user_question: Question | None = Field(default=None, alias="userQuestion")
    user_symbol_names: list[SymbolName] | None = Field(
        default=None, max_length=MAX_USER_SYMBOLS, alias="userSymbolNames"
    )


class DetectedSymbol(_Schema):
    """Symbole détecté par le modèle, positionné par rapport à l'anse (3 heures)."""

    symbol_name: str = Field(alias="symbolName", min_length=1)
    symbol_description: str = Field(alias="symbolDescription")
    true_position_in_cup: str = Field(alias="truePositionInCup", min_length=1)
    best_seen_in_views: str = Field(alias="bestSeenInView(s)")
    appearance_notes: str | None = Field(default=None, alias="appearanceNotes")
    traditional_meaning: str = Field(alias="traditionalMeaning")
    origin: Origin

    @field_validator("true_position_in_cup")
    @classmethod
    def _relative_position(cls, v: str) -> str:
        if _PIXEL_RE.search(v):
            raise ValueError("position must be relative to the cup handle, not pixel coordinates")
        return v


class AnalyzeTeaLeafPatternsOutput(_Schema):
    """Sortie de l'analyse: liste de symboles et récit d'interprétation."""

    ai_symbols_detected: list[DetectedSymbol] = Field(alias="aiSymbolsDetected")
    ai_interpretation: str = Field(alias="aiInterpretation", min_length=1)


# ---------------------------------------------------------------------------
# generateInterpretation (chemin simplifié, une seule image)
# ---------------------------------------------------------------------------


class GenerateInterpretationInput(_Schema):
    photo_url: ImageRef = Field(alias="photoDataUri")
    user_question: Question | None = Field(default=None, alias="userQuestion")


class GenerateInterpretationOutput(_Schema):
    interpretation: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# extractSymbolsFromText
# ---------------------------------------------------------------------------


class ExtractSymbolsInput(_Schema):
    interpretation_text: str = Field(alias="interpretationText", min_length=1)


class ExtractedSymbol(_Schema):
    """Paire (nom, position horaire optionnelle) extraite d'un texte libre."""

    symbol_name: str = Field(alias="symbolName", min_length=1)
    position: ClockPosition | None = None


class ExtractSymbolsOutput(_Schema):
    extracted_symbols: list[ExtractedSymbol] = Field(alias="extractedSymbols")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

M = TypeVar("M", bound=BaseModel)


def _first_error(exc: PydanticValidationError) -> tuple[str, str, str]:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
    return loc, str(err.get("type", "invalid")), str(err.get("msg", ""))


def validate_input(schema: type[M], value: Any) -> M:
    """Valide une entrée de flow; lève `ValidationError` (champ, contrainte) sinon."""
    try:
        return schema.model_validate(value)
    except PydanticValidationError as exc:
        field, constraint, msg = _first_error(exc)
        raise ValidationError(field, constraint, f"{field}: {msg}") from exc


def validate_output(schema: type[M], value: Any) -> M:
    """Valide une sortie de modèle; lève `SchemaValidationError` (champ, contrainte) sinon."""
    try:
        return schema.model_validate(value)
    except PydanticValidationError as exc:
        field, constraint, msg = _first_error(exc)
        raise SchemaValidationError(
            field, constraint, f"Schema validation failed at {field}: {msg}"
        ) from exc


def output_json_schema(schema: type[BaseModel]) -> dict[str, Any]:
    """JSON Schema (alias publics) transmis au modèle comme contrainte de sortie."""
    return schema.model_json_schema(by_alias=True)
