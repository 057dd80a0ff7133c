"""
Rendu des prompts d'interprétation.

Chaque opération dispose d'un gabarit fixe rendu par de simples fonctions Python à partir d'une
entrée déjà validée: sections conditionnelles (images présentes ou non, question, symboles
pressentis) et itérations (une référence étiquetée par image). Le rendu est pur: pas d'I/O,
pas d'aléa, même entrée -> même texte.

Conventions
-----------
- Les images sont étiquetées "Photo 1..n" (numérotation 1-based) dans le texte lu par le modèle;
  l'index 0-based de la boucle ne sert qu'au suivi interne (`PromptDocument.media`).
- Le repère est fixe: l'anse de la tasse est à 3 heures.
- Un prompt dont le texte dépasse la limite de longueur est refusé (`PromptTooLongError`).
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sipnread.core.constants import HANDLE_CLOCK_POSITION, MAX_IMAGES, MAX_USER_SYMBOLS
from sipnread.domain.errors import PromptTooLongError, ValidationError
from sipnread.domain.schemas import (
    AnalyzeTeaLeafPatternsInput,
    ExtractSymbolsInput,
    GenerateInterpretationInput,
    Origin,
)

DEFAULT_PROMPT_MAX_CHARS = 24000

NO_IMAGES_CLAUSE = "No tea leaf images were provided for analysis."
NO_QUESTION_CLAUSE = "No specific question asked. Please provide a general life reading."
NO_SYMBOLS_CLAUSE = "No symbols were pre-identified by you. I will conduct a full scan."


@dataclass(frozen=True)
class CupRegion:
    """Zone de la tasse et bande temporelle/thématique associée."""

    name: str
    clock: str
    meaning: str


# Correspondance fixe zones -> sens (ne dépend jamais de l'entrée)
CUP_REGIONS: tuple[CupRegion, ...] = (
    CupRegion(
        "Handle Area",
        f"{HANDLE_CLOCK_POSITION} o'clock",
        "Querent, present moment, current events, immediate future.",
    ),
    CupRegion(
        "Right Below Handle",
        "4-6 o'clock",
        "Events, future outcomes, moving towards, within 3 months.",
    ),
    CupRegion(
        "Left Below Handle",
        "approx. 7-9 o'clock",
        "Events, future outcomes, moving towards, within 4-6 months.",
    ),
    CupRegion(
        "Left Above Handle",
        "approx. 10-12 o'clock",
        "Future, outcomes, moving towards, within 7-9 months.",
    ),
    CupRegion(
        "Right Above Handle",
        "approx. 1-2 o'clock",
        "Future, outcomes, moving towards, within 10-12 months.",
    ),
    CupRegion(
        "Bottom of the Cup",
        "center",
        "Distant future, foundation, unconscious, final outcome.",
    ),
)


@dataclass(frozen=True)
class PromptDocument:
    """Prompt rendu: texte d'instructions et images jointes, dans l'ordre des étiquettes."""

    name: str
    text: str
    media: tuple[str, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.text)


# ---------------------------------------------------------------------------
# Primitives de gabarit
# ---------------------------------------------------------------------------


def _lines(*blocks: str | Iterable[str]) -> str:
    out: list[str] = []
    for b in blocks:
        if isinstance(b, str):
            out.append(b)
        else:
            out.extend(b)
    return "\n".join(out)


def _bullets(items: Iterable[str], indent: int = 4) -> list[str]:
    pad = " " * indent
    return [f"{pad}* {item}" for item in items]


def _quoted_list(names: Sequence[str]) -> str:
    # ["a", "b"] sans dépendre de l'échappement JSON des accents
    return "[" + ", ".join(f'"{n}"' for n in names) + "]"


def _fence(text: str) -> str:
    return text.replace("```", "'''")


def _check_length(doc: PromptDocument, max_chars: int) -> PromptDocument:
    if len(doc) > max_chars:
        raise PromptTooLongError(
            "prompt",
            f"max_length:{max_chars}",
            f"Rendered prompt '{doc.name}' is {len(doc)} characters, limit is {max_chars}.",
        )
    return doc


def _check_limits(photo_urls: Sequence[str] | None, symbol_names: Sequence[str] | None) -> None:
    if photo_urls and len(photo_urls) > MAX_IMAGES:
        raise ValidationError("photoDataUris", "too_long", f"At most {MAX_IMAGES} images.")
    if symbol_names and len(symbol_names) > MAX_USER_SYMBOLS:
        raise ValidationError(
            "userSymbolNames", "too_long", f"At most {MAX_USER_SYMBOLS} user symbols."
        )


# ---------------------------------------------------------------------------
# analyzeTeaLeafPatterns
# ---------------------------------------------------------------------------

_ANALYZE_INTRO = (
    "You are an expert Tassologist (Tea Leaf Reader), renowned for your insightful and detailed "
    "interpretations. Your goal is to analyze the tea leaf patterns in the provided images (which "
    "show different photos of the SAME tea cup), consider any symbols identified by the user, and "
    "provide a comprehensive and coherent reading."
)

_OBSERVATION = _bullets(
    [
        "Carefully examine ALL provided images (if any). Your primary task is to understand the "
        "three-dimensional arrangement of tea leaves within the single cup.",
        "Correlate features and leaf clusters across the different photos to identify consistent "
        "symbols and accurately determine their **true, fixed placement within the cup**.",
    ]
)

_USER_SYMBOLS_FIRST = _bullets(
    [
        "If the user has provided a list of symbol names (`User Identified Symbols`), your first "
        "step is to attempt to locate each of these within the images.",
        "For each user-identified symbol that you can **reasonably confirm visually**: use the "
        "user's provided name (or a close variant), follow all the detailing steps below and mark "
        f"its origin as `{Origin.USER_CONFIRMED.value}`.",
        "**If you cannot clearly locate a specific symbol mentioned by the user after careful "
        "examination, do not include it in the `aiSymbolsDetected` list.** Instead, address it "
        "by name within the main `aiInterpretation` (see section 4).",
    ],
    indent=8,
)

_AI_DISCOVERED = _bullets(
    [
        "After addressing user-identified symbols, independently search for any other distinct "
        "symbols in the tea leaves not mentioned by the user.",
        "For each of these, follow the detailing steps below and mark its origin as "
        f"`{Origin.AI_DISCOVERED.value}`.",
    ],
    indent=8,
)

_DETAILING = _bullets(
    [
        '**Symbol Name:** (e.g., "Soaring Eagle," "User\'s \'Dragon\'," "Letter \'S\'").',
        "**Symbol Description:** a brief visual description of what the symbol looks like as it "
        "appears in the leaves.",
        "**True Position in Cup:** its actual, fixed position. **Assume the cup handle is "
        f"consistently at the {HANDLE_CLOCK_POSITION} o'clock position** (e.g., \"On the left "
        'side, around the 9 o\'clock mark"). Never use pixel coordinates.',
        '**Best Seen In Photo(s):** which Photo(s) (e.g., "Photo 1," "Photo 2 and 4") best '
        "display this symbol. **Use 1-based numbering: \"Photo 1\" is the first image.**",
        "**Appearance Notes (Optional):** how the symbol appears relative to the handle in "
        "specific rotated photos, if this helps clarify its identification.",
        "**Traditional Meaning:** common traditional meanings for the symbol.",
        f"**Origin:** `{Origin.USER_CONFIRMED.value}` or `{Origin.AI_DISCOVERED.value}`.",
    ],
    indent=8,
)

_NARRATIVE = _bullets(
    [
        "Synthesize all **visually confirmed symbols** (both user-identified and AI-discovered), "
        "their traditional meanings, and their positions into a single, flowing narrative.",
        "**Addressing Unconfirmed User Symbols:** if the user mentioned symbols that you could not "
        "visually confirm, acknowledge each of them by name early in your interpretation, clearly "
        "stating it was not seen.",
        "The interpretation should tell a story, explaining how different elements connect.",
        "If a user question was provided, ensure the interpretation directly addresses it. "
        "Otherwise, provide a general reading.",
        "Maintain an empathetic, insightful, and slightly mystical tone.",
        "Focus on potentials, energies, and guidance rather than definitive predictions.",
    ]
)

_ANALYZE_EXAMPLE = {
    "aiSymbolsDetected": [
        {
            "symbolName": "Example: User's 'Ship'",
            "symbolDescription": "Example: An elongated shape with a taller central part.",
            "truePositionInCup": "Example: Bottom right quadrant, near the 4 o'clock position "
            "(handle at 3 o'clock).",
            "bestSeenInView(s)": "Example: Photo 1",
            "appearanceNotes": "Example: In Photo 1 (handle at 3 o'clock), this appears at the "
            "bottom.",
            "traditionalMeaning": "Example: Journey, new venture, arrival or departure.",
            "origin": Origin.USER_CONFIRMED.value,
        },
        {
            "symbolName": "Example: Mountain",
            "symbolDescription": "Example: A large, dense clump of leaves rising to a peak.",
            "truePositionInCup": "Example: Left side, spanning 8 to 10 o'clock (handle at 3 "
            "o'clock).",
            "bestSeenInView(s)": "Example: Photo 1, Photo 3",
            "appearanceNotes": "",
            "traditionalMeaning": "Example: Obstacles to overcome, ambition and achievement.",
            "origin": Origin.AI_DISCOVERED.value,
        },
    ],
    "aiInterpretation": "Example: Regarding the 'Serpent' you mentioned, I wasn't able to clearly "
    "identify that shape in these leaves. However, I did confirm the 'Ship' you pointed out...",
}


def _image_clause(photo_urls: Sequence[str] | None) -> list[str]:
    if not photo_urls:
        return [f"    {NO_IMAGES_CLAUSE}"]
    return [
        f"    Image (Photo {index + 1}): [attached image {index + 1}] {url}"
        for index, url in enumerate(photo_urls)
    ]


def _question_clause(question: str | None) -> str:
    q = (question or "").strip()
    return f"User's Question: {q if q else NO_QUESTION_CLAUSE}"


def _symbols_clause(names: Sequence[str] | None) -> str:
    if not names:
        return f"User Identified Symbols: {NO_SYMBOLS_CLAUSE}"
    return (
        f"User Identified Symbols: You have mentioned seeing: {_quoted_list(names)}. "
        "I will look for these first."
    )


def _regions() -> list[str]:
    return _bullets((f"**{r.name} ({r.clock}):** {r.meaning}" for r in CUP_REGIONS), indent=8)


def render_analyze_prompt(
    data: AnalyzeTeaLeafPatternsInput, max_chars: int = DEFAULT_PROMPT_MAX_CHARS
) -> PromptDocument:
    """Rend le prompt d'analyse des motifs (images, question, symboles pressentis)."""
    _check_limits(data.photo_urls, data.user_symbol_names)
    text = _lines(
        _ANALYZE_INTRO,
        "",
        _image_clause(data.photo_urls),
        "",
        _question_clause(data.user_question),
        "",
        _symbols_clause(data.user_symbol_names),
        "",
        "**Instructions for Analysis and Interpretation:**",
        "",
        "1.  **Holistic Observation:**",
        _OBSERVATION,
        "",
        "2.  **Symbol Identification and Details:**",
        "    * **A. User-Identified Symbols First:**",
        _USER_SYMBOLS_FIRST,
        "    * **B. AI-Discovered Symbols:**",
        _AI_DISCOVERED,
        "    * **C. Detailing Each Visually Confirmed Symbol:**",
        _DETAILING,
        "",
        "3.  **Interpretive Framework (Building the Narrative):**",
        "    * Meanings of the cup areas (handle at "
        f"{HANDLE_CLOCK_POSITION} o'clock):",
        _regions(),
        "        * **Clarity & Size:** More significant if clear/large.",
        "",
        "4.  **Crafting the Full Interpretation:**",
        _NARRATIVE,
        "",
        "**Output Format:**",
        "",
        "Respond with a single JSON object of exactly this shape (no markdown):",
        json.dumps(_ANALYZE_EXAMPLE, indent=2, ensure_ascii=False),
    )
    doc = PromptDocument(
        name="analyzeTeaLeafPatternsPrompt", text=text, media=tuple(data.photo_urls or ())
    )
    return _check_length(doc, max_chars)


# ---------------------------------------------------------------------------
# generateInterpretation
# ---------------------------------------------------------------------------


def render_interpretation_prompt(
    data: GenerateInterpretationInput, max_chars: int = DEFAULT_PROMPT_MAX_CHARS
) -> PromptDocument:
    """Rend le prompt simplifié (une image, question optionnelle, récit seul)."""
    q = (data.user_question or "").strip()
    text = _lines(
        "You are an expert tea leaf reader. Analyze the tea leaves in the provided image and "
        "generate an interpretation.",
        "",
        "Consider traditional tea leaf reading meanings and symbols.",
        "",
        "If the user provided a question, focus the interpretation on answering that question.",
        "",
        "Image (Photo 1): [attached image 1]",
        "",
        f"Question: {q if q else 'No question provided. Provide a general reading.'}",
        "",
        'Respond with a single JSON object: {"interpretation": "<your reading>"}',
    )
    doc = PromptDocument(
        name="generateInterpretationPrompt", text=text, media=(data.photo_url,)
    )
    return _check_length(doc, max_chars)


# ---------------------------------------------------------------------------
# extractSymbolsFromText
# ---------------------------------------------------------------------------

_EXTRACT_RULES = (
    '1.  Identify distinct tea leaf symbols (e.g., "Anchor", "Bird", "Mountain", "Letter A").',
    "2.  If a clock position is stated with a symbol using an explicit number (e.g., \"at 3 "
    "o'clock\", \"near 9\", \"around 6 o'clock position\"), extract that hour as an integer "
    "from 0 through 12. \"12 o'clock\" is 12.",
    '3.  If a symbol is described only as being in a "general area", "top", "bottom", '
    '"left side", "right side" WITHOUT a specific clock number, omit the "position" field for '
    "that symbol. Never output 0 for a vague location.",
    "4.  If no symbols are found, return an empty \"extractedSymbols\" array.",
    "5.  Focus only on explicit symbol names and their direct clock positions. Do not infer "
    "symbols or positions not clearly stated.",
)

_EXTRACT_EXAMPLE = (
    '{\n  "extractedSymbols": [\n    {"symbolName": "Example Symbol One", "position": 3},\n'
    '    {"symbolName": "Example Symbol Two"}\n  ]\n}'
)


def render_extract_prompt(
    data: ExtractSymbolsInput, max_chars: int = DEFAULT_PROMPT_MAX_CHARS
) -> PromptDocument:
    """Rend le prompt d'extraction (symboles et positions horaires explicites)."""
    text = _lines(
        "You are an AI assistant specialized in Tasseography (tea leaf reading).",
        "Your task is to read the provided tea leaf interpretation text and extract any "
        "mentioned tea leaf symbols and their corresponding clock positions.",
        "",
        "Rules for extraction:",
        _EXTRACT_RULES,
        "",
        "Respond with a single JSON object strictly adhering to this format:",
        _EXTRACT_EXAMPLE,
        "",
        "Interpretation Text to Analyze:",
        "```",
        _fence(data.interpretation_text),
        "```",
    )
    return _check_length(PromptDocument(name="extractSymbolsPrompt", text=text), max_chars)
