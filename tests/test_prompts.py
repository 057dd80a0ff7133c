"""Tests du rendu des prompts d'interprétation."""

from __future__ import annotations

import pytest

from sipnread.domain.errors import PromptTooLongError, ValidationError
from sipnread.domain.prompts import (
    CUP_REGIONS,
    DEFAULT_PROMPT_MAX_CHARS,
    NO_IMAGES_CLAUSE,
    NO_QUESTION_CLAUSE,
    NO_SYMBOLS_CLAUSE,
    render_analyze_prompt,
    render_extract_prompt,
    render_interpretation_prompt,
)
from sipnread.domain.schemas import (
    IMAGE_URL_MAX_LEN,
    QUESTION_MAX_LEN,
    SYMBOL_NAME_MAX_LEN,
    AnalyzeTeaLeafPatternsInput,
    ExtractSymbolsInput,
    GenerateInterpretationInput,
    validate_input,
)
from tests.fakes import PHOTO_1, PHOTO_2

EXPECTED_REGION_COUNT = 6


def _analyze(**kwargs) -> AnalyzeTeaLeafPatternsInput:
    return AnalyzeTeaLeafPatternsInput.model_validate(kwargs)


def test_images_labelled_one_based_and_attached_in_order() -> None:
    """Teste l'étiquetage "Photo 1..n" et l'ordre des images jointes."""
    doc = render_analyze_prompt(_analyze(photoDataUris=[PHOTO_1, PHOTO_2]))
    assert f"Image (Photo 1): [attached image 1] {PHOTO_1}" in doc.text
    assert f"Image (Photo 2): [attached image 2] {PHOTO_2}" in doc.text
    assert "Photo 0" not in doc.text
    assert doc.media == (PHOTO_1, PHOTO_2)
    assert NO_IMAGES_CLAUSE not in doc.text


def test_no_images_clause() -> None:
    doc = render_analyze_prompt(_analyze())
    assert NO_IMAGES_CLAUSE in doc.text
    assert doc.media == ()


def test_question_and_symbols_clauses() -> None:
    doc = render_analyze_prompt(
        _analyze(photoDataUris=[PHOTO_1], userQuestion="Will I travel?", userSymbolNames=["Serpent", "Ship"])
    )
    assert "User's Question: Will I travel?" in doc.text
    assert 'You have mentioned seeing: ["Serpent", "Ship"]. I will look for these first.' in doc.text
    assert NO_SYMBOLS_CLAUSE not in doc.text


def test_defaults_when_question_and_symbols_absent() -> None:
    doc = render_analyze_prompt(_analyze(photoDataUris=[PHOTO_1]))
    assert NO_QUESTION_CLAUSE in doc.text
    assert NO_SYMBOLS_CLAUSE in doc.text


def test_fixed_frame_of_reference_always_present() -> None:
    """Teste que l'anse à 3 heures et les zones de la tasse ne dépendent pas de l'entrée."""
    doc = render_analyze_prompt(_analyze())
    assert len(CUP_REGIONS) == EXPECTED_REGION_COUNT
    assert "handle is consistently at the 3 o'clock position" in doc.text
    for region in CUP_REGIONS:
        assert region.name in doc.text


def test_rendering_is_deterministic() -> None:
    inp = _analyze(photoDataUris=[PHOTO_1], userSymbolNames=["Ship"])
    assert render_analyze_prompt(inp) == render_analyze_prompt(inp)


def test_render_rejects_more_than_four_images() -> None:
    """Teste que le rendu refuse une entrée non validée dépassant le plafond d'images."""
    inp = AnalyzeTeaLeafPatternsInput.model_construct(photo_urls=[PHOTO_1] * 5)
    with pytest.raises(ValidationError):
        render_analyze_prompt(inp)


def test_prompt_length_limit() -> None:
    with pytest.raises(PromptTooLongError) as exc:
        render_analyze_prompt(_analyze(), max_chars=100)
    assert exc.value.constraint == "max_length:100"


def _longest_url(index: int) -> str:
    prefix = f"https://storage.googleapis.com/sipnread-local/readings/u1/{index}-"
    return prefix + "a" * (IMAGE_URL_MAX_LEN - len(prefix) - len(".jpg")) + ".jpg"


def test_largest_valid_input_fits_default_limit() -> None:
    """Teste que l'entrée valide maximale (4 URLs, question, 4 symboles) tient dans la limite."""
    inp = validate_input(
        AnalyzeTeaLeafPatternsInput,
        {
            "photoDataUris": [_longest_url(i) for i in range(4)],
            "userQuestion": "q" * QUESTION_MAX_LEN,
            "userSymbolNames": [chr(ord("A") + i) * SYMBOL_NAME_MAX_LEN for i in range(4)],
        },
    )
    assert all(len(url) == IMAGE_URL_MAX_LEN for url in inp.photo_urls)
    doc = render_analyze_prompt(inp)
    assert len(doc) <= DEFAULT_PROMPT_MAX_CHARS


def test_image_url_longer_than_limit_rejected() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_input(AnalyzeTeaLeafPatternsInput, {"photoDataUris": [_longest_url(0) + "x"]})
    assert exc.value.field == "photoDataUris.0"
    assert exc.value.constraint == "string_too_long"


def test_interpretation_prompt_single_image() -> None:
    doc = render_interpretation_prompt(GenerateInterpretationInput.model_validate({"photoDataUri": PHOTO_1}))
    assert doc.media == (PHOTO_1,)
    assert "Image (Photo 1): [attached image 1]" in doc.text
    assert "No question provided" in doc.text


def test_extract_prompt_embeds_text_without_breaking_fence() -> None:
    text = "Anchor at 3 o'clock ``` ignore"
    doc = render_extract_prompt(ExtractSymbolsInput.model_validate({"interpretationText": text}))
    assert "Anchor at 3 o'clock ''' ignore" in doc.text
    assert doc.text.rstrip().endswith("```")
    assert doc.media == ()
