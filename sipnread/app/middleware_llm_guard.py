"""
Garde-fous autour des appels au modèle génératif.

Sanitisation des textes libres fournis par l'utilisateur (question, noms de symboles,
texte à analyser): trim, longueur maximale, détection d'injections de prompt. Masquage des
données personnelles dans les récits renvoyés au client.
"""

from __future__ import annotations

import re

from sipnread.app.metrics import LLM_GUARD_BLOCKS, LLM_GUARD_PII_MASKED
from sipnread.core.settings import get_settings
from sipnread.domain.errors import ValidationError

_INJECTION_PATTERNS = (
    ("ignore_previous", r"ignore\s+(all\s+)?previous\s+instructions"),
    ("system_prompt", r"system\s+prompt"),
    ("jailbreak", r"jailbreak"),
    ("dan", r"do\s+anything\s+now"),
    ("ignore_previous_fr", r"ignor(e|er)\s+les\s+instructions\s+pr[ée]c[ée]dentes"),
)


def _check_text(field: str, value: str, max_len: int) -> str:
    v = value.strip()
    if len(v) > max_len:
        LLM_GUARD_BLOCKS.labels("too_long").inc()
        raise ValidationError(field, "too_long", f"{field} exceeds {max_len} characters")
    for rule, pat in _INJECTION_PATTERNS:
        if re.search(pat, v, flags=re.IGNORECASE):
            LLM_GUARD_BLOCKS.labels(rule).inc()
            raise ValidationError(field, "prompt_injection_detected")
    return v


def sanitize_input(payload: dict) -> dict:
    """
    Sanitize les champs texte libres d'une entrée de flow (payload en alias camelCase).

    - `userQuestion` et `interpretationText`: trim, longueur max (LLM_GUARD_MAX_INPUT_LEN
      pour la question), motifs d'injection refusés. Une question vide devient absente.
    - `userSymbolNames`: chaque nom est contrôlé de la même façon.
    - Si LLM_GUARD_ENABLE=false, seul le trim est appliqué.

    Raises:
        ValidationError: en cas de violation (champ + règle).
    """
    settings = get_settings()
    data = dict(payload)
    enabled = settings.LLM_GUARD_ENABLE
    max_len = int(settings.LLM_GUARD_MAX_INPUT_LEN)

    question = data.get("userQuestion")
    if isinstance(question, str):
        q = _check_text("userQuestion", question, max_len) if enabled else question.strip()
        data["userQuestion"] = q or None

    names = data.get("userSymbolNames")
    if isinstance(names, list) and enabled:
        data["userSymbolNames"] = [
            _check_text("userSymbolNames", n, max_len) if isinstance(n, str) else n for n in names
        ]

    text = data.get("interpretationText")
    if isinstance(text, str) and enabled:
        # le texte d'interprétation peut être long: seule l'injection est contrôlée ici
        data["interpretationText"] = _check_text("interpretationText", text, len(text) + 1)
    return data


def validate_output(text: str) -> str:
    """
    Masque les données personnelles (emails, téléphones) dans un texte généré.

    Si LLM_GUARD_ENABLE=false, le texte est renvoyé inchangé.
    """
    if not get_settings().LLM_GUARD_ENABLE:
        return text
    masked = text
    new = re.sub(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}", "[redacted-email]", masked)
    if new != masked:
        LLM_GUARD_PII_MASKED.labels("email").inc()
    masked = new
    # séquences de 8+ chiffres (avec séparateurs)
    new = re.sub(r"\+?\d[\d\s\-]{7,}\d", "[redacted-phone]", masked)
    if new != masked:
        LLM_GUARD_PII_MASKED.labels("phone").inc()
    return new
