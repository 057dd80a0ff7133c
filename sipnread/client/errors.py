"""Classification des erreurs distantes en messages lisibles pour l'utilisateur."""

from __future__ import annotations

GENERIC_ANALYSIS_ERROR = "Failed to analyze tea leaves. An unexpected error occurred."
QUOTA_MESSAGE = "The daily limit for AI requests has been reached. Please try again tomorrow."
MEDIA_MESSAGE = (
    "Invalid image format, content, or URL for AI. Please use JPG, PNG, or WEBP, ensure images "
    "are clear and URLs are accessible."
)

_SCHEMA_MARKERS = ("Schema validation failed", "INVALID_ARGUMENT")
_MEDIA_MARKERS = ("image format", "Invalid media", "Could not fetch")
_QUOTA_MARKERS = ("quota", "RESOURCE_EXHAUSTED")


def classify_error(error: BaseException | str | None) -> str:
    """Message utilisateur selon des mots-clés du message d'erreur (schéma, média, quota)."""
    message = str(error or "").strip()
    if not message:
        return GENERIC_ANALYSIS_ERROR
    if any(m in message for m in _SCHEMA_MARKERS):
        return f"There was an issue with the data sent for AI analysis. {message}"
    if any(m in message for m in _MEDIA_MARKERS):
        return MEDIA_MESSAGE
    if any(m in message for m in _QUOTA_MARKERS):
        return QUOTA_MESSAGE
    return message
