"""Préparation des images côté client: contrôle du type et de la taille, redimensionnement.

Une image est réduite pour tenir dans 1024x1024 (ratio conservé, jamais agrandie), remise à
l'endroit selon son orientation EXIF puis ré-encodée en JPEG qualité 80.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from sipnread.core.constants import (
    ALLOWED_IMAGE_MIME_TYPES,
    RESIZE_MAX_HEIGHT,
    RESIZE_MAX_WIDTH,
    RESIZE_MIME_TYPE,
    RESIZE_QUALITY,
)
from sipnread.domain.errors import ValidationError

MAX_FILE_SIZE = 5 * 1024 * 1024


@dataclass(frozen=True)
class LocalImage:
    """Image sélectionnée par l'utilisateur."""

    name: str
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class PreparedImage:
    name: str
    data: bytes
    mime_type: str
    width: int
    height: int


def check_image(img: LocalImage) -> None:
    if img.mime_type not in ALLOWED_IMAGE_MIME_TYPES:
        raise ValidationError(
            "images", "mime_type", f'"{img.name}": only .jpg, .jpeg, .png and .webp files are accepted.'
        )
    if len(img.data) > MAX_FILE_SIZE:
        raise ValidationError("images", "max_size", f'"{img.name}" exceeds the 5MB limit.')


def resize_image(
    img: LocalImage,
    max_width: int = RESIZE_MAX_WIDTH,
    max_height: int = RESIZE_MAX_HEIGHT,
    quality: int = RESIZE_QUALITY,
) -> PreparedImage:
    """Redimensionne et ré-encode une image en JPEG."""
    check_image(img)
    try:
        with Image.open(io.BytesIO(img.data)) as src:
            out = ImageOps.exif_transpose(src).convert("RGB")
    except (UnidentifiedImageError, OSError) as err:
        raise ValidationError("images", "decode", f'Failed to read file "{img.name}".') from err
    out.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    out.save(buf, format="JPEG", quality=quality)
    stem = img.name.rsplit(".", 1)[0] or "image"
    return PreparedImage(
        name=f"{stem}.jpg",
        data=buf.getvalue(),
        mime_type=RESIZE_MIME_TYPE,
        width=out.width,
        height=out.height,
    )
