"""Résolution des références d'images (data URI, gs://, http) vers des octets + type MIME."""

from __future__ import annotations

import base64
import binascii
import mimetypes
from dataclasses import dataclass

import httpx

from sipnread.domain.errors import RemoteCallError, ValidationError

DEFAULT_IMAGE_MIME = "image/jpeg"


@dataclass(frozen=True)
class InlineImage:
    data: bytes
    mime_type: str


def is_data_uri(ref: str) -> bool:
    return ref.startswith("data:")


def decode_data_uri(ref: str) -> InlineImage:
    """Décode `data:<mime>;base64,<payload>`."""
    try:
        header, payload = ref.split(",", 1)
        mime = header[len("data:") :].split(";", 1)[0] or DEFAULT_IMAGE_MIME
        return InlineImage(data=base64.b64decode(payload, validate=False), mime_type=mime)
    except (ValueError, binascii.Error) as err:
        raise ValidationError("photoDataUri", "data_uri", "Invalid media: malformed data URI") from err


def guess_mime(ref: str) -> str:
    mime, _ = mimetypes.guess_type(ref.split("?", 1)[0])
    return mime or DEFAULT_IMAGE_MIME


def fetch_image(url: str, timeout_s: float = 15.0) -> InlineImage:
    """Télécharge une image publique http(s)."""
    try:
        with httpx.Client(timeout=httpx.Timeout(timeout_s), follow_redirects=True) as client:
            resp = client.get(url)
            resp.raise_for_status()
    except httpx.HTTPError as err:
        raise RemoteCallError("media", f"Could not fetch image {url}: {err}") from err
    mime = resp.headers.get("content-type", "").split(";", 1)[0] or guess_mime(url)
    return InlineImage(data=resp.content, mime_type=mime)
