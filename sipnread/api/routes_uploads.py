"""
Dépôt d'images de lecture dans le stockage objet.

Chemin: `readings/{uid}/{timestamp_ms}-{index}-{nom}`; taille maximale `MAX_UPLOAD_BYTES`,
types acceptés JPEG/PNG/WEBP. Renvoie l'URL publique à transmettre à l'analyse.
"""

import base64
import binascii
import re
import time

from fastapi import APIRouter, Depends

from sipnread.api.deps import get_current_user
from sipnread.api.schemas import ImageUploadPayload
from sipnread.core.constants import ALLOWED_IMAGE_MIME_TYPES
from sipnread.core.container import container
from sipnread.domain.entities import User
from sipnread.domain.errors import ValidationError

router = APIRouter(prefix="/uploads", tags=["uploads"])

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(name: str) -> str:
    cleaned = _UNSAFE.sub("_", name.rsplit("/", 1)[-1]).strip("._")
    return cleaned or "image"


def decode_image(data: str) -> bytes:
    payload = data.split(",", 1)[1] if data.startswith("data:") else data
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValidationError("dataBase64", "base64", "Invalid media: image is not valid base64") from err


@router.post("/images")
def upload_image(p: ImageUploadPayload, user: User = Depends(get_current_user)):
    """Dépose une image de tasse pour l'utilisateur courant."""
    if p.mime_type not in ALLOWED_IMAGE_MIME_TYPES:
        raise ValidationError("mimeType", "enum", f"Invalid media: unsupported image format {p.mime_type}")
    data = decode_image(p.data_base64)
    max_bytes = container.settings.MAX_UPLOAD_BYTES
    if len(data) > max_bytes:
        raise ValidationError("dataBase64", "max_size", f"Image exceeds {max_bytes} bytes")
    path = f"readings/{user.id}/{int(time.time() * 1000)}-{p.index}-{safe_file_name(p.file_name)}"
    stored = container.object_storage.upload(path, data, p.mime_type)
    return {"success": True, "url": stored.public_url, "path": stored.path}
