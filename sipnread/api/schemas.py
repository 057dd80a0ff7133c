"""Schémas Pydantic des corps de requête validés directement par FastAPI."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class SignupPayload(BaseModel):
    """Payload pour l'inscription d'un nouvel utilisateur."""

    email: EmailStr
    password: str = Field(min_length=6)
    name: str | None = Field(default=None, max_length=100)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class _CamelPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DictationPayload(_CamelPayload):
    """Audio dicté par le tassologue (base64) et son type MIME."""

    audio_base64: str = Field(min_length=1)
    mime_type: str = Field(min_length=1)


class ImageUploadPayload(_CamelPayload):
    """Image encodée en base64 (ou data URI) à déposer dans le stockage."""

    file_name: str = Field(min_length=1, max_length=200)
    mime_type: str
    data_base64: str = Field(min_length=1)
    index: int = Field(default=0, ge=0, le=3)
