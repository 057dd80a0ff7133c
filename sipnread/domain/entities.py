"""
Entités du domaine métier.

Ce module définit les enregistrements persistés (lectures, demandes de lecture personnalisée,
profils, notifications, contenus d'accueil) et les énumérations fermées de leurs statuts.
Les champs sont stockés sous leurs alias camelCase.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sipnread.domain.schemas import DetectedSymbol


def utcnow() -> datetime:
    """Horodatage UTC courant (équivalent d'un timestamp serveur)."""
    return datetime.now(UTC)


class Role(str, Enum):
    USER = "user"
    TASSOLOGIST = "tassologist"


class ReadingType(str, Enum):
    TEA = "tea"
    COFFEE = "coffee"
    TAROT = "tarot"
    RUNES = "runes"


class RequestStatus(str, Enum):
    """Statuts d'une demande de lecture personnalisée."""

    NEW = "new"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    READ = "read"
    CANCELLED = "cancelled"


class TranscriptionStatus(str, Enum):
    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"


class Record(BaseModel):
    """Base des enregistrements persistés (alias camelCase, tolérant aux champs inconnus)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_doc(self) -> dict[str, Any]:
        """Sérialise vers un document JSON stockable."""
        return self.model_dump(by_alias=True, mode="json")


class User(BaseModel):
    """Compte d'authentification (identifiant, email, rôle)."""

    id: str
    email: str
    role: Role = Role.USER


class UserProfile(Record):
    uid: str
    email: str
    name: str
    role: Role = Role.USER
    birthdate: date | None = None
    number_of_readings: int = 0
    last_reading_date: datetime | None = None
    profile_pic_url: str | None = None
    bio: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None


class StoredManualSymbol(Record):
    """Symbole saisi par le tassologue, position rendue en texte ("3 o'clock")."""

    symbol_name: str
    true_position_in_cup: str


class Reading(Record):
    """Lecture IA persistée avec ses entrées et l'interprétation manuelle (vide au départ)."""

    id: str
    user_id: str
    reading_date: datetime = Field(default_factory=utcnow)
    photo_storage_urls: list[str]
    ai_symbols_detected: list[DetectedSymbol]
    ai_interpretation: str
    user_question: str | None = None
    user_symbol_names: list[str] = Field(default_factory=list)
    reading_type: ReadingType | None = None
    manual_symbols_detected: list[StoredManualSymbol] = Field(default_factory=list)
    manual_interpretation: str = ""
    updated_at: datetime | None = None


class PersonalizationRequest(Record):
    """Demande de lecture personnalisée suivie par la machine à états."""

    id: str
    user_id: str
    user_email: str
    original_reading_id: str | None = None
    request_date: datetime = Field(default_factory=utcnow)
    status: RequestStatus = RequestStatus.NEW
    price: int
    payment_status: PaymentStatus = PaymentStatus.PENDING
    user_satisfaction: Literal["happy", "neutral", "unhappy"] | None = None
    completion_date: datetime | None = None
    tassologist_id: str | None = None
    reading_type: ReadingType | None = None
    updated_at: datetime | None = None
    dictated_audio_uri: str | None = None
    transcription_operation_id: str | None = None
    transcription_status: TranscriptionStatus = TranscriptionStatus.NOT_REQUESTED
    transcription_error: str | None = None


class MailMessage(Record):
    """Document de notification sortante (collection `mail`)."""

    id: str
    to: list[str]
    subject: str
    html: str
    created_at: datetime = Field(default_factory=utcnow)


class Tile(Record):
    """Tuile configurable de l'écran d'accueil."""

    id: str
    title: str
    description: str = ""
    href: str | None = None
    image_url: str | None = None
    order: int = 0
    enabled: bool = True


class AudioTrack(Record):
    """Piste audio d'ambiance proposée sur l'écran d'accueil."""

    id: str
    title: str
    url: str
    order: int = 0
    enabled: bool = True
