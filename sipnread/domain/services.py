"""
Services métier: lectures, demandes de lecture personnalisée, dictée/transcription, profils.

Les services manipulent des collections de documents (voir `infra.repositories`) et des
enregistrements typés (`domain.entities`). Les règles appliquées ici:

- une lecture n'est créée qu'à partir d'un résultat d'analyse complet;
- le statut d'une demande n'évolue que via `workflow.transition`;
- les champs "manuels" d'une lecture ne sont jamais écrasés par une transcription
  (ajout uniquement, jamais de valeur vide);
- une erreur de transcription est tronquée à 500 caractères.
"""

from __future__ import annotations

import base64
import binascii
import html
import uuid
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from sipnread.app.metrics import TRANSCRIPTIONS
from sipnread.core.constants import (
    MIN_COMPLETED_INTERPRETATION_LEN,
    PROFILE_BIO_MAX_LEN,
    PROFILE_NAME_MAX_LEN,
    TRANSCRIPTION_ERROR_MAX_LEN,
)
from sipnread.core.logging import get_logger
from sipnread.domain.entities import (
    AudioTrack,
    MailMessage,
    PersonalizationRequest,
    Reading,
    ReadingType,
    RequestStatus,
    Role,
    StoredManualSymbol,
    Tile,
    TranscriptionStatus,
    User,
    UserProfile,
    utcnow,
)
from sipnread.domain.errors import (
    NotFoundError,
    PermissionDeniedError,
    RemoteCallError,
    ValidationError,
)
from sipnread.domain.schemas import ClockPosition, DetectedSymbol, ImageUrl, validate_input
from sipnread.domain.workflow import ACTIONABLE, PAST, transition
from sipnread.infra.speech_client import SpeechClient
from sipnread.infra.storage import ObjectStorage

log = get_logger("services")

NO_TEXT_RECOGNIZED = "Transcription completed but no text was recognized."


# ---------------------------------------------------------------------------
# Commandes
# ---------------------------------------------------------------------------


class _Command(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SaveReadingCommand(_Command):
    """Entrée de save-reading-data: entrées de l'analyse et résultat IA complet."""

    image_storage_urls: list[ImageUrl]
    ai_symbols_detected: list[DetectedSymbol]
    ai_interpretation: str = Field(min_length=1)
    user_question: str | None = None
    user_symbol_names: list[str] | None = None
    reading_type: ReadingType | None = None


class SubmitRequestCommand(_Command):
    user_email: EmailStr
    original_reading_id: str | None = None


class ManualSymbolInput(_Command):
    """Symbole saisi par le tassologue (position horaire optionnelle)."""

    symbol: str = Field(min_length=1)
    position: ClockPosition | None = None

    @field_validator("position", mode="before")
    @classmethod
    def _blank_position(cls, v: Any) -> Any:
        return None if v == "" else v


class SaveInterpretationCommand(_Command):
    request_id: str = Field(min_length=1)
    original_reading_id: str | None = None
    manual_symbols: list[ManualSymbolInput] = Field(default_factory=list)
    manual_interpretation: str = ""
    save_type: Literal["draft", "complete"]


class ProfileUpdateCommand(_Command):
    """Mise à jour du profil; chaînes vides -> valeur effacée (None)."""

    name: str = Field(min_length=1, max_length=PROFILE_NAME_MAX_LEN)
    bio: str | None = Field(default=None, max_length=PROFILE_BIO_MAX_LEN)
    profile_pic_url: ImageUrl | None = None
    birthdate: date | None = None

    @field_validator("profile_pic_url", "birthdate", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        return None if v == "" else v


def format_position(position: int | None) -> str:
    """Position horaire -> texte stocké ("3 o'clock"); 0 ou absente -> "General area"."""
    if position:
        return f"{position} o'clock"
    return "General area"


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationService:
    """Dépose des messages sortants dans la collection `mail` (envoi par un worker externe)."""

    def __init__(self, mail, public_url: str):
        self.mail = mail
        self.public_url = public_url.rstrip("/")

    def _send(self, to: str, subject: str, body: str) -> MailMessage:
        msg = MailMessage(id=_new_id(), to=[to], subject=subject, html=body)
        self.mail.save(msg.to_doc())
        log.info("mail_queued", subject=subject)
        return msg

    def new_request(
        self, to: str, requester: str, user_email: str, req: PersonalizationRequest
    ) -> MailMessage:
        items = [f"<li><strong>Request ID:</strong> {req.id}</li>"]
        if req.original_reading_id:
            items.append(
                f"<li><strong>Original AI Reading ID:</strong> {req.original_reading_id}</li>"
            )
        if req.reading_type:
            items.append(
                f"<li><strong>Reading Type:</strong> {req.reading_type.value.capitalize()}</li>"
            )
        body = (
            "<p>Hello,</p>"
            "<p>A new personalized tea leaf reading request has been submitted by "
            f"{html.escape(requester)} ({html.escape(user_email)}).</p>"
            f"<ul>{''.join(items)}</ul>"
            "<p>Please log in to the Tassologist Dashboard to view and process this request.</p>"
        )
        return self._send(to, f"New Personalized Reading Request from {requester}", body)

    def reading_url(self, req: PersonalizationRequest) -> str:
        if req.original_reading_id:
            return f"{self.public_url}/my-readings/{req.original_reading_id}?roxyRequestId={req.id}"
        return f"{self.public_url}/my-readings"

    def request_completed(self, req: PersonalizationRequest) -> MailMessage:
        url = self.reading_url(req)
        body = (
            "<p>Hello,</p>"
            "<p>Your personalized tea leaf reading is now complete and ready for you to view.</p>"
            f'<p><a href="{url}">View Your Reading</a></p>'
            f"<p>If the link doesn't work, copy and paste this URL into your browser:</p><p>{url}</p>"
        )
        return self._send(req.user_email, "Your Sip-n-Read Personalized Reading is Ready!", body)


# ---------------------------------------------------------------------------
# Profils
# ---------------------------------------------------------------------------


class ProfileService:
    """Profils utilisateurs (collection `profiles`, clé = identifiant utilisateur)."""

    def __init__(self, profiles):
        self.profiles = profiles

    def create(self, user: User, name: str | None = None) -> UserProfile:
        profile = UserProfile(
            uid=user.id,
            email=user.email,
            name=name or user.email.split("@", 1)[0],
            role=user.role,
        )
        self.profiles.save({"id": user.id, **profile.to_doc()})
        return profile

    def get(self, uid: str) -> UserProfile:
        doc = self.profiles.get(uid)
        if not doc:
            raise NotFoundError("Profile not found.")
        return UserProfile.model_validate(doc)

    def update(self, uid: str, payload: dict[str, Any]) -> UserProfile:
        """Applique une mise à jour validée (nom requis, bio <= 500, date YYYY-MM-DD ou vide)."""
        cmd = validate_input(ProfileUpdateCommand, payload)
        profile = self.get(uid)
        changes: dict[str, Any] = {"name": cmd.name, "updated_at": utcnow()}
        fields = cmd.model_fields_set
        if "bio" in fields:
            changes["bio"] = cmd.bio or ""
        if "profile_pic_url" in fields:
            changes["profile_pic_url"] = cmd.profile_pic_url
        if "birthdate" in fields:
            changes["birthdate"] = cmd.birthdate
        updated = profile.model_copy(update=changes)
        self.profiles.save({"id": uid, **updated.to_doc()})
        return updated

    def record_reading(self, uid: str) -> None:
        doc = self.profiles.get(uid)
        if not doc:
            log.warning("profile_missing_for_stats", uid=uid)
            return
        profile = UserProfile.model_validate(doc)
        now = utcnow()
        updated = profile.model_copy(
            update={
                "number_of_readings": profile.number_of_readings + 1,
                "last_reading_date": now,
                "updated_at": now,
            }
        )
        self.profiles.save({"id": uid, **updated.to_doc()})

    def display_name(self, uid: str, fallback: str) -> str:
        doc = self.profiles.get(uid)
        name = (doc or {}).get("name") or ""
        return name.strip() or fallback

    def first_tassologist(self) -> UserProfile | None:
        docs = self.profiles.query(
            where={"role": Role.TASSOLOGIST.value}, order_by="createdAt", limit=1
        )
        return UserProfile.model_validate(docs[0]) if docs else None


# ---------------------------------------------------------------------------
# Lectures
# ---------------------------------------------------------------------------


class ReadingService:
    """Persistance des lectures IA."""

    def __init__(self, readings, profiles: ProfileService):
        self.readings = readings
        self.profiles = profiles

    def save_reading(self, user: User, payload: dict[str, Any]) -> Reading:
        """save-reading-data: crée la lecture puis met à jour les statistiques du profil."""
        cmd = validate_input(SaveReadingCommand, payload)
        now = utcnow()
        reading = Reading(
            id=_new_id(),
            user_id=user.id,
            reading_date=now,
            photo_storage_urls=cmd.image_storage_urls,
            ai_symbols_detected=cmd.ai_symbols_detected,
            ai_interpretation=cmd.ai_interpretation,
            user_question=cmd.user_question or None,
            user_symbol_names=cmd.user_symbol_names or [],
            reading_type=cmd.reading_type,
            updated_at=now,
        )
        self.readings.save(reading.to_doc())
        self.profiles.record_reading(user.id)
        log.info("reading_saved", reading_id=reading.id, images=len(reading.photo_storage_urls))
        return reading

    def load(self, reading_id: str) -> Reading:
        doc = self.readings.get(reading_id)
        if not doc:
            raise NotFoundError("Reading not found.")
        return Reading.model_validate(doc)

    def get_for(self, user: User, reading_id: str) -> Reading:
        """Lecture visible par son propriétaire ou par un tassologue."""
        reading = self.load(reading_id)
        if reading.user_id != user.id and user.role is not Role.TASSOLOGIST:
            raise PermissionDeniedError("You do not have permission to view this reading.")
        return reading

    def list_for_user(self, user_id: str) -> list[Reading]:
        docs = self.readings.query(where={"userId": user_id}, order_by="readingDate", descending=True)
        return [Reading.model_validate(d) for d in docs]

    def save(self, reading: Reading) -> Reading:
        self.readings.save(reading.to_doc())
        return reading


# ---------------------------------------------------------------------------
# Lecture personnalisée
# ---------------------------------------------------------------------------


class PersonalizationService:
    """Cycle de vie des demandes de lecture personnalisée."""

    def __init__(
        self,
        requests,
        readings: ReadingService,
        profiles: ProfileService,
        notifications: NotificationService,
        price: int,
    ):
        self.requests = requests
        self.readings = readings
        self.profiles = profiles
        self.notifications = notifications
        self.price = price

    def load(self, request_id: str) -> PersonalizationRequest:
        doc = self.requests.get(request_id)
        if not doc:
            raise NotFoundError("Personalized reading request not found.")
        return PersonalizationRequest.model_validate(doc)

    def store(self, req: PersonalizationRequest) -> PersonalizationRequest:
        self.requests.save(req.to_doc())
        return req

    def submit(self, user: User, payload: dict[str, Any]) -> PersonalizationRequest:
        """submit-personalization-request: crée la demande (statut new) et prévient le tassologue."""
        cmd = validate_input(SubmitRequestCommand, payload)
        reading_type: ReadingType | None = None
        if cmd.original_reading_id:
            reading = self.readings.get_for(user, cmd.original_reading_id)
            reading_type = reading.reading_type

        tassologist = self.profiles.first_tassologist()
        if tassologist is None:
            log.warning("no_tassologist_available")
        now = utcnow()
        req = PersonalizationRequest(
            id=_new_id(),
            user_id=user.id,
            user_email=str(cmd.user_email),
            original_reading_id=cmd.original_reading_id,
            request_date=now,
            price=self.price,
            tassologist_id=tassologist.uid if tassologist else None,
            reading_type=reading_type,
            updated_at=now,
        )
        self.store(req)
        if tassologist:
            email = str(cmd.user_email)
            requester = self.profiles.display_name(user.id, fallback=email)
            self.notifications.new_request(tassologist.email, requester, email, req)
        log.info("personalization_submitted", request_id=req.id)
        return req

    def save_interpretation(self, tassologist: User, payload: dict[str, Any]) -> PersonalizationRequest:
        """
        save-tassologist-interpretation.

        - `draft`: symboles et récit enregistrés, la demande passe/reste `in-progress`;
        - `complete`: récit d'au moins 10 caractères requis, demande `completed`,
          transcription en attente marquée terminée, notification de l'utilisateur.
        """
        cmd = validate_input(SaveInterpretationCommand, payload)
        completing = cmd.save_type == "complete"
        if completing and len(cmd.manual_interpretation.strip()) < MIN_COMPLETED_INTERPRETATION_LEN:
            raise ValidationError(
                "manualInterpretation",
                "min_length",
                "Interpretation must be at least 10 characters long when completing a reading.",
            )
        req = self.load(cmd.request_id)
        target = RequestStatus.COMPLETED if completing else RequestStatus.IN_PROGRESS
        new_status = transition(req.status, target)

        reading_id = req.original_reading_id or cmd.original_reading_id
        if not reading_id:
            raise NotFoundError("Personalized reading request has no linked reading.")
        reading = self.readings.load(reading_id)
        now = utcnow()
        self.readings.save(
            reading.model_copy(
                update={
                    "manual_symbols_detected": [
                        StoredManualSymbol(
                            symbol_name=s.symbol, true_position_in_cup=format_position(s.position)
                        )
                        for s in cmd.manual_symbols
                    ],
                    "manual_interpretation": cmd.manual_interpretation,
                    "updated_at": now,
                }
            )
        )

        changes: dict[str, Any] = {
            "status": new_status,
            "updated_at": now,
            "transcription_error": None,
            "tassologist_id": req.tassologist_id or tassologist.id,
        }
        if completing:
            changes["completion_date"] = now
            if req.transcription_status is TranscriptionStatus.PENDING:
                changes["transcription_status"] = TranscriptionStatus.COMPLETED
        req = self.store(req.model_copy(update=changes))
        if completing:
            self.notifications.request_completed(req)
        log.info("interpretation_saved", request_id=req.id, save_type=cmd.save_type)
        return req

    def mark_as_read(self, user: User, request_id: str) -> tuple[PersonalizationRequest, bool]:
        """mark-personalized-reading-as-read; renvoie (demande, déjà_lue)."""
        req = self.load(request_id)
        if req.user_id != user.id:
            raise PermissionDeniedError("You do not have permission to update this reading request.")
        if req.status is RequestStatus.READ:
            return req, True
        new_status = transition(req.status, RequestStatus.READ)
        return self.store(req.model_copy(update={"status": new_status, "updated_at": utcnow()})), False

    def cancel(self, user: User, request_id: str) -> PersonalizationRequest:
        req = self.load(request_id)
        if req.user_id != user.id:
            raise PermissionDeniedError("You do not have permission to cancel this reading request.")
        new_status = transition(req.status, RequestStatus.CANCELLED)
        return self.store(req.model_copy(update={"status": new_status, "updated_at": utcnow()}))

    def list_for_user(self, user_id: str) -> list[PersonalizationRequest]:
        docs = self.requests.query(where={"userId": user_id}, order_by="requestDate", descending=True)
        return [PersonalizationRequest.model_validate(d) for d in docs]

    def queue(self) -> list[PersonalizationRequest]:
        """Demandes actionnables par un tassologue, plus anciennes d'abord."""
        docs = self.requests.query(
            where={"status": {s.value for s in ACTIONABLE}}, order_by="requestDate"
        )
        return [PersonalizationRequest.model_validate(d) for d in docs]

    def past(self) -> list[PersonalizationRequest]:
        docs = self.requests.query(
            where={"status": {s.value for s in PAST}}, order_by="completionDate", descending=True
        )
        return [PersonalizationRequest.model_validate(d) for d in docs]

    def detail(self, user: User, request_id: str) -> tuple[PersonalizationRequest, Reading | None]:
        req = self.load(request_id)
        if req.user_id != user.id and user.role is not Role.TASSOLOGIST:
            raise PermissionDeniedError("You do not have permission to view this reading request.")
        reading = self.readings.load(req.original_reading_id) if req.original_reading_id else None
        return req, reading


# ---------------------------------------------------------------------------
# Dictée / transcription
# ---------------------------------------------------------------------------


class TranscriptionService:
    """Dictée du tassologue: envoi de l'audio, transcription longue durée, rafraîchissement."""

    def __init__(
        self,
        personalization: PersonalizationService,
        readings: ReadingService,
        storage: ObjectStorage,
        speech: SpeechClient,
    ):
        self.personalization = personalization
        self.readings = readings
        self.storage = storage
        self.speech = speech

    def _fail(self, req: PersonalizationRequest, message: str) -> PersonalizationRequest:
        TRANSCRIPTIONS.labels("failed").inc()
        return self.personalization.store(
            req.model_copy(
                update={
                    "transcription_status": TranscriptionStatus.FAILED,
                    "transcription_error": message[:TRANSCRIPTION_ERROR_MAX_LEN],
                    "updated_at": utcnow(),
                }
            )
        )

    def process_and_transcribe(self, request_id: str, audio_base64: str, mime_type: str) -> str:
        """process-and-transcribe-audio: stocke l'audio et lance la transcription; renvoie l'opération."""
        if not mime_type.strip():
            raise ValidationError("mimeType", "required", "MIME type is required (e.g., audio/webm).")
        req = self.personalization.load(request_id)
        try:
            audio = base64.b64decode(audio_base64, validate=True)
        except (binascii.Error, ValueError) as err:
            raise ValidationError("audioBase64", "base64", "Audio data is not valid base64.") from err
        if not audio:
            raise ValidationError("audioBase64", "required", "Audio data is required.")

        ext = mime_type.split(";", 1)[0].split("/")[-1].strip() or "webm"
        path = f"tassologist-dictations/{req.id}/dictation-{int(utcnow().timestamp() * 1000)}.{ext}"
        try:
            stored = self.storage.upload(path, audio, mime_type, kind="audio")
            operation = self.speech.start(mime_type, audio_uri=stored.gs_uri)
        except RemoteCallError as err:
            self._fail(req, err.message)
            raise
        self.personalization.store(
            req.model_copy(
                update={
                    "dictated_audio_uri": stored.gs_uri,
                    "transcription_operation_id": operation,
                    "transcription_status": TranscriptionStatus.PENDING,
                    "transcription_error": None,
                    "updated_at": utcnow(),
                }
            )
        )
        TRANSCRIPTIONS.labels("started").inc()
        return operation

    def refresh(self, request_id: str) -> tuple[TranscriptionStatus, str | None, str | None]:
        """
        Interroge l'opération en cours; renvoie (statut, transcript, erreur).

        - non terminée: statut `pending`, lecture inchangée;
        - erreur: `failed` avec le message;
        - texte reconnu: ajouté au récit manuel de la lecture, `completed`;
        - aucun texte: `failed`.

        Une transcription déjà appliquée, ou une demande qui n'est plus actionnable, renvoie
        l'état stocké sans interroger le service ni toucher la lecture.
        """
        req = self.personalization.load(request_id)
        if not req.transcription_operation_id:
            raise ValidationError(
                "transcriptionOperationId", "required", "No transcription has been started."
            )
        if req.transcription_status is TranscriptionStatus.COMPLETED or req.status not in ACTIONABLE:
            log.info(
                "transcription_refresh_skipped",
                request_id=req.id,
                status=req.status.value,
                transcription_status=req.transcription_status.value,
            )
            return req.transcription_status, None, req.transcription_error
        try:
            poll = self.speech.poll(req.transcription_operation_id)
        except RemoteCallError as err:
            self._fail(req, err.message)
            raise

        if not poll.done:
            self.personalization.store(
                req.model_copy(
                    update={"transcription_status": TranscriptionStatus.PENDING, "updated_at": utcnow()}
                )
            )
            TRANSCRIPTIONS.labels("pending").inc()
            return TranscriptionStatus.PENDING, None, None
        if poll.error:
            self._fail(req, poll.error)
            return TranscriptionStatus.FAILED, None, poll.error[:TRANSCRIPTION_ERROR_MAX_LEN]
        transcript = (poll.transcript or "").strip()
        if not transcript:
            self._fail(req, NO_TEXT_RECOGNIZED)
            return TranscriptionStatus.FAILED, None, NO_TEXT_RECOGNIZED

        if req.original_reading_id:
            reading = self.readings.load(req.original_reading_id)
            existing = reading.manual_interpretation.rstrip()
            merged = f"{existing}\n\n{transcript}" if existing else transcript
            self.readings.save(
                reading.model_copy(update={"manual_interpretation": merged, "updated_at": utcnow()})
            )
        self.personalization.store(
            req.model_copy(
                update={
                    "transcription_status": TranscriptionStatus.COMPLETED,
                    "transcription_error": None,
                    "updated_at": utcnow(),
                }
            )
        )
        TRANSCRIPTIONS.labels("completed").inc()
        return TranscriptionStatus.COMPLETED, transcript, None


# ---------------------------------------------------------------------------
# Contenus d'accueil
# ---------------------------------------------------------------------------


class ContentService:
    """Tuiles et pistes audio de l'accueil; un document sans `enabled` est actif."""

    def __init__(self, tiles, audio_tracks):
        self.tiles = tiles
        self.audio_tracks = audio_tracks

    def list_tiles(self) -> list[Tile]:
        tiles = (Tile.model_validate(d) for d in self.tiles.query(order_by="order"))
        return [t for t in tiles if t.enabled]

    def list_audio_tracks(self) -> list[AudioTrack]:
        tracks = (AudioTrack.model_validate(d) for d in self.audio_tracks.query(order_by="order"))
        return [t for t in tracks if t.enabled]
