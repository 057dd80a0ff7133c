"""
Tests des services métier: lectures, demandes personnalisées, transcription, profils.

Les services sont ceux du conteneur de test (collections en mémoire, transcription factice).
"""

from __future__ import annotations

import base64

import pytest

from sipnread.domain.entities import RequestStatus, Role, TranscriptionStatus, User
from sipnread.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    RemoteCallError,
    ValidationError,
)
from sipnread.domain.services import NO_TEXT_RECOGNIZED, format_position
from sipnread.infra.speech_client import TranscriptionPoll
from tests.fakes import PHOTO_1, analysis_output

ADA = User(id="u-ada", email="ada@example.com")
BOB = User(id="u-bob", email="bob@example.com")
ROXY = User(id="u-roxy", email="roxy@example.com", role=Role.TASSOLOGIST)
AUDIO_B64 = base64.b64encode(b"fake-webm-bytes").decode()
ERROR_MAX_LEN = 500


@pytest.fixture
def people(app_container):
    for user, name in ((ADA, "Ada"), (BOB, "Bob"), (ROXY, "Roxy")):
        app_container.profiles.create(user, name=name)
    return app_container


def _reading_payload(**extra) -> dict:
    out = analysis_output()
    return {
        "imageStorageUrls": [PHOTO_1],
        "aiSymbolsDetected": out["aiSymbolsDetected"],
        "aiInterpretation": out["aiInterpretation"],
        "userQuestion": "Will I travel?",
        "userSymbolNames": ["Serpent", "Ship"],
        **extra,
    }


def _submitted(c):
    reading = c.readings.save_reading(ADA, _reading_payload(readingType="tea"))
    req = c.personalization.submit(ADA, {"userEmail": ADA.email, "originalReadingId": reading.id})
    return reading, req


def test_format_position() -> None:
    assert format_position(3) == "3 o'clock"
    assert format_position(None) == "General area"
    assert format_position(0) == "General area"


def test_save_reading_updates_profile_stats(people) -> None:
    """Teste l'enregistrement d'une lecture et l'incrément des statistiques du profil."""
    reading = people.readings.save_reading(ADA, _reading_payload())
    stored = people.readings.load(reading.id)
    assert stored.user_id == ADA.id
    assert stored.photo_storage_urls == [PHOTO_1]
    assert stored.manual_interpretation == ""
    profile = people.profiles.get(ADA.id)
    assert profile.number_of_readings == 1
    assert profile.last_reading_date is not None


def test_save_reading_requires_complete_analysis(people) -> None:
    with pytest.raises(ValidationError) as exc:
        people.readings.save_reading(ADA, _reading_payload(aiInterpretation=""))
    assert exc.value.field == "aiInterpretation"


def test_reading_visible_to_owner_and_tassologist_only(people) -> None:
    reading = people.readings.save_reading(ADA, _reading_payload())
    assert people.readings.get_for(ROXY, reading.id).id == reading.id
    with pytest.raises(PermissionDeniedError):
        people.readings.get_for(BOB, reading.id)
    with pytest.raises(NotFoundError):
        people.readings.get_for(ADA, "missing")


def test_submit_assigns_tassologist_and_queues_mail(people) -> None:
    reading, req = _submitted(people)
    assert req.status is RequestStatus.NEW
    assert req.tassologist_id == ROXY.id
    assert req.reading_type.value == "tea"
    assert req.price == people.personalization.price
    mails = people.collections["mail"].query()
    assert [m["to"] for m in mails] == [[ROXY.email]]
    assert "New Personalized Reading Request from Ada" == mails[0]["subject"]
    assert reading.id in mails[0]["html"]


def test_submit_without_tassologist_sends_no_mail(app_container) -> None:
    app_container.profiles.create(ADA, name="Ada")
    req = app_container.personalization.submit(ADA, {"userEmail": ADA.email})
    assert req.tassologist_id is None
    assert app_container.collections["mail"].query() == []


def test_submit_rejects_foreign_reading(people) -> None:
    reading = people.readings.save_reading(ADA, _reading_payload())
    with pytest.raises(PermissionDeniedError):
        people.personalization.submit(BOB, {"userEmail": BOB.email, "originalReadingId": reading.id})


def test_lifecycle_new_in_progress_completed_read(people) -> None:
    """Teste le cycle complet: brouillon, finalisation, notification, lecture."""
    reading, req = _submitted(people)
    draft = people.personalization.save_interpretation(
        ROXY,
        {
            "requestId": req.id,
            "manualSymbols": [{"symbol": "Anchor", "position": 3}, {"symbol": "Bird", "position": ""}],
            "manualInterpretation": "First thoughts",
            "saveType": "draft",
        },
    )
    assert draft.status is RequestStatus.IN_PROGRESS
    stored = people.readings.load(reading.id)
    assert [(s.symbol_name, s.true_position_in_cup) for s in stored.manual_symbols_detected] == [
        ("Anchor", "3 o'clock"),
        ("Bird", "General area"),
    ]

    done = people.personalization.save_interpretation(
        ROXY,
        {"requestId": req.id, "manualInterpretation": "A safe harbour awaits you.", "saveType": "complete"},
    )
    assert done.status is RequestStatus.COMPLETED
    assert done.completion_date is not None
    user_mail = [m for m in people.collections["mail"].query() if m["to"] == [ADA.email]]
    assert user_mail and f"roxyRequestId={req.id}" in user_mail[0]["html"]

    read, already = people.personalization.mark_as_read(ADA, req.id)
    assert read.status is RequestStatus.READ and not already
    _, already = people.personalization.mark_as_read(ADA, req.id)
    assert already


def test_read_before_completion_rejected(people) -> None:
    _, req = _submitted(people)
    with pytest.raises(InvalidTransitionError):
        people.personalization.mark_as_read(ADA, req.id)


def test_complete_requires_ten_characters(people) -> None:
    _, req = _submitted(people)
    with pytest.raises(ValidationError) as exc:
        people.personalization.save_interpretation(
            ROXY, {"requestId": req.id, "manualInterpretation": "short", "saveType": "complete"}
        )
    assert exc.value.field == "manualInterpretation"
    assert people.personalization.load(req.id).status is RequestStatus.NEW


def test_completed_request_cannot_be_edited_or_cancelled(people) -> None:
    _, req = _submitted(people)
    payload = {"requestId": req.id, "manualInterpretation": "Long enough text.", "saveType": "complete"}
    people.personalization.save_interpretation(ROXY, payload)
    with pytest.raises(InvalidTransitionError):
        people.personalization.save_interpretation(ROXY, {**payload, "saveType": "draft"})
    with pytest.raises(InvalidTransitionError):
        people.personalization.cancel(ADA, req.id)


def test_mark_as_read_requires_owner(people) -> None:
    _, req = _submitted(people)
    with pytest.raises(PermissionDeniedError):
        people.personalization.mark_as_read(BOB, req.id)


def test_queue_and_past_views(people) -> None:
    _, first = _submitted(people)
    _, second = _submitted(people)
    _, cancelled = _submitted(people)
    people.personalization.cancel(ADA, cancelled.id)
    assert [r.id for r in people.personalization.queue()] == [first.id, second.id]
    people.personalization.save_interpretation(
        ROXY, {"requestId": first.id, "manualInterpretation": "All is well ahead.", "saveType": "complete"}
    )
    assert [r.id for r in people.personalization.queue()] == [second.id]
    assert [r.id for r in people.personalization.past()] == [first.id]


def test_dictation_stores_audio_and_starts_operation(people, speech) -> None:
    """Teste la dictée: audio stocké, opération lancée, transcription en attente."""
    _, req = _submitted(people)
    op = people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm;codecs=opus")
    assert op == "op-1"
    (path,) = people.object_storage.objects
    assert path.startswith(f"tassologist-dictations/{req.id}/dictation-")
    assert path.endswith(".webm")
    assert speech.started[0]["audio_uri"] == f"gs://sipnread-local/{path}"
    stored = people.personalization.load(req.id)
    assert stored.transcription_status is TranscriptionStatus.PENDING
    assert stored.transcription_operation_id == "op-1"


def test_dictation_rejects_bad_input(people) -> None:
    _, req = _submitted(people)
    with pytest.raises(ValidationError):
        people.transcription.process_and_transcribe(req.id, AUDIO_B64, "  ")
    with pytest.raises(ValidationError):
        people.transcription.process_and_transcribe(req.id, "%%not-base64%%", "audio/webm")


def test_dictation_remote_failure_marks_request(people, speech) -> None:
    _, req = _submitted(people)
    speech.fail_start = RemoteCallError("speech", "Speech API error 403: denied")
    with pytest.raises(RemoteCallError):
        people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    stored = people.personalization.load(req.id)
    assert stored.transcription_status is TranscriptionStatus.FAILED
    assert "403" in stored.transcription_error


def test_refresh_pending_leaves_reading_untouched(people, speech) -> None:
    """Teste qu'une opération non terminée ne modifie pas la lecture."""
    reading, req = _submitted(people)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    before = people.readings.load(reading.id)
    status, transcript, error = people.transcription.refresh(req.id)
    assert (status, transcript, error) == (TranscriptionStatus.PENDING, None, None)
    assert people.readings.load(reading.id) == before


def test_refresh_appends_transcript_to_manual_interpretation(people, speech) -> None:
    reading, req = _submitted(people)
    people.personalization.save_interpretation(
        ROXY, {"requestId": req.id, "manualInterpretation": "Typed notes.", "saveType": "draft"}
    )
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    speech.next_poll = TranscriptionPoll(done=True, transcript="I see an anchor.\nStability ahead.")
    status, transcript, _ = people.transcription.refresh(req.id)
    assert status is TranscriptionStatus.COMPLETED
    assert transcript == "I see an anchor.\nStability ahead."
    merged = people.readings.load(reading.id).manual_interpretation
    assert merged == "Typed notes.\n\nI see an anchor.\nStability ahead."
    assert people.personalization.load(req.id).transcription_status is TranscriptionStatus.COMPLETED


def test_refresh_twice_appends_transcript_once(people, speech) -> None:
    """Teste qu'un second rafraîchissement ne duplique pas la dictée dans le récit."""
    reading, req = _submitted(people)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    speech.next_poll = TranscriptionPoll(done=True, transcript="I see an anchor.")
    people.transcription.refresh(req.id)
    status, transcript, error = people.transcription.refresh(req.id)
    assert (status, transcript, error) == (TranscriptionStatus.COMPLETED, None, None)
    assert people.readings.load(reading.id).manual_interpretation == "I see an anchor."


def test_refresh_after_completion_keeps_final_reading(people, speech) -> None:
    reading, req = _submitted(people)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    people.personalization.save_interpretation(
        ROXY, {"requestId": req.id, "manualInterpretation": "Final reading text.", "saveType": "complete"}
    )
    speech.next_poll = TranscriptionPoll(done=True, transcript="Late dictation.")
    status, transcript, _ = people.transcription.refresh(req.id)
    assert status is TranscriptionStatus.COMPLETED
    assert transcript is None
    assert people.readings.load(reading.id).manual_interpretation == "Final reading text."


def test_new_dictation_after_applied_transcript_is_appended(people, speech) -> None:
    reading, req = _submitted(people)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    speech.next_poll = TranscriptionPoll(done=True, transcript="First part.")
    people.transcription.refresh(req.id)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    speech.next_poll = TranscriptionPoll(done=True, transcript="Second part.")
    people.transcription.refresh(req.id)
    assert people.readings.load(reading.id).manual_interpretation == "First part.\n\nSecond part."


def test_refresh_without_text_fails(people, speech) -> None:
    reading, req = _submitted(people)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    speech.next_poll = TranscriptionPoll(done=True, transcript="  ")
    status, _, error = people.transcription.refresh(req.id)
    assert status is TranscriptionStatus.FAILED
    assert error == NO_TEXT_RECOGNIZED
    assert people.readings.load(reading.id).manual_interpretation == ""


def test_refresh_error_truncated(people, speech) -> None:
    _, req = _submitted(people)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    speech.next_poll = TranscriptionPoll(done=True, error="x" * 800)
    status, _, error = people.transcription.refresh(req.id)
    assert status is TranscriptionStatus.FAILED
    assert len(error) == ERROR_MAX_LEN
    assert len(people.personalization.load(req.id).transcription_error) == ERROR_MAX_LEN


def test_refresh_without_operation_rejected(people) -> None:
    _, req = _submitted(people)
    with pytest.raises(ValidationError):
        people.transcription.refresh(req.id)


def test_complete_marks_pending_transcription_completed(people) -> None:
    _, req = _submitted(people)
    people.transcription.process_and_transcribe(req.id, AUDIO_B64, "audio/webm")
    done = people.personalization.save_interpretation(
        ROXY, {"requestId": req.id, "manualInterpretation": "Final reading text.", "saveType": "complete"}
    )
    assert done.transcription_status is TranscriptionStatus.COMPLETED


def test_profile_update_blank_values_clear_fields(people) -> None:
    people.profiles.update(
        ADA.id, {"name": "Ada L.", "bio": "Tea lover", "birthdate": "1990-05-01", "profilePicUrl": PHOTO_1}
    )
    updated = people.profiles.update(ADA.id, {"name": "Ada L.", "birthdate": "", "profilePicUrl": ""})
    assert updated.birthdate is None
    assert updated.profile_pic_url is None
    assert updated.bio == "Tea lover"
    with pytest.raises(ValidationError):
        people.profiles.update(ADA.id, {"name": "", "bio": "x"})
    with pytest.raises(ValidationError):
        people.profiles.update(ADA.id, {"name": "Ada", "bio": "x" * 501})


def test_content_lists_enabled_items_in_order(app_container) -> None:
    tiles = app_container.collections["tiles"]
    tiles.save({"id": "b", "title": "Tarot", "order": 2})
    tiles.save({"id": "a", "title": "Tea", "order": 1})
    tiles.save({"id": "c", "title": "Hidden", "order": 0, "enabled": False})
    assert [t.id for t in app_container.content.list_tiles()] == ["a", "b"]
