"""
Routes du cycle de vie des lectures personnalisées.

Côté utilisateur: soumission, historique, lecture du résultat (`read`), annulation.
Côté tassologue: file d'attente, historique, détail, enregistrement brouillon/final,
dictée audio et rafraîchissement de la transcription.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends

from sipnread.api.deps import get_current_user, require_tassologist
from sipnread.api.schemas import DictationPayload
from sipnread.core.container import container
from sipnread.domain.entities import TranscriptionStatus, User

router = APIRouter(prefix="/personalized-readings", tags=["personalized-readings"])


@router.post("")
def submit_personalization_request(
    payload: Any = Body(...), user: User = Depends(get_current_user)
):
    req = container.personalization.submit(user, payload)
    return {
        "success": True,
        "requestId": req.id,
        "message": "Personalized reading request submitted successfully.",
    }


@router.get("/mine")
def list_my_requests(user: User = Depends(get_current_user)):
    return {"requests": [r.to_doc() for r in container.personalization.list_for_user(user.id)]}


@router.get("/queue")
def tassologist_queue(user: User = Depends(require_tassologist)):
    """Demandes `new`/`in-progress`, plus anciennes d'abord."""
    return {"requests": [r.to_doc() for r in container.personalization.queue()]}


@router.get("/past")
def tassologist_past(user: User = Depends(require_tassologist)):
    return {"requests": [r.to_doc() for r in container.personalization.past()]}


@router.get("/{request_id}")
def get_request(request_id: str, user: User = Depends(get_current_user)):
    req, reading = container.personalization.detail(user, request_id)
    return {"request": req.to_doc(), "reading": reading.to_doc() if reading else None}


@router.post("/{request_id}/interpretation")
def save_tassologist_interpretation(
    request_id: str, payload: dict = Body(...), user: User = Depends(require_tassologist)
):
    """Enregistre l'interprétation du tassologue (`saveType`: draft | complete)."""
    req = container.personalization.save_interpretation(user, {**payload, "requestId": request_id})
    done = payload.get("saveType") == "complete"
    return {
        "success": True,
        "status": req.status.value,
        "message": f"Interpretation {'completed' if done else 'draft saved'}.",
    }


@router.post("/{request_id}/read")
def mark_personalized_reading_as_read(request_id: str, user: User = Depends(get_current_user)):
    _, already = container.personalization.mark_as_read(user, request_id)
    message = "Reading was already marked as read." if already else "Reading marked as read."
    return {"success": True, "message": message}


@router.post("/{request_id}/cancel")
def cancel_request(request_id: str, user: User = Depends(get_current_user)):
    req = container.personalization.cancel(user, request_id)
    return {"success": True, "status": req.status.value, "message": "Request cancelled."}


@router.post("/{request_id}/dictation")
def process_and_transcribe_audio(
    request_id: str, p: DictationPayload, user: User = Depends(require_tassologist)
):
    """Stocke la dictée audio et lance la transcription longue durée."""
    operation = container.transcription.process_and_transcribe(
        request_id, p.audio_base64, p.mime_type
    )
    return {
        "success": True,
        "operationName": operation,
        "message": "Audio processed and transcription started.",
    }


@router.post("/{request_id}/transcription/refresh")
def refresh_transcription(request_id: str, user: User = Depends(require_tassologist)):
    """Interroge l'opération de transcription (rafraîchissement explicite)."""
    status, transcript, error = container.transcription.refresh(request_id)
    body: dict[str, Any] = {
        "success": status is TranscriptionStatus.COMPLETED,
        "status": status.value,
    }
    if transcript is not None:
        body["transcript"] = transcript
    if error is not None:
        body["message"] = error
    elif status is TranscriptionStatus.PENDING:
        body["message"] = "Transcription is still in progress."
    return body
