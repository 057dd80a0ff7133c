"""Routes des lectures IA (enregistrement, historique, détail)."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from sipnread.api.deps import get_current_user
from sipnread.core.container import container
from sipnread.domain.entities import User

router = APIRouter(prefix="/readings", tags=["readings"])


@router.post("")
def save_reading_data(payload: Any = Body(...), user: User = Depends(get_current_user)):
    """Enregistre une lecture (entrées + résultat de l'analyse) pour l'utilisateur courant."""
    reading = container.readings.save_reading(user, payload)
    return {"success": True, "readingId": reading.id, "message": "Reading saved successfully."}


@router.get("")
def list_my_readings(user: User = Depends(get_current_user)):
    return {"readings": [r.to_doc() for r in container.readings.list_for_user(user.id)]}


@router.get("/{reading_id}")
def get_reading(reading_id: str, user: User = Depends(get_current_user)):
    return container.readings.get_for(user, reading_id).to_doc()
