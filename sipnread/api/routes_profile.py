"""Routes du profil utilisateur."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from sipnread.api.deps import get_current_user
from sipnread.core.container import container
from sipnread.domain.entities import User

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("")
def get_profile(user: User = Depends(get_current_user)):
    return container.profiles.get(user.id).to_doc()


@router.put("")
def update_user_profile(payload: Any = Body(...), user: User = Depends(get_current_user)):
    """Met à jour nom, bio, photo et date de naissance (chaîne vide = effacer)."""
    profile = container.profiles.update(user.id, payload)
    return {"success": True, "message": "Profile updated successfully.", "profile": profile.to_doc()}
