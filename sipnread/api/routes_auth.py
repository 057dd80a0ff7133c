"""
Routes d'authentification pour l'API.

Inscription (création du compte et du profil), connexion (jeton JWT) et identité courante.
Le rôle `tassologist` est attribué aux emails listés dans `TASSOLOGIST_EMAILS`.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from sipnread.api.deps import get_current_user
from sipnread.api.schemas import LoginPayload, SignupPayload
from sipnread.core.container import container
from sipnread.domain.auth import (
    create_access_token,
    hash_password,
    parse_email_list,
    verify_password,
)
from sipnread.domain.entities import Role, User

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup")
def signup(p: SignupPayload):
    """Inscrit un nouvel utilisateur et crée son profil."""
    email = str(p.email).lower()
    if container.user_repo.get_by_email(email):
        raise HTTPException(status_code=409, detail="email_exists")
    tassologists = parse_email_list(container.settings.TASSOLOGIST_EMAILS)
    role = Role.TASSOLOGIST if email in tassologists else Role.USER
    user = {
        "id": uuid.uuid4().hex,
        "email": email,
        "password_hash": hash_password(p.password),
        "role": role.value,
    }
    container.user_repo.save(user)
    container.profiles.create(User(id=user["id"], email=email, role=role), name=p.name)
    return {"id": user["id"], "email": email, "role": role.value}


@router.post("/login")
def login(p: LoginPayload):
    """Authentifie un utilisateur et retourne un token d'accès."""
    user = container.user_repo.get_by_email(str(p.email).lower())
    if not user or not verify_password(p.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="invalid_credentials")
    token = create_access_token(
        secret=container.settings.JWT_SECRET,
        alg=container.settings.JWT_ALG,
        expires_min=container.settings.JWT_EXPIRES_MIN,
        payload={"sub": user["id"], "email": user["email"], "role": user.get("role", "user")},
    )
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return user.model_dump(mode="json")
