"""Dépendances partagées des routes: identité courante et contrôle de rôle."""

from fastapi import Depends, Header

from sipnread.core.container import container
from sipnread.domain.auth import decode_token
from sipnread.domain.entities import Role, User
from sipnread.domain.errors import NotAuthenticatedError, PermissionDeniedError


def get_current_user(authorization: str | None = Header(None)) -> User:
    """Extrait et valide l'utilisateur courant à partir du token `Bearer`."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise NotAuthenticatedError("The function must be called while authenticated.")
    token = authorization.split(" ", 1)[1]
    data = decode_token(token, container.settings.JWT_SECRET, container.settings.JWT_ALG)
    if not data:
        raise NotAuthenticatedError("Invalid or expired token.")
    user = container.user_repo.get(data.sub)
    if not user:
        raise NotAuthenticatedError("User not found.")
    return User(id=user["id"], email=user["email"], role=user.get("role", Role.USER.value))


def require_tassologist(user: User = Depends(get_current_user)) -> User:
    """Réserve une route au rôle `tassologist`."""
    if user.role is not Role.TASSOLOGIST:
        raise PermissionDeniedError("This action is reserved to tassologists.")
    return user
