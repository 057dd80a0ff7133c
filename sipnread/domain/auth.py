"""
Module d'authentification et de gestion des tokens.

Hachage des mots de passe (PBKDF2), création et validation des tokens JWT portant
l'identifiant, l'email et le rôle (`user` | `tassologist`) de l'utilisateur.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr

from sipnread.domain.entities import Role

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class TokenData(BaseModel):
    """Données contenues dans un token JWT."""

    sub: str
    email: EmailStr
    role: Role = Role.USER


def hash_password(p: str) -> str:
    """Hache un mot de passe en utilisant PBKDF2."""
    return pwd_context.hash(p)


def verify_password(p: str, h: str) -> bool:
    return pwd_context.verify(p, h)


def create_access_token(secret: str, alg: str, expires_min: int, payload: dict[str, Any]) -> str:
    """Crée un token JWT d'accès avec expiration."""
    to_encode = payload.copy()
    to_encode["exp"] = datetime.now(UTC) + timedelta(minutes=expires_min)
    return jwt.encode(to_encode, secret, algorithm=alg)


def decode_token(token: str, secret: str, alg: str) -> TokenData | None:
    """Décode et valide un token JWT; None si invalide ou expiré."""
    try:
        data = jwt.decode(token, secret, algorithms=[alg])
        return TokenData(**data)
    except InvalidTokenError:
        return None


def parse_email_list(raw: str | list[str] | None) -> set[str]:
    """Normalise une liste d'emails (liste ou CSV) en minuscules."""
    if not raw:
        return set()
    items = raw if isinstance(raw, list) else str(raw).split(",")
    return {str(x).strip().lower() for x in items if str(x).strip()}
