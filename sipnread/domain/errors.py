"""
Taxonomie des erreurs du domaine.

Chaque erreur porte un `code` stable (utilisé par l'enveloppe d'erreur HTTP et par la
classification côté client) et, pour les erreurs de validation, le champ et la contrainte
en cause.
"""

from __future__ import annotations

from typing import Any


class SipNReadError(Exception):
    """Erreur de base du domaine."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialise l'erreur avec un message lisible et des détails optionnels."""
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(SipNReadError):
    """Entrée refusée par son schéma déclaré (avant tout appel distant)."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, constraint: str, message: str | None = None) -> None:
        """Initialise l'erreur avec le champ et la contrainte violée."""
        super().__init__(
            message or f"{field}: {constraint}",
            details={"field": field, "constraint": constraint},
        )
        self.field = field
        self.constraint = constraint


class PromptTooLongError(ValidationError):
    """Le prompt rendu dépasse la longueur maximale acceptée par le modèle."""

    code = "PROMPT_TOO_LONG"


class SchemaValidationError(SipNReadError):
    """La sortie du modèle ne respecte pas le schéma de sortie déclaré."""

    code = "SCHEMA_VALIDATION_FAILED"

    def __init__(self, field: str, constraint: str, message: str | None = None) -> None:
        """Initialise l'erreur avec le champ et la contrainte violée."""
        super().__init__(
            message or f"Schema validation failed at {field}: {constraint}",
            details={"field": field, "constraint": constraint},
        )
        self.field = field
        self.constraint = constraint


class EmptyOutputError(SipNReadError):
    """Le modèle n'a renvoyé aucune sortie exploitable."""

    code = "EMPTY_OUTPUT"


class RemoteCallError(SipNReadError):
    """Échec réseau/auth/quota d'un service distant (modèle, stockage, base, speech)."""

    code = "REMOTE_CALL_FAILED"

    def __init__(self, service: str, message: str) -> None:
        """Initialise l'erreur avec le service distant concerné."""
        super().__init__(message, details={"service": service})
        self.service = service


class NotAuthenticatedError(SipNReadError):
    """Identité requise absente pour l'opération."""

    code = "UNAUTHORIZED"


class PermissionDeniedError(SipNReadError):
    """Identité présente mais non autorisée sur la ressource."""

    code = "FORBIDDEN"


class NotFoundError(SipNReadError):
    """Ressource introuvable."""

    code = "NOT_FOUND"


class InvalidTransitionError(SipNReadError):
    """Transition de statut refusée par la machine à états."""

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str) -> None:
        """Initialise l'erreur avec les statuts courant et demandé."""
        super().__init__(
            f"Reading request status is '{current}', cannot move to '{target}'.",
            details={"current": current, "target": target},
        )
        self.current = current
        self.target = target
