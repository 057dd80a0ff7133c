"""Interface de base pour les modèles génératifs multimodaux."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, overload


@dataclass(frozen=True)
class GenerationRequest:
    """Requête de génération: texte d'instructions, images jointes et contraintes de sortie."""

    text: str
    media: tuple[str, ...] = ()
    response_schema: dict[str, Any] | None = None
    # catégorie de contenu -> seuil de blocage
    safety_settings: dict[str, str] = field(default_factory=dict)
    model: str | None = None
    temperature: float | None = None


class LLM(ABC):
    """Interface abstraite pour les modèles génératifs.

    Les implémentations lèvent `RemoteCallError` en cas d'échec réseau/auth/quota et renvoient
    une chaîne vide si le modèle n'a rien produit.
    """

    name: str = "llm"
    model: str = ""

    @overload
    def generate(
        self,
        request: GenerationRequest,
        *,
        with_usage: Literal[True],
    ) -> tuple[str, dict[str, int]]: ...

    @overload
    def generate(
        self,
        request: GenerationRequest,
        *,
        with_usage: Literal[False] = False,
    ) -> str: ...

    @abstractmethod
    def generate(
        self,
        request: GenerationRequest,
        *,
        with_usage: bool = False,
    ) -> str | tuple[str, dict[str, int]]:
        """Génère une réponse textuelle (JSON attendu) à partir d'une requête."""
        ...
