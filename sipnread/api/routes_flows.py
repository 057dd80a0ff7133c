"""
Routes des opérations d'interprétation.

Le corps est transmis tel quel à l'orchestrateur, qui le valide contre le schéma d'entrée de
l'opération (erreur 422 nommant le champ et la contrainte). Réponses: sortie structurée de
l'opération, sous ses noms de champs publics.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends

from sipnread.api.deps import get_current_user
from sipnread.core.container import container
from sipnread.domain.entities import User

router = APIRouter(prefix="/flows", tags=["flows"])


@router.post("/analyze-tea-leaf-patterns")
def analyze_tea_leaf_patterns(
    payload: Any = Body(...), user: User = Depends(get_current_user)
) -> dict:
    """Analyse jusqu'à 4 photos d'une tasse: symboles détectés et récit."""
    return container.flows.analyze_tea_leaf_patterns(payload).dump()


@router.post("/generate-interpretation")
def generate_interpretation(
    payload: Any = Body(...), user: User = Depends(get_current_user)
) -> dict:
    return container.flows.generate_interpretation(payload).dump()


@router.post("/extract-symbols")
def extract_symbols(payload: Any = Body(...), user: User = Depends(get_current_user)) -> dict:
    """Extrait les symboles (et positions horaires explicites) d'un texte d'interprétation."""
    return container.flows.extract_symbols_from_text(payload).dump()
