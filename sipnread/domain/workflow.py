"""Machine à états des demandes de lecture personnalisée.

    new ──> in-progress ──> completed ──> read
     │            │
     └────────────┴──> cancelled

`new` peut aussi passer directement à `completed` (le tassologue termine sans brouillon).
`read` et `cancelled` sont terminaux.
"""

from __future__ import annotations

from sipnread.app.metrics import REQUEST_TRANSITIONS
from sipnread.domain.entities import RequestStatus
from sipnread.domain.errors import InvalidTransitionError

S = RequestStatus

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    S.NEW: frozenset({S.IN_PROGRESS, S.COMPLETED, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.IN_PROGRESS, S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset({S.READ}),
    S.READ: frozenset(),
    S.CANCELLED: frozenset(),
}

# statuts sur lesquels un tassologue peut encore agir
ACTIONABLE = frozenset({S.NEW, S.IN_PROGRESS})
# statuts visibles dans l'historique du tassologue
PAST = frozenset({S.COMPLETED, S.READ})


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


def transition(current: RequestStatus, target: RequestStatus) -> RequestStatus:
    """Valide `current -> target` et renvoie le nouveau statut; lève `InvalidTransitionError`."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    if current is not target:
        REQUEST_TRANSITIONS.labels(current.value, target.value).inc()
    return target
