"""
Quote status transitions.

    draft → sent → viewed → accepted | rejected | revised
    sent | viewed → expired
    revised → sent | viewed | accepted | rejected | revised
    accepted → converted
    draft → cancelled
"""
from ..exceptions import InvalidStateError
from .models import QuoteStatus

S = QuoteStatus

ALLOWED_TRANSITIONS: dict[QuoteStatus, frozenset] = {
    S.DRAFT: frozenset({S.SENT, S.REVISED, S.CANCELLED}),
    S.SENT: frozenset({S.VIEWED, S.ACCEPTED, S.REJECTED, S.REVISED, S.EXPIRED}),
    S.VIEWED: frozenset({S.ACCEPTED, S.REJECTED, S.REVISED, S.EXPIRED}),
    S.REVISED: frozenset({S.SENT, S.VIEWED, S.ACCEPTED, S.REJECTED, S.REVISED}),
    S.ACCEPTED: frozenset({S.CONVERTED}),
    S.REJECTED: frozenset(),
    S.EXPIRED: frozenset(),
    S.CONVERTED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def can_transition(current: QuoteStatus, target: QuoteStatus) -> bool:
    return QuoteStatus(target) in ALLOWED_TRANSITIONS[QuoteStatus(current)]


def ensure_transition(current: QuoteStatus, target: QuoteStatus):
    """Raise InvalidStateError unless ``current → target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Cannot move quote from '{QuoteStatus(current).value}' "
            f"to '{QuoteStatus(target).value}'"
        )
