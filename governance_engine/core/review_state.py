"""
Review status as a tagged union.

    InReview                     (open, the only non-terminal state)
    Decided(decision, reason)    (terminal)
    Cancelled(reason)            (terminal)

The ``governance_reviews`` table stores the tag in ``status`` and the payload
in ``decision`` / ``decision_reason``.  ``review_state_of()`` rebuilds the
union from a row; the repository turns a target state back into a
conditioned UPDATE (see ``review_repository.transition_status``).
"""

from __future__ import annotations

from dataclasses import dataclass

STATUS_IN_REVIEW = "in-review"
STATUS_DECIDED = "decided"
STATUS_CANCELLED = "cancelled"

REVIEW_STATUSES = (STATUS_IN_REVIEW, STATUS_DECIDED, STATUS_CANCELLED)

DECISIONS = ("approved-now", "approved-backlog", "needs-info", "rejected")

# Allowed transitions: in-review is the only source state.
REVIEW_TRANSITIONS = {
    STATUS_IN_REVIEW: {STATUS_DECIDED, STATUS_CANCELLED},
    STATUS_DECIDED: set(),
    STATUS_CANCELLED: set(),
}


@dataclass(frozen=True)
class InReview:
    status = STATUS_IN_REVIEW
    terminal = False


@dataclass(frozen=True)
class Decided:
    decision: str
    reason: str | None = None

    status = STATUS_DECIDED
    terminal = True

    def __post_init__(self):
        if self.decision not in DECISIONS:
            raise ValueError(f"decision must be one of: {', '.join(DECISIONS)}")


@dataclass(frozen=True)
class Cancelled:
    reason: str | None = None

    status = STATUS_CANCELLED
    terminal = True


ReviewState = InReview | Decided | Cancelled


def review_state_of(status: str, decision: str | None = None, reason: str | None = None) -> ReviewState:
    """Build the tagged state from stored column values."""
    if status == STATUS_IN_REVIEW:
        return InReview()
    if status == STATUS_DECIDED:
        return Decided(decision=decision, reason=reason)
    if status == STATUS_CANCELLED:
        return Cancelled(reason=reason)
    raise ValueError(f"Unknown review status '{status}'")


def can_transition(current: str, target: str) -> bool:
    return target in REVIEW_TRANSITIONS.get(current, set())
