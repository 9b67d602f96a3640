"""
Status Transitions
==================

The ticket state machine as one explicit table, plus the side effects each
transition carries. The mutation service is the only caller.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from ticketflow.config import TicketStatus
from ticketflow.core.exceptions import InvalidTransitionException

S = TicketStatus

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.OPEN: frozenset({
        S.ACKNOWLEDGED, S.IN_PROGRESS, S.AWAITING_STUDENT_RESPONSE, S.RESOLVED, S.CANCELLED,
    }),
    S.ACKNOWLEDGED: frozenset({
        S.IN_PROGRESS, S.AWAITING_STUDENT_RESPONSE, S.RESOLVED, S.CANCELLED,
    }),
    S.IN_PROGRESS: frozenset({
        S.ACKNOWLEDGED, S.AWAITING_STUDENT_RESPONSE, S.RESOLVED, S.CANCELLED,
    }),
    S.AWAITING_STUDENT_RESPONSE: frozenset({
        S.IN_PROGRESS, S.RESOLVED, S.CANCELLED,
    }),
    S.RESOLVED: frozenset({S.CLOSED, S.REOPENED}),
    S.CLOSED: frozenset({S.REOPENED}),
    S.REOPENED: frozenset({
        S.ACKNOWLEDGED, S.IN_PROGRESS, S.AWAITING_STUDENT_RESPONSE, S.RESOLVED,
        S.CLOSED, S.CANCELLED,
    }),
    S.CANCELLED: frozenset(),
}

# Entering this status freezes the TAT countdown; leaving it resumes it
PAUSE_STATUS = S.AWAITING_STUDENT_RESPONSE

# Timestamp column stamped on entry
STAMPS: Dict[str, str] = {
    S.ACKNOWLEDGED: "acknowledged_at",
    S.RESOLVED: "resolved_at",
    S.CLOSED: "closed_at",
    S.REOPENED: "reopened_at",
}


@dataclass(frozen=True)
class TransitionPlan:
    """What the mutation service must do alongside a status change."""
    from_status: str
    to_status: str
    pause_tat: bool = False
    resume_tat: bool = False
    stamp: Optional[str] = None
    reopen: bool = False


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def plan_transition(from_status: str, to_status: str) -> TransitionPlan:
    """
    Validate a transition and describe its side effects.

    Raises:
        InvalidTransitionException: the pair is not in the table
    """
    if not can_transition(from_status, to_status):
        raise InvalidTransitionException(from_status, to_status)

    return TransitionPlan(
        from_status=from_status,
        to_status=to_status,
        pause_tat=to_status == PAUSE_STATUS,
        resume_tat=from_status == PAUSE_STATUS,
        stamp=STAMPS.get(to_status),
        reopen=to_status == S.REOPENED,
    )
