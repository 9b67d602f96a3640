"""
Tickets Domain Layer
====================

Status registry entries, the transition table, ticket metadata and the
outbox events tickets emit.
"""

from ticketflow.tickets.domain.events import ticket_event
from ticketflow.tickets.domain.metadata import TicketMetadata
from ticketflow.tickets.domain.statuses import DEFAULT_STATUSES, StatusEntry, StatusSnapshot
from ticketflow.tickets.domain.transitions import (
    PAUSE_STATUS,
    TransitionPlan,
    can_transition,
    plan_transition,
)

__all__ = [
    "ticket_event",
    "TicketMetadata",
    "DEFAULT_STATUSES",
    "StatusEntry",
    "StatusSnapshot",
    "PAUSE_STATUS",
    "TransitionPlan",
    "can_transition",
    "plan_transition",
]
