"""
Ticket Events
=============

Builds outbox events for ticket mutations.

Each event carries a snapshot of the ticket, the audience the dispatcher
should notify, and an idempotency key derived from the activity row that
caused it, so replaying the same mutation never enqueues twice.
"""

from typing import Any, Iterable, Optional, Union
from uuid import UUID

from ticketflow.outbox.domain import DEFAULT_PRIORITY, OutboxEvent

AGGREGATE_TYPE = "ticket"

# Escalations jump the queue
PRIORITIES = {
    "ticket.escalated": 1,
    "ticket.assigned": 3,
}


def _str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def ticket_event(
    ticket: Any,
    event_type: str,
    *,
    actor_id: Optional[UUID],
    status: Optional[str] = None,
    recipients: Iterable[Optional[Union[UUID, str]]] = (),
    slack: Union[bool, str] = False,
    activity_id: Optional[int] = None,
    **details: Any,
) -> OutboxEvent:
    """
    Outbox event for ``ticket``.

    Args:
        ticket: the ticket row after the mutation
        event_type: one of the EventType values
        actor_id: who caused the event
        status: current status value
        recipients: user ids to email (None entries and the actor are dropped)
        slack: True for the default channel, or a channel name
        activity_id: activity row the event stems from
        **details: event-specific payload fields
    """
    audience = []
    for user_id in recipients:
        if user_id is None or (actor_id is not None and str(user_id) == str(actor_id)):
            continue
        if str(user_id) not in audience:
            audience.append(str(user_id))

    payload = {
        "ticket_id": ticket.id,
        "ticket_number": ticket.ticket_number,
        "title": ticket.title,
        "location": ticket.location,
        "status": status,
        "creator_id": _str(ticket.created_by),
        "assignee_id": _str(ticket.assigned_to),
        "escalation_level": ticket.escalation_level,
        "actor_id": _str(actor_id),
        "recipients": audience,
        "slack": slack,
        **{k: v for k, v in details.items() if v is not None},
    }

    key = None
    if activity_id is not None:
        key = f"{event_type}:{AGGREGATE_TYPE}:{ticket.id}:activity:{activity_id}"

    return OutboxEvent(
        event_type=event_type,
        aggregate_type=AGGREGATE_TYPE,
        aggregate_id=str(ticket.id),
        payload=payload,
        idempotency_key=key,
        priority=PRIORITIES.get(event_type, DEFAULT_PRIORITY),
        created_by=actor_id,
    )
