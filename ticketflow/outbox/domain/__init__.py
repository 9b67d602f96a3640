"""
Outbox Domain Layer
===================

Event value objects and retry policy for the transactional outbox.
"""

from ticketflow.outbox.domain.events import (
    DEFAULT_PRIORITY,
    ClaimedEvent,
    OutboxEvent,
    is_exhausted,
    retry_delay,
)

__all__ = [
    "DEFAULT_PRIORITY",
    "ClaimedEvent",
    "OutboxEvent",
    "is_exhausted",
    "retry_delay",
]
