"""
Outbox Events
=============

Value objects for events on their way into, and out of, the outbox table.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID

DEFAULT_PRIORITY = 5


@dataclass(frozen=True)
class OutboxEvent:
    """An event to enqueue."""
    event_type: str
    aggregate_type: str
    aggregate_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    idempotency_key: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    scheduled_at: Optional[datetime] = None
    max_attempts: Optional[int] = None
    created_by: Optional[UUID] = None


@dataclass(frozen=True)
class ClaimedEvent:
    """An event the dispatcher holds a claim on."""
    id: int
    event_type: str
    aggregate_type: str
    aggregate_id: str
    payload: Dict[str, Any]
    attempts: int
    max_attempts: int


def retry_delay(attempts: int, base_seconds: float) -> timedelta:
    """Exponential backoff: base, 2*base, 4*base, ... for attempts 1, 2, 3."""
    return timedelta(seconds=base_seconds * (2 ** max(attempts - 1, 0)))


def is_exhausted(attempts: int, max_attempts: int) -> bool:
    return attempts >= max_attempts
