"""
Outbox Application Interfaces
=============================

Repository and sender abstractions the dispatcher depends on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ticketflow.outbox.domain import ClaimedEvent, OutboxEvent


class IOutboxRepository(ABC):
    """Interface for outbox data access."""

    @abstractmethod
    async def enqueue(self, event: OutboxEvent) -> Any:
        """Insert an event; an existing idempotency key returns the existing row."""

    @abstractmethod
    async def claim_batch(self, now: datetime, limit: int) -> List[ClaimedEvent]:
        """Atomically move due pending events to processing."""

    @abstractmethod
    async def mark_completed(self, event_id: int, now: datetime) -> None:
        """Record a successful delivery."""

    @abstractmethod
    async def record_failure(
        self,
        event_id: int,
        attempts: int,
        error: str,
        retry_at: Optional[datetime],
    ) -> str:
        """Record a failed attempt; ``retry_at`` None dead-letters. Returns new status."""

    @abstractmethod
    async def release_stale(self, started_before: datetime) -> int:
        """
        Return stuck processing events to pending.

        The abandoned claim counts as an attempt; an event with none left is
        dead-lettered instead.
        """

    @abstractmethod
    async def count_by_status(self) -> Dict[str, int]:
        """Event counts keyed by status."""


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome reported by a notification sender."""
    delivered: bool
    skipped: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.delivered or self.skipped


class NotificationSender(ABC):
    """A Slack/email (or other) delivery channel."""

    @abstractmethod
    async def send(
        self,
        channel: str,
        recipient: Optional[str],
        template_data: Dict[str, Any],
    ) -> DeliveryResult:
        """Deliver one rendered notification."""

    async def close(self) -> None:
        """Release network resources."""


@dataclass(frozen=True)
class Contact:
    """Where to reach a user."""
    user_id: str
    email: Optional[str]
    full_name: Optional[str] = None


class IContactDirectory(ABC):
    """Looks up delivery addresses for user ids found in event payloads."""

    @abstractmethod
    async def get_contact(self, user_id: str) -> Optional[Contact]:
        """Contact details, or None for unknown users."""
