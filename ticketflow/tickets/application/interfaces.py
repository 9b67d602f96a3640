"""
Ticket Application Interfaces
=============================

Repository abstractions for the ticket lifecycle (Dependency Inversion).
Concrete implementations live in ticketflow.tickets.infrastructure.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from ticketflow.tickets.domain.statuses import StatusEntry


class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, ticket_id: int, for_update: bool = False) -> Optional[Any]:
        """
        Ticket by id.

        Args:
            for_update: lock the row until the transaction ends
        """

    @abstractmethod
    async def add(self, **values: Any) -> Any:
        """Insert a ticket and flush so it has an id."""

    @abstractmethod
    async def lock_escalation_candidates(
        self,
        now: datetime,
        final_status_ids: Sequence[int],
        open_status_id: int,
        max_level: int,
        limit: int,
        after_id: int = 0,
    ) -> List[Any]:
        """
        Non-final tickets with a lapsed deadline not yet escalated, locked
        with SKIP LOCKED.

        The acknowledgement deadline only counts while the ticket is still
        open and unacknowledged. A deadline counts as handled once the ticket
        was escalated after it. Rows come in id order after ``after_id`` so
        the caller can page through them. Paused tickets are included; the
        caller decides on the pause-adjusted deadline.
        """

    @abstractmethod
    async def list_open(
        self,
        final_status_ids: Sequence[int],
        limit: int = 100,
        offset: int = 0,
    ) -> List[Any]:
        """Non-final tickets, newest first."""


class IActivityRepository(ABC):
    """Interface for the append-only activity log."""

    @abstractmethod
    async def append(
        self,
        ticket_id: int,
        user_id: Optional[UUID],
        action: str,
        details: Dict[str, Any],
        visibility: str,
        created_at: datetime,
    ) -> Any:
        """Insert an activity row and flush so it has an id."""

    @abstractmethod
    async def list_for_ticket(
        self,
        ticket_id: int,
        visibilities: Optional[Iterable[str]] = None,
    ) -> List[Any]:
        """Activity in insertion order, optionally filtered by visibility."""


class IStatusRepository(ABC):
    """Interface for the status registry table."""

    @abstractmethod
    async def list_active(self) -> List[StatusEntry]:
        """Active registry entries."""

    @abstractmethod
    async def seed(self, entries: Iterable[StatusEntry]) -> int:
        """Insert missing entries; returns how many were added."""


class ICategoryRepository(ABC):
    """Interface for categories and subcategories."""

    @abstractmethod
    async def get(self, category_id: int) -> Optional[Any]:
        """Category by id."""

    @abstractmethod
    async def get_subcategory(self, subcategory_id: int) -> Optional[Any]:
        """Subcategory by id."""
