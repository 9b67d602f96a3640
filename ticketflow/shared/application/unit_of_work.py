"""
Unit of Work
============

One database transaction with every repository bound to it.

Services open a unit of work per step (read phase, write phase, outbox
publish) so each step commits or rolls back as a whole.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from ticketflow.assignment.application.interfaces import IAssignmentRepository
    from ticketflow.identity.directory import IUserRepository
    from ticketflow.outbox.application.interfaces import IOutboxRepository
    from ticketflow.shared.application.idempotency import IIdempotencyRepository
    from ticketflow.sla.application.interfaces import IEscalationRuleRepository
    from ticketflow.tickets.application.interfaces import (
        IActivityRepository,
        ICategoryRepository,
        IStatusRepository,
        ITicketRepository,
    )


class IUnitOfWork(ABC):
    """Transaction boundary shared by all bounded contexts."""

    tickets: "ITicketRepository"
    activity: "IActivityRepository"
    statuses: "IStatusRepository"
    categories: "ICategoryRepository"
    idempotency: "IIdempotencyRepository"
    users: "IUserRepository"
    escalation_rules: "IEscalationRuleRepository"
    assignments: "IAssignmentRepository"
    outbox: "IOutboxRepository"

    async def __aenter__(self) -> "IUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction."""

    @abstractmethod
    async def rollback(self) -> None:
        """Roll the transaction back."""


UnitOfWorkFactory = Callable[[], IUnitOfWork]
