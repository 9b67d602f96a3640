"""
SQLAlchemy Unit of Work
=======================

Binds every repository to one AsyncSession and commits or rolls back the
session as a whole.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketflow.assignment.infrastructure.repositories import SQLAlchemyAssignmentRepository
from ticketflow.identity.directory import SQLAlchemyUserRepository
from ticketflow.outbox.infrastructure.repositories import SQLAlchemyOutboxRepository
from ticketflow.shared.application.unit_of_work import IUnitOfWork
from ticketflow.sla.infrastructure.repositories import SQLAlchemyEscalationRuleRepository
from ticketflow.tickets.infrastructure.repositories import (
    SQLAlchemyActivityRepository,
    SQLAlchemyCategoryRepository,
    SQLAlchemyIdempotencyRepository,
    SQLAlchemyStatusRepository,
    SQLAlchemyTicketRepository,
)


class SQLAlchemyUnitOfWork(IUnitOfWork):
    """
    One transaction over every repository.

    Usage:
        async with SQLAlchemyUnitOfWork(factory) as uow:
            ticket = await uow.tickets.get(ticket_id, for_update=True)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("Unit of work is not active")
        return self._session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        session = self._session_factory()
        self._session = session

        self.tickets = SQLAlchemyTicketRepository(session)
        self.activity = SQLAlchemyActivityRepository(session)
        self.statuses = SQLAlchemyStatusRepository(session)
        self.categories = SQLAlchemyCategoryRepository(session)
        self.idempotency = SQLAlchemyIdempotencyRepository(session)
        self.users = SQLAlchemyUserRepository(session)
        self.escalation_rules = SQLAlchemyEscalationRuleRepository(session)
        self.assignments = SQLAlchemyAssignmentRepository(session)
        self.outbox = SQLAlchemyOutboxRepository(session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            await self.session.close()
            self._session = None

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def unit_of_work_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Callable producing a fresh unit of work per use."""
    def factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory)
    return factory
