"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of the ticket repository interfaces using
SQLAlchemy.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.core.exceptions import ConflictException
from ticketflow.shared.application.idempotency import IIdempotencyRepository
from ticketflow.tickets.application.interfaces import (
    IActivityRepository,
    ICategoryRepository,
    IStatusRepository,
    ITicketRepository,
)
from ticketflow.tickets.domain.statuses import DEFAULT_STATUSES, StatusEntry
from ticketflow.tickets.infrastructure.models import (
    CategoryModel,
    IdempotencyKeyModel,
    SubcategoryModel,
    TicketActivityModel,
    TicketModel,
    TicketStatusModel,
)


class SQLAlchemyTicketRepository(ITicketRepository):
    """Tickets backed by the 'tickets' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, ticket_id: int, for_update: bool = False) -> Optional[TicketModel]:
        stmt = select(TicketModel).where(TicketModel.id == ticket_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, **values: Any) -> TicketModel:
        model = TicketModel(**values)
        self._session.add(model)
        await self._session.flush()
        return model

    async def lock_escalation_candidates(
        self,
        now: datetime,
        final_status_ids: Sequence[int],
        open_status_id: int,
        max_level: int,
        limit: int,
        after_id: int = 0,
    ) -> List[TicketModel]:
        stmt = (
            select(TicketModel)
            .where(
                TicketModel.id > after_id,
                TicketModel.escalation_level < max_level,
                or_(
                    and_(
                        TicketModel.resolution_due_at < now,
                        or_(
                            TicketModel.escalated_at.is_(None),
                            TicketModel.escalated_at < TicketModel.resolution_due_at,
                        ),
                    ),
                    and_(
                        TicketModel.status_id == open_status_id,
                        TicketModel.acknowledged_at.is_(None),
                        TicketModel.acknowledgement_due_at < now,
                        or_(
                            TicketModel.escalated_at.is_(None),
                            TicketModel.escalated_at < TicketModel.acknowledgement_due_at,
                        ),
                    ),
                ),
            )
            .order_by(TicketModel.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        if final_status_ids:
            stmt = stmt.where(TicketModel.status_id.not_in(list(final_status_ids)))
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def list_open(
        self,
        final_status_ids: Sequence[int],
        limit: int = 100,
        offset: int = 0,
    ) -> List[TicketModel]:
        stmt = select(TicketModel).order_by(TicketModel.created_at.desc(), TicketModel.id.desc())
        if final_status_ids:
            stmt = stmt.where(TicketModel.status_id.not_in(list(final_status_ids)))
        result = await self._session.execute(stmt.limit(limit).offset(offset))
        return list(result.scalars())


class SQLAlchemyActivityRepository(IActivityRepository):
    """Append-only log backed by the 'ticket_activity' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(
        self,
        ticket_id: int,
        user_id: Optional[UUID],
        action: str,
        details: Dict[str, Any],
        visibility: str,
        created_at: datetime,
    ) -> TicketActivityModel:
        model = TicketActivityModel(
            ticket_id=ticket_id,
            user_id=user_id,
            action=action,
            details={k: v for k, v in details.items() if v is not None},
            visibility=visibility,
            created_at=created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def list_for_ticket(
        self,
        ticket_id: int,
        visibilities: Optional[Iterable[str]] = None,
    ) -> List[TicketActivityModel]:
        stmt = (
            select(TicketActivityModel)
            .where(TicketActivityModel.ticket_id == ticket_id)
            .order_by(TicketActivityModel.created_at, TicketActivityModel.id)
        )
        if visibilities is not None:
            stmt = stmt.where(TicketActivityModel.visibility.in_(list(visibilities)))
        result = await self._session.execute(stmt)
        return list(result.scalars())


def _to_entry(model: TicketStatusModel) -> StatusEntry:
    return StatusEntry(
        value=model.value,
        label=model.label,
        progress_percent=model.progress_percent,
        display_order=model.display_order,
        is_final=model.is_final,
        id=model.id,
        description=model.description,
    )


class SQLAlchemyStatusRepository(IStatusRepository):
    """Status registry backed by the 'ticket_statuses' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_active(self) -> List[StatusEntry]:
        result = await self._session.execute(
            select(TicketStatusModel)
            .where(TicketStatusModel.is_active.is_(True))
            .order_by(TicketStatusModel.display_order, TicketStatusModel.id)
        )
        return [_to_entry(m) for m in result.scalars()]

    async def seed(self, entries: Iterable[StatusEntry]) -> int:
        existing = set((await self._session.execute(select(TicketStatusModel.value))).scalars())
        added = 0
        for entry in entries:
            if entry.value in existing:
                continue
            self._session.add(TicketStatusModel(
                value=entry.value,
                label=entry.label,
                description=entry.description,
                progress_percent=entry.progress_percent,
                display_order=entry.display_order,
                is_final=entry.is_final,
                is_active=True,
            ))
            added += 1
        await self._session.flush()
        return added


async def seed_statuses(session: AsyncSession) -> int:
    """Insert any default statuses missing from the registry."""
    return await SQLAlchemyStatusRepository(session).seed(DEFAULT_STATUSES)


class SQLAlchemyCategoryRepository(ICategoryRepository):
    """Categories backed by 'categories' and 'subcategories'."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, category_id: int) -> Optional[CategoryModel]:
        return await self._session.get(CategoryModel, category_id)

    async def get_subcategory(self, subcategory_id: int) -> Optional[SubcategoryModel]:
        return await self._session.get(SubcategoryModel, subcategory_id)


class SQLAlchemyIdempotencyRepository(IIdempotencyRepository):
    """Idempotency keys backed by the 'idempotency_keys' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, key: str) -> Optional[IdempotencyKeyModel]:
        return await self._session.get(IdempotencyKeyModel, key)

    async def add(
        self,
        key: str,
        resource_type: str,
        resource_id: Optional[str],
        request_hash: str,
        response: Optional[Dict[str, Any]],
        created_at: datetime,
        expires_at: datetime,
    ) -> None:
        await self._session.execute(
            delete(IdempotencyKeyModel)
            .where(IdempotencyKeyModel.key == key, IdempotencyKeyModel.expires_at <= created_at)
            .execution_options(synchronize_session=False)
        )
        self._session.add(IdempotencyKeyModel(
            key=key,
            resource_type=resource_type,
            resource_id=resource_id,
            request_hash=request_hash,
            response=response,
            created_at=created_at,
            expires_at=expires_at,
        ))
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConflictException(
                "A request with this Idempotency-Key is already being processed",
                {"idempotency_key": key}
            ) from e

    async def purge_expired(self, now: datetime) -> int:
        result = await self._session.execute(
            delete(IdempotencyKeyModel)
            .where(IdempotencyKeyModel.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
