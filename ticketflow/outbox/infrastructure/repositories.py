"""
Outbox Infrastructure Repositories
==================================

SQLAlchemy implementation of the outbox queue.

Enqueue is idempotent on ``idempotency_key`` via INSERT ... ON CONFLICT DO
NOTHING. Claims lock candidate rows with FOR UPDATE SKIP LOCKED and flip each
one with a conditional UPDATE whose row count is checked, so two dispatchers
never process the same event.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import OutboxStatus
from ticketflow.outbox.application.interfaces import IOutboxRepository
from ticketflow.outbox.domain import ClaimedEvent, OutboxEvent
from ticketflow.outbox.infrastructure.models import OutboxModel

STALE_CLAIM_ERROR = "processing timeout"

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _to_claimed(model: OutboxModel) -> ClaimedEvent:
    return ClaimedEvent(
        id=model.id,
        event_type=model.event_type,
        aggregate_type=model.aggregate_type,
        aggregate_id=model.aggregate_id,
        payload=dict(model.payload or {}),
        attempts=model.attempts,
        max_attempts=model.max_attempts,
    )


class SQLAlchemyOutboxRepository(IOutboxRepository):
    """Outbox queue backed by the 'outbox' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, event_id: int) -> Optional[OutboxModel]:
        return await self._session.get(OutboxModel, event_id)

    async def get_by_idempotency_key(self, key: str) -> Optional[OutboxModel]:
        stmt = select(OutboxModel).where(OutboxModel.idempotency_key == key)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def enqueue(self, event: OutboxEvent) -> OutboxModel:
        """Insert an event, or return the row already holding its idempotency key."""
        values = {
            "event_type": event.event_type,
            "aggregate_type": event.aggregate_type,
            "aggregate_id": event.aggregate_id,
            "payload": event.payload,
            "status": OutboxStatus.PENDING,
            "attempts": 0,
            "idempotency_key": event.idempotency_key,
            "priority": event.priority,
            "created_by": event.created_by,
        }
        if event.max_attempts is not None:
            values["max_attempts"] = event.max_attempts
        if event.scheduled_at is not None:
            values["scheduled_at"] = event.scheduled_at

        if event.idempotency_key is None:
            model = OutboxModel(**values)
            self._session.add(model)
            await self._session.flush()
            return model

        existing = await self.get_by_idempotency_key(event.idempotency_key)
        if existing is not None:
            return existing

        insert = _UPSERT_INSERTS.get(self._session.bind.dialect.name)
        if insert is None:
            model = OutboxModel(**values)
            self._session.add(model)
            await self._session.flush()
            return model

        stmt = insert(OutboxModel).values(**values).on_conflict_do_nothing(
            index_elements=["idempotency_key"]
        )
        await self._session.execute(stmt)
        return await self.get_by_idempotency_key(event.idempotency_key)

    async def claim_batch(self, now: datetime, limit: int) -> List[ClaimedEvent]:
        """Move up to ``limit`` due pending events to processing."""
        candidates = (
            select(OutboxModel.id)
            .where(
                OutboxModel.status == OutboxStatus.PENDING,
                OutboxModel.scheduled_at <= now,
            )
            .order_by(OutboxModel.priority, OutboxModel.scheduled_at, OutboxModel.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        ids = list((await self._session.execute(candidates)).scalars())

        claimed_ids = []
        for event_id in ids:
            stmt = (
                update(OutboxModel)
                .where(OutboxModel.id == event_id, OutboxModel.status == OutboxStatus.PENDING)
                .values(status=OutboxStatus.PROCESSING, processing_started_at=now)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            if result.rowcount == 1:
                claimed_ids.append(event_id)

        if not claimed_ids:
            return []

        rows = await self._session.execute(
            select(OutboxModel)
            .where(OutboxModel.id.in_(claimed_ids))
            .order_by(OutboxModel.priority, OutboxModel.scheduled_at, OutboxModel.id)
            .execution_options(populate_existing=True)
        )
        return [_to_claimed(model) for model in rows.scalars()]

    async def mark_completed(self, event_id: int, now: datetime) -> None:
        await self._session.execute(
            update(OutboxModel)
            .where(OutboxModel.id == event_id, OutboxModel.status == OutboxStatus.PROCESSING)
            .values(status=OutboxStatus.COMPLETED, processed_at=now, last_error=None)
            .execution_options(synchronize_session=False)
        )

    async def record_failure(
        self,
        event_id: int,
        attempts: int,
        error: str,
        retry_at: Optional[datetime],
    ) -> str:
        status = OutboxStatus.PENDING if retry_at is not None else OutboxStatus.DEAD_LETTER
        values = {
            "status": status,
            "attempts": attempts,
            "last_error": error[:2000],
            "processing_started_at": None,
        }
        if retry_at is not None:
            values["scheduled_at"] = retry_at

        await self._session.execute(
            update(OutboxModel)
            .where(OutboxModel.id == event_id, OutboxModel.status == OutboxStatus.PROCESSING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return status

    async def release_stale(self, started_before: datetime) -> int:
        # An abandoned claim uses up an attempt like a failed delivery
        attempts = OutboxModel.attempts + 1
        result = await self._session.execute(
            update(OutboxModel)
            .where(
                OutboxModel.status == OutboxStatus.PROCESSING,
                OutboxModel.processing_started_at < started_before,
            )
            .values(
                status=case(
                    (attempts >= OutboxModel.max_attempts, OutboxStatus.DEAD_LETTER),
                    else_=OutboxStatus.PENDING,
                ),
                attempts=attempts,
                last_error=STALE_CLAIM_ERROR,
                processing_started_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def count_by_status(self) -> Dict[str, int]:
        result = await self._session.execute(
            select(OutboxModel.status, func.count()).group_by(OutboxModel.status)
        )
        return {status: count for status, count in result.all()}

    async def list_for_aggregate(self, aggregate_type: str, aggregate_id: str) -> List[OutboxModel]:
        result = await self._session.execute(
            select(OutboxModel)
            .where(
                OutboxModel.aggregate_type == aggregate_type,
                OutboxModel.aggregate_id == aggregate_id,
            )
            .order_by(OutboxModel.id)
        )
        return list(result.scalars())
