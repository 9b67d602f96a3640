"""
Outbox Infrastructure Models
============================

Durable queue of side-effect events written after ticket mutations.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.config import OutboxStatus
from ticketflow.infrastructure.database import Base, JSONType, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OutboxModel(Base):
    """
    Outbox event row.

    Maps to the 'outbox' table. Only the dispatcher changes ``status``.
    """
    __tablename__ = "outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    aggregate_type: Mapped[str] = mapped_column(String(50), nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OutboxStatus.PENDING)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    # Lower runs first
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_outbox_claim", "status", "priority", "scheduled_at"),
        Index("ix_outbox_aggregate", "aggregate_type", "aggregate_id"),
    )
