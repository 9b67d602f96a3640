"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the ticket lifecycle.

These are the database representations of tickets, their status registry,
categories, the append-only activity log and idempotency keys.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.config import Visibility
from ticketflow.infrastructure.database import Base, JSONType, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketStatusModel(Base):
    """
    Status registry row.

    Maps to the 'ticket_statuses' table.
    """
    __tablename__ = "ticket_statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_final: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CategoryModel(Base):
    """
    Ticket category with routing and TAT defaults.

    Maps to the 'categories' table.
    """
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    sla_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    default_admin_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class SubcategoryModel(Base):
    """
    Subcategory; may override the category TAT.

    Maps to the 'subcategories' table.
    """
    __tablename__ = "subcategories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sla_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class TicketModel(Base):
    """
    Database model for a ticket.

    Maps to the 'tickets' table. ``status_id`` references the registry;
    ``metadata`` holds the JSON document described by TicketMetadata.
    """
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    subcategory_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("subcategories.id", ondelete="SET NULL"), nullable=True
    )
    created_by: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ticket_statuses.id"), nullable=False, index=True
    )

    # Escalation / lifecycle counters
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tat_extensions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # TAT deadlines
    acknowledgement_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolution_due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)

    # Lifecycle timestamps
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopened_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)


class TicketActivityModel(Base):
    """
    Append-only activity log entry.

    Maps to the 'ticket_activity' table. Rows are inserted, never updated.
    """
    __tablename__ = "ticket_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    visibility: Mapped[str] = mapped_column(String(32), nullable=False, default=Visibility.ADMIN_ONLY)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_ticket_activity_ticket_created", "ticket_id", "created_at"),
    )


class IdempotencyKeyModel(Base):
    """
    Record of a mutating request that carried an Idempotency-Key header.

    Maps to the 'idempotency_keys' table.
    """
    __tablename__ = "idempotency_keys"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    response: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
