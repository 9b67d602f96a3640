"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the escalation ladder.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.infrastructure.database import Base


class EscalationRuleModel(Base):
    """
    One rung of the escalation ladder for a (domain, scope).

    Maps to the 'escalation_rules' table. ``scope`` NULL covers the whole
    domain; levels start at 1 and are contiguous.
    """
    __tablename__ = "escalation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(100), nullable=False)
    scope: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    tat_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    escalate_to_user_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    notify_channel: Mapped[str] = mapped_column(String(32), nullable=False, default="email")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("domain", "scope", "level", name="uq_escalation_rules_domain_scope_level"),
    )
