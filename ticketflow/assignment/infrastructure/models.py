"""
Assignment Infrastructure Models
================================

Admin responsibility grants and direct category ownership.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ticketflow.infrastructure.database import Base, UTCDateTime


class AdminAssignmentModel(Base):
    """
    (user, domain, scope) grant.

    Maps to the 'admin_assignments' table. A NULL domain means unrestricted.
    """
    __tablename__ = "admin_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    scope: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class CategoryAssignmentModel(Base):
    """
    Direct ownership of a category by an admin.

    Maps to the 'category_assignments' table.
    """
    __tablename__ = "category_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assignment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="primary")
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("category_id", "user_id", name="uq_category_assignments_category_user"),
    )
