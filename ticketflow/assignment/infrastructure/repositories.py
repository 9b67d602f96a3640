"""
Assignment Infrastructure Repositories
======================================

Loads the assignment tables into resolver snapshots.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.assignment.application.interfaces import IAssignmentRepository
from ticketflow.assignment.domain import AdminScope, AssignmentResolver, CategoryOwner
from ticketflow.assignment.infrastructure.models import (
    AdminAssignmentModel,
    CategoryAssignmentModel,
)


def _to_scope(model: AdminAssignmentModel) -> AdminScope:
    return AdminScope(user_id=model.user_id, domain=model.domain, scope=model.scope, id=model.id)


def _to_owner(model: CategoryAssignmentModel) -> CategoryOwner:
    return CategoryOwner(
        category_id=model.category_id,
        user_id=model.user_id,
        assignment_type=model.assignment_type,
        created_at=model.created_at,
        id=model.id,
    )


class SQLAlchemyAssignmentRepository(IAssignmentRepository):
    """Assignment snapshots from 'category_assignments' and 'admin_assignments'."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def load_resolver(self, category_id: Optional[int] = None) -> AssignmentResolver:
        owners_stmt = select(CategoryAssignmentModel).order_by(CategoryAssignmentModel.id)
        if category_id is not None:
            owners_stmt = owners_stmt.where(CategoryAssignmentModel.category_id == category_id)
        owners = (await self._session.execute(owners_stmt)).scalars()

        scopes = (await self._session.execute(
            select(AdminAssignmentModel).order_by(AdminAssignmentModel.id)
        )).scalars()

        return AssignmentResolver(
            category_owners=[_to_owner(m) for m in owners],
            admin_scopes=[_to_scope(m) for m in scopes],
        )

    async def grants_for(self, user_id: UUID) -> List[AdminScope]:
        result = await self._session.execute(
            select(AdminAssignmentModel)
            .where(AdminAssignmentModel.user_id == user_id)
            .order_by(AdminAssignmentModel.id)
        )
        return [_to_scope(m) for m in result.scalars()]
