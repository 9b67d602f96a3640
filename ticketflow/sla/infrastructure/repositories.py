"""
SLA Infrastructure Repositories
===============================

SQLAlchemy implementation of the escalation rule lookup.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.sla.application.interfaces import IEscalationRuleRepository
from ticketflow.sla.infrastructure.models import EscalationRuleModel


class SQLAlchemyEscalationRuleRepository(IEscalationRuleRepository):
    """Escalation ladder backed by the 'escalation_rules' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _find_exact(
        self,
        domain: str,
        scope: Optional[str],
        level: int,
    ) -> Optional[EscalationRuleModel]:
        stmt = select(EscalationRuleModel).where(
            func.lower(EscalationRuleModel.domain) == domain.lower(),
            EscalationRuleModel.level == level,
            EscalationRuleModel.is_active.is_(True),
        )
        if scope is None:
            stmt = stmt.where(EscalationRuleModel.scope.is_(None))
        else:
            stmt = stmt.where(func.lower(EscalationRuleModel.scope) == scope.lower())
        result = await self._session.execute(stmt.order_by(EscalationRuleModel.id).limit(1))
        return result.scalar_one_or_none()

    async def find(
        self,
        domain: str,
        scope: Optional[str],
        level: int,
    ) -> Optional[EscalationRuleModel]:
        """Scoped rule first, then the domain-wide rule for the same level."""
        if scope:
            rule = await self._find_exact(domain, scope, level)
            if rule is not None:
                return rule
        return await self._find_exact(domain, None, level)
