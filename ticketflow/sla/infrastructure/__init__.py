"""
SLA Infrastructure Layer
========================

- Config: YAML loading with watchdog hot reload
- Models/Repositories: escalation rules
"""

from ticketflow.sla.infrastructure.config import SLAConfigManager
from ticketflow.sla.infrastructure.models import EscalationRuleModel
from ticketflow.sla.infrastructure.repositories import SQLAlchemyEscalationRuleRepository

__all__ = [
    "SLAConfigManager",
    "EscalationRuleModel",
    "SQLAlchemyEscalationRuleRepository",
]
