"""
SLA Application Layer
=====================

Escalation use cases and the abstractions they depend on.
"""

from ticketflow.sla.application.escalation import (
    EscalationOutcome,
    EscalationService,
    SweepResult,
)
from ticketflow.sla.application.interfaces import (
    IEscalationRuleRepository,
    ISLAConfigProvider,
    StaticSLAConfigProvider,
)

__all__ = [
    "EscalationOutcome",
    "EscalationService",
    "SweepResult",
    "IEscalationRuleRepository",
    "ISLAConfigProvider",
    "StaticSLAConfigProvider",
]
