"""
Model Registry
==============

Imports every ORM model so ``Base.metadata`` knows all tables.
"""

from ticketflow.identity.models import UserModel
from ticketflow.tickets.infrastructure.models import (
    CategoryModel,
    IdempotencyKeyModel,
    SubcategoryModel,
    TicketActivityModel,
    TicketModel,
    TicketStatusModel,
)
from ticketflow.sla.infrastructure.models import EscalationRuleModel
from ticketflow.assignment.infrastructure.models import (
    AdminAssignmentModel,
    CategoryAssignmentModel,
)
from ticketflow.outbox.infrastructure.models import OutboxModel

__all__ = [
    "UserModel",
    "CategoryModel",
    "IdempotencyKeyModel",
    "SubcategoryModel",
    "TicketActivityModel",
    "TicketModel",
    "TicketStatusModel",
    "EscalationRuleModel",
    "AdminAssignmentModel",
    "CategoryAssignmentModel",
    "OutboxModel",
]
