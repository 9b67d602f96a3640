"""
Tickets Application Layer
=========================

Use cases for the ticket lifecycle:
- TicketMutationService: every state-changing operation
- StatusRegistry: cached view of the status table
- DTOs: request and response models
"""

from ticketflow.tickets.application.dto import TicketResponse, ticket_to_response
from ticketflow.tickets.application.interfaces import (
    IActivityRepository,
    ICategoryRepository,
    IStatusRepository,
    ITicketRepository,
)
from ticketflow.tickets.application.services import MutationContext, TicketMutationService
from ticketflow.tickets.application.status_registry import StatusRegistry

__all__ = [
    "TicketResponse",
    "ticket_to_response",
    "IActivityRepository",
    "ICategoryRepository",
    "IStatusRepository",
    "ITicketRepository",
    "MutationContext",
    "TicketMutationService",
    "StatusRegistry",
]
