"""
Assignment Domain Layer
=======================

Pure routing rules deciding which admin owns a ticket.
"""

from ticketflow.assignment.domain.resolver import (
    AdminScope,
    AssignmentResolver,
    CategoryOwner,
    TicketPlacement,
    scope_specificity,
)

__all__ = [
    "AdminScope",
    "AssignmentResolver",
    "CategoryOwner",
    "TicketPlacement",
    "scope_specificity",
]
