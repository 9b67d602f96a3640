"""
Ticket Interfaces Layer
=======================

FastAPI route handlers for the ticket lifecycle and the status registry.
"""

from ticketflow.tickets.interfaces.controllers import status_router, tickets_router

__all__ = ["status_router", "tickets_router"]
