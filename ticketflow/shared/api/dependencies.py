"""
Shared API Dependencies
=======================

FastAPI dependencies used by every router.
"""

from fastapi import Request

from ticketflow.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """Service container built during application startup."""
    return request.app.state.container
