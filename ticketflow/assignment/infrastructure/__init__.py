"""
Assignment Infrastructure Layer
===============================

Admin grants and category owners backed by SQLAlchemy.
"""

from ticketflow.assignment.infrastructure.models import (
    AdminAssignmentModel,
    CategoryAssignmentModel,
)
from ticketflow.assignment.infrastructure.repositories import SQLAlchemyAssignmentRepository

__all__ = [
    "AdminAssignmentModel",
    "CategoryAssignmentModel",
    "SQLAlchemyAssignmentRepository",
]
