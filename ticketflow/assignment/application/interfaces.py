"""
Assignment Application Interfaces
=================================

Repository abstraction that feeds the AssignmentResolver.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from ticketflow.assignment.domain import AdminScope, AssignmentResolver


class IAssignmentRepository(ABC):
    """Interface for admin grants and category ownership."""

    @abstractmethod
    async def load_resolver(self, category_id: Optional[int] = None) -> AssignmentResolver:
        """
        Resolver over a fresh snapshot of the assignment tables.

        Args:
            category_id: only load owners of this category (all when None)
        """

    @abstractmethod
    async def grants_for(self, user_id: UUID) -> List[AdminScope]:
        """All (domain, scope) grants held by a user."""
