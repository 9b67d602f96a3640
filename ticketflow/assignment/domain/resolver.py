"""
Assignment Resolver
===================

Decides which admin owns a ticket.

Priority, strongest first:

1. explicit ``assigned_to`` on the ticket
2. direct category assignment (primary before secondary), then the
   category's ``default_admin_id``
3. admin whose domain matches the category's domain and whose scope (if
   any) equals the ticket's location
4. admin with the Global domain or no domain restriction

Everything here is a pure function of the values passed in.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from ticketflow.config import GLOBAL_DOMAIN
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TicketPlacement:
    """The parts of a ticket that routing depends on."""
    category_id: Optional[int]
    domain: Optional[str]
    location: Optional[str]
    assigned_to: Optional[UUID] = None
    default_admin_id: Optional[UUID] = None


@dataclass(frozen=True)
class AdminScope:
    """One (user, domain, scope) responsibility grant."""
    user_id: UUID
    domain: Optional[str] = None
    scope: Optional[str] = None
    id: int = 0

    @property
    def is_global(self) -> bool:
        return self.domain is None or self.domain.lower() == GLOBAL_DOMAIN.lower()


@dataclass(frozen=True)
class CategoryOwner:
    """Direct (category, user) ownership."""
    category_id: int
    user_id: UUID
    assignment_type: str = "primary"
    created_at: Optional[datetime] = None
    id: int = 0


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and a.strip().lower() == b.strip().lower()


def scope_specificity(grant: AdminScope, placement: TicketPlacement) -> Optional[int]:
    """
    How specifically a grant covers a ticket: 0 exact domain+scope,
    1 domain-wide, 2 global. ``None`` when it does not cover it.
    """
    if grant.is_global:
        return 2
    if not _same(grant.domain, placement.domain):
        return None
    if grant.scope is None:
        return 1
    if _same(grant.scope, placement.location):
        return 0
    return None


class AssignmentResolver:
    """
    Routing over a snapshot of the assignment tables.

    Build one per decision from freshly loaded rows; it holds no other state.
    """

    def __init__(
        self,
        category_owners: Iterable[CategoryOwner] = (),
        admin_scopes: Iterable[AdminScope] = (),
    ):
        self._owners: Dict[int, List[CategoryOwner]] = {}
        for owner in category_owners:
            self._owners.setdefault(owner.category_id, []).append(owner)
        for owners in self._owners.values():
            owners.sort(key=self._owner_key)
        self._scopes: List[AdminScope] = list(admin_scopes)

    @staticmethod
    def _owner_key(owner: CategoryOwner) -> Tuple:
        created = owner.created_at.timestamp() if owner.created_at else 0.0
        return (owner.assignment_type != "primary", created, owner.id)

    def category_owners(self, category_id: Optional[int]) -> List[CategoryOwner]:
        if category_id is None:
            return []
        return list(self._owners.get(category_id, ()))

    def resolve(
        self,
        placement: TicketPlacement,
        admin_id: UUID,
        grants: Sequence[AdminScope] = (),
        scope_filtered: bool = False,
    ) -> bool:
        """
        Does ``admin_id`` (holding ``grants``) own this ticket?

        An explicit assignment always counts, unless ``scope_filtered`` is
        set and the admin's scopes exclude the ticket's location.
        """
        if placement.assigned_to is not None:
            if placement.assigned_to != admin_id:
                return False
            if scope_filtered and grants and placement.location:
                return any(
                    g.is_global or g.scope is None or _same(g.scope, placement.location)
                    for g in grants
                )
            return True

        owners = self.category_owners(placement.category_id)
        if owners:
            return any(o.user_id == admin_id for o in owners)
        if placement.default_admin_id is not None:
            return placement.default_admin_id == admin_id

        return any(scope_specificity(g, placement) is not None for g in grants)

    def resolve_candidates(self, placement: TicketPlacement) -> Optional[UUID]:
        """Admin that should automatically receive the ticket, if any."""
        if placement.assigned_to is not None:
            return placement.assigned_to

        owners = self.category_owners(placement.category_id)
        if owners:
            primaries = [o for o in owners if o.assignment_type == "primary"]
            if len(primaries) > 1:
                logger.warning(
                    "Category has several primary owners, using the oldest",
                    extra={
                        "category_id": placement.category_id,
                        "owners": [str(o.user_id) for o in primaries],
                    }
                )
            return owners[0].user_id

        if placement.default_admin_id is not None:
            return placement.default_admin_id

        ranked = []
        for grant in self._scopes:
            rank = scope_specificity(grant, placement)
            if rank is not None:
                ranked.append((rank, grant.id, str(grant.user_id), grant))
        if not ranked:
            return None
        ranked.sort(key=lambda item: item[:3])
        return ranked[0][3].user_id

    def grants_for(self, admin_id: UUID) -> List[AdminScope]:
        return [g for g in self._scopes if g.user_id == admin_id]
