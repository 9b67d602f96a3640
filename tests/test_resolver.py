"""Routing tickets to the responsible admin."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from ticketflow.assignment.domain import (
    AdminScope,
    AssignmentResolver,
    CategoryOwner,
    TicketPlacement,
    scope_specificity,
)

HOSTEL_WIFI = TicketPlacement(category_id=7, domain="IT", location="Hostel A")


@pytest.fixture
def admins():
    return {name: uuid4() for name in ("explicit", "primary", "secondary", "default",
                                       "exact", "domain", "global")}


class TestScopeSpecificity:
    def test_exact_scope(self):
        assert scope_specificity(AdminScope(uuid4(), "it", "hostel a "), HOSTEL_WIFI) == 0

    def test_domain_wide(self):
        assert scope_specificity(AdminScope(uuid4(), "IT"), HOSTEL_WIFI) == 1

    @pytest.mark.parametrize("domain", [None, "Global", "GLOBAL"])
    def test_global(self, domain):
        assert scope_specificity(AdminScope(uuid4(), domain), HOSTEL_WIFI) == 2

    @pytest.mark.parametrize("grant", [
        AdminScope(uuid4(), "Facilities"),
        AdminScope(uuid4(), "IT", "Hostel B"),
    ])
    def test_not_covered(self, grant):
        assert scope_specificity(grant, HOSTEL_WIFI) is None


class TestResolveCandidates:
    def test_explicit_assignment_wins(self, admins):
        resolver = AssignmentResolver(
            [CategoryOwner(7, admins["primary"])],
            [AdminScope(admins["exact"], "IT", "Hostel A")],
        )
        placement = TicketPlacement(7, "IT", "Hostel A", assigned_to=admins["explicit"])
        assert resolver.resolve_candidates(placement) == admins["explicit"]

    def test_primary_owner_before_older_secondary(self, admins):
        resolver = AssignmentResolver([
            CategoryOwner(7, admins["secondary"], "secondary",
                          created_at=datetime(2023, 1, 1, tzinfo=timezone.utc), id=1),
            CategoryOwner(7, admins["primary"], "primary",
                          created_at=datetime(2024, 1, 1, tzinfo=timezone.utc), id=2),
        ])
        assert resolver.resolve_candidates(HOSTEL_WIFI) == admins["primary"]

    def test_oldest_primary_wins(self, admins):
        older, newer = uuid4(), uuid4()
        resolver = AssignmentResolver([
            CategoryOwner(7, newer, created_at=datetime(2024, 6, 1, tzinfo=timezone.utc), id=1),
            CategoryOwner(7, older, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc), id=2),
        ])
        assert resolver.resolve_candidates(HOSTEL_WIFI) == older

    def test_category_default_admin_before_scopes(self, admins):
        resolver = AssignmentResolver([], [AdminScope(admins["exact"], "IT", "Hostel A")])
        placement = TicketPlacement(7, "IT", "Hostel A", default_admin_id=admins["default"])
        assert resolver.resolve_candidates(placement) == admins["default"]

    def test_most_specific_scope(self, admins):
        resolver = AssignmentResolver([], [
            AdminScope(admins["global"], "Global", id=1),
            AdminScope(admins["domain"], "IT", id=2),
            AdminScope(admins["exact"], "IT", "Hostel A", id=3),
        ])
        assert resolver.resolve_candidates(HOSTEL_WIFI) == admins["exact"]

    def test_falls_back_to_domain_then_global(self, admins):
        resolver = AssignmentResolver([], [
            AdminScope(admins["global"], None, id=1),
            AdminScope(admins["domain"], "IT", id=2),
            AdminScope(uuid4(), "IT", "Hostel B", id=3),
        ])
        assert resolver.resolve_candidates(HOSTEL_WIFI) == admins["domain"]

        only_global = AssignmentResolver([], [AdminScope(admins["global"], "Global")])
        assert only_global.resolve_candidates(HOSTEL_WIFI) == admins["global"]

    def test_nobody_responsible(self):
        resolver = AssignmentResolver([], [AdminScope(uuid4(), "Facilities")])
        assert resolver.resolve_candidates(HOSTEL_WIFI) is None


class TestResolve:
    def test_explicit_assignee_only(self, admins):
        resolver = AssignmentResolver()
        placement = TicketPlacement(7, "IT", "Hostel A", assigned_to=admins["explicit"])
        assert resolver.resolve(placement, admins["explicit"])
        assert not resolver.resolve(placement, admins["domain"], [AdminScope(admins["domain"], "IT")])

    def test_scope_filter_on_explicit_assignment(self, admins):
        resolver = AssignmentResolver()
        placement = TicketPlacement(7, "IT", "Hostel A", assigned_to=admins["explicit"])
        grants = [AdminScope(admins["explicit"], "IT", "Hostel B")]
        assert resolver.resolve(placement, admins["explicit"], grants)
        assert not resolver.resolve(placement, admins["explicit"], grants, scope_filtered=True)

    def test_category_owners_exclude_scoped_admins(self, admins):
        resolver = AssignmentResolver([CategoryOwner(7, admins["primary"])])
        domain_grants = [AdminScope(admins["domain"], "IT")]
        assert resolver.resolve(HOSTEL_WIFI, admins["primary"])
        assert not resolver.resolve(HOSTEL_WIFI, admins["domain"], domain_grants)

    def test_scope_grants(self, admins):
        scopes = [AdminScope(admins["domain"], "IT"), AdminScope(admins["exact"], "IT", "Hostel B")]
        resolver = AssignmentResolver([], scopes)
        assert resolver.resolve(HOSTEL_WIFI, admins["domain"], resolver.grants_for(admins["domain"]))
        assert not resolver.resolve(HOSTEL_WIFI, admins["exact"], resolver.grants_for(admins["exact"]))
