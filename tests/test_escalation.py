"""Manual escalation, the automatic sweep and the escalation hooks."""

from datetime import timedelta

import pytest

from ticketflow.config import EventType, NotificationChannel, TicketStatus, UserRole
from ticketflow.core.exceptions import ForbiddenException, ValidationException
from ticketflow.infrastructure.database import transaction
from ticketflow.sla.infrastructure.models import EscalationRuleModel
from tests.conftest import FIXED_NOW, add_category, add_user, parse_ts, raise_ticket


async def add_rule(session_factory, level=1, domain="IT", scope=None, tat_hours=None,
                   escalate_to=None, notify_channel=NotificationChannel.EMAIL) -> int:
    async with transaction(session_factory) as session:
        rule = EscalationRuleModel(
            domain=domain,
            scope=scope,
            level=level,
            tat_hours=tat_hours,
            escalate_to_user_id=escalate_to,
            notify_channel=notify_channel,
            is_active=True,
        )
        session.add(rule)
        await session.flush()
        return rule.id


async def ticket_events(container, ticket_id, event_type):
    async with container.uow_factory() as uow:
        rows = await uow.outbox.list_for_aggregate("ticket", str(ticket_id))
    return [row for row in rows if row.event_type == event_type]


class TestRuleLookup:
    @pytest.mark.asyncio
    async def test_scoped_rule_before_domain_rule(self, container, session_factory):
        domain_rule = await add_rule(session_factory, scope=None)
        scoped_rule = await add_rule(session_factory, scope="Hostel A")

        async with container.uow_factory() as uow:
            assert (await uow.escalation_rules.find("it", "hostel a", 1)).id == scoped_rule
            assert (await uow.escalation_rules.find("IT", "Library", 1)).id == domain_rule
            assert (await uow.escalation_rules.find("IT", None, 1)).id == domain_rule
            assert await uow.escalation_rules.find("IT", "Hostel A", 2) is None
            assert await uow.escalation_rules.find("Facilities", None, 1) is None

    @pytest.mark.asyncio
    async def test_inactive_rules_are_ignored(self, container, session_factory):
        rule_id = await add_rule(session_factory)
        async with transaction(session_factory) as session:
            rule = await session.get(EscalationRuleModel, rule_id)
            rule.is_active = False

        async with container.uow_factory() as uow:
            assert await uow.escalation_rules.find("IT", None, 1) is None


class TestSweep:
    @pytest.mark.asyncio
    async def test_escalates_each_breach_once(self, container, student, clock):
        ticket = await raise_ticket(container, student)
        assert parse_ts(ticket["acknowledgement_due_at"]) == FIXED_NOW + timedelta(hours=5)

        clock.advance(hours=6)
        first = await container.run_escalation_sweep()
        assert first.escalated == 1
        assert first.ticket_ids == [ticket["id"]]

        again = await container.run_escalation_sweep()
        assert again.escalated == 0
        assert again.scanned == 0

        view = await container.tickets.get_ticket(ticket["id"], student)
        assert view["escalation_level"] == 1
        assert parse_ts(view["escalated_at"]) == clock.now()

        # The resolution deadline is a separate breach
        clock.advance(days=2)
        later = await container.run_escalation_sweep()
        assert later.escalated == 1
        view = await container.tickets.get_ticket(ticket["id"], student)
        assert view["escalation_level"] == 2

    @pytest.mark.asyncio
    async def test_handled_breaches_do_not_hide_new_ones(self, container, student, clock):
        early = [await raise_ticket(container, student) for _ in range(2)]
        clock.advance(hours=6)
        first = await container.escalation.run_sweep(limit=2)
        assert sorted(first.ticket_ids) == sorted(t["id"] for t in early)

        late = await raise_ticket(container, student)
        clock.advance(hours=6)
        for _ in range(3):
            await container.escalation.run_sweep(limit=2)

        view = await container.tickets.get_ticket(late["id"], student)
        assert view["escalation_level"] == 1
        for ticket in early:
            view = await container.tickets.get_ticket(ticket["id"], student)
            assert view["escalation_level"] == 1

    @pytest.mark.asyncio
    async def test_skipped_rows_do_not_hide_later_breaches(self, container, admin, student, clock):
        paused = [await raise_ticket(container, student) for _ in range(3)]
        for ticket in paused:
            await container.tickets.ask_question(ticket["id"], admin, "Which floor?")
        target = await raise_ticket(container, student)

        clock.advance(days=5)
        result = await container.escalation.run_sweep(limit=2)

        assert result.ticket_ids == [target["id"]]
        assert result.scanned == 4
        assert result.skipped == 3

    @pytest.mark.asyncio
    async def test_acknowledgement_deadline_only_applies_while_open(self, container, admin, student, clock):
        ticket = await raise_ticket(container, student)
        await container.tickets.change_status(ticket["id"], admin, TicketStatus.IN_PROGRESS)

        clock.advance(hours=6)
        result = await container.run_escalation_sweep()

        assert result.scanned == 0
        assert result.escalated == 0

    @pytest.mark.asyncio
    async def test_applies_matching_rule(self, container, session_factory, student, clock):
        lead = await add_user(session_factory, "it-lead", role=UserRole.SNR_ADMIN)
        category_id = await add_category(session_factory, domain="IT")
        await add_rule(session_factory, tat_hours=4, escalate_to=lead.user_id,
                       notify_channel=NotificationChannel.SLACK)
        ticket = await raise_ticket(container, student, category_id=category_id, location="Hostel A")

        clock.advance(hours=6)
        await container.run_escalation_sweep()

        view = await container.tickets.get_ticket(ticket["id"], student)
        assert parse_ts(view["resolution_due_at"]) == clock.now() + timedelta(hours=4)

        [event] = await ticket_events(container, ticket["id"], EventType.TICKET_ESCALATED)
        assert event.payload["recipients"] == [str(lead.user_id)]
        assert event.payload["slack"] is True
        assert event.payload["trigger"] == "automatic"
        assert event.priority == 1

    @pytest.mark.asyncio
    async def test_missing_rule_still_escalates(self, container, admin, student, clock):
        ticket = await raise_ticket(container, student)

        clock.advance(hours=6)
        await container.run_escalation_sweep()

        view = await container.tickets.get_ticket(ticket["id"], student)
        assert view["escalation_level"] == 1
        assert view["resolution_due_at"] == ticket["resolution_due_at"]

        activity = await container.tickets.list_activity(ticket["id"], admin)
        [escalated] = [a for a in activity if a["action"] == "escalated"]
        assert "no matching escalation rule" in escalated["details"]["reason"]
        assert escalated["visibility"] == "admin_only"

        student_view = await container.tickets.list_activity(ticket["id"], student)
        assert "escalated" not in [a["action"] for a in student_view]

    @pytest.mark.asyncio
    async def test_paused_ticket_is_not_escalated(self, container, admin, student, clock):
        ticket = await raise_ticket(container, student)
        await container.tickets.ask_question(ticket["id"], admin, "Which floor?")

        clock.advance(days=5)
        result = await container.run_escalation_sweep()

        assert result.escalated == 0

    @pytest.mark.asyncio
    async def test_stops_at_max_level(self, container, admin, student, clock):
        ticket = await raise_ticket(container, student)
        for _ in range(3):
            await container.tickets.escalate(ticket["id"], admin)

        clock.advance(days=5)
        result = await container.run_escalation_sweep()

        assert result.scanned == 0
        assert result.escalated == 0

    @pytest.mark.asyncio
    async def test_resolved_ticket_is_not_escalated(self, container, admin, student, clock):
        ticket = await raise_ticket(container, student)
        await container.tickets.resolve(ticket["id"], admin)

        clock.advance(days=5)
        assert (await container.run_escalation_sweep()).escalated == 0


class TestManualEscalation:
    @pytest.mark.asyncio
    async def test_creator_can_escalate(self, container, student):
        ticket = await raise_ticket(container, student)

        response = await container.tickets.escalate(ticket["id"], student, "Still no wifi")

        assert response == {
            "ticket_id": ticket["id"],
            "escalation_level": 1,
            "escalated_at": FIXED_NOW.isoformat(),
        }

    @pytest.mark.asyncio
    async def test_other_students_cannot_escalate(self, container, session_factory, student):
        ticket = await raise_ticket(container, student)
        other = await add_user(session_factory, "student-2")

        with pytest.raises(ForbiddenException):
            await container.tickets.escalate(ticket["id"], other)

    @pytest.mark.asyncio
    async def test_rejected_at_max_level(self, container, admin, student):
        ticket = await raise_ticket(container, student)
        levels = [
            (await container.tickets.escalate(ticket["id"], admin))["escalation_level"]
            for _ in range(3)
        ]
        assert levels == [1, 2, 3]

        with pytest.raises(ValidationException):
            await container.tickets.escalate(ticket["id"], admin)

    @pytest.mark.asyncio
    async def test_rejected_on_final_ticket(self, container, admin, student):
        ticket = await raise_ticket(container, student)
        await container.tickets.change_status(ticket["id"], admin, TicketStatus.CANCELLED)

        with pytest.raises(ValidationException):
            await container.tickets.escalate(ticket["id"], admin)

    @pytest.mark.asyncio
    async def test_idempotent_retry(self, container, admin, student):
        ticket = await raise_ticket(container, student)

        first = await container.tickets.escalate(ticket["id"], admin, idempotency_key="esc-1")
        second = await container.tickets.escalate(ticket["id"], admin, idempotency_key="esc-1")

        assert first == second
        view = await container.tickets.get_ticket(ticket["id"], admin)
        assert view["escalation_level"] == 1


class TestEscalationHooks:
    @pytest.mark.asyncio
    async def test_repeated_reopen(self, container, admin, student):
        ticket = await raise_ticket(container, student)

        for count in (1, 2, 3):
            await container.tickets.resolve(ticket["id"], admin)
            view = await container.tickets.reopen(ticket["id"], student, "Broken again")
            assert view["reopen_count"] == count

        assert view["status"] == TicketStatus.REOPENED
        assert view["escalation_level"] == 1

    @pytest.mark.asyncio
    async def test_repeated_extension(self, container, admin, student):
        ticket = await raise_ticket(container, student)

        levels = []
        for _ in range(3):
            view = await container.tickets.extend_tat(ticket["id"], admin, 4, "Awaiting parts")
            levels.append(view["escalation_level"])

        assert levels == [0, 0, 1]
        assert view["tat_extensions"] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating, level", [(1, 1), (2, 1), (4, 0)])
    async def test_poor_rating(self, container, admin, student, rating, level):
        ticket = await raise_ticket(container, student)
        await container.tickets.resolve(ticket["id"], admin)

        view = await container.tickets.rate(ticket["id"], student, rating)

        assert view["rating"] == rating
        assert view["escalation_level"] == level
