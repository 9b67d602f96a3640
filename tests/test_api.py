"""HTTP surface: routing, headers, error mapping and the ticket lifecycle end to end."""

from datetime import timedelta
from uuid import uuid4

import pytest

from ticketflow.config import EventType, UserRole
from tests.conftest import add_category, add_user, headers_for, parse_ts

STUDENT = headers_for("student-1")
ADMIN = headers_for("admin-1")
CRON = {"X-Cron-Secret": "cron-secret"}


async def create_ticket(client, headers=STUDENT, **body):
    body.setdefault("description", "Projector in room 204 does not turn on")
    response = await client.post("/tickets", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def comment_events(container, ticket_id):
    async with container.uow_factory() as uow:
        rows = await uow.outbox.list_for_aggregate("ticket", str(ticket_id))
    return [row for row in rows if row.event_type == EventType.TICKET_COMMENT_ADDED]


class TestService:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["checks"]["scheduler"] == "stopped"

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, client):
        response = await client.get("/", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"

    @pytest.mark.asyncio
    async def test_statuses(self, client):
        response = await client.get("/statuses")
        assert response.status_code == 200
        values = [s["value"] for s in response.json()]
        assert values[0] == "open"
        assert len(values) == 8
        finals = {s["value"] for s in response.json() if s["is_final"]}
        assert finals == {"resolved", "closed", "cancelled"}


class TestIdentity:
    @pytest.mark.asyncio
    async def test_missing_user_header(self, client):
        response = await client.post("/tickets", json={"description": "Broken chair"})
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_unknown_caller_is_registered_as_student(self, client):
        ticket = await create_ticket(client, headers_for("newcomer", **{"X-User-Email": "n@example.com"}))

        response = await client.post(
            f"/tickets/{ticket['id']}/ask-question",
            json={"question": "Can I ask myself?"},
            headers=headers_for("newcomer"),
        )
        assert response.status_code == 403


class TestCreate:
    @pytest.mark.asyncio
    async def test_create(self, client, session_factory, admin):
        category_id = await add_category(session_factory, default_admin_id=admin.user_id, sla_hours=24)

        ticket = await create_ticket(client, category_id=category_id, location="Block A",
                                     metadata={"room": "204"})

        assert ticket["status"] == "open"
        assert ticket["assigned_to"] == str(admin.user_id)
        assert ticket["ticket_number"].startswith("TKT-")
        assert ticket["metadata"] == {"room": "204"}
        assert ticket["escalation_level"] == 0
        assert parse_ts(ticket["resolution_due_at"]) - parse_ts(ticket["created_at"]) == timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_blank_description(self, client):
        response = await client.post("/tickets", json={"description": "   "}, headers=STUDENT)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_reserved_metadata_keys(self, client):
        response = await client.post(
            "/tickets",
            json={"description": "Leaking tap", "metadata": {"tat_state": {}}},
            headers=STUDENT,
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_category(self, client):
        response = await client.post(
            "/tickets", json={"description": "Leaking tap", "category_id": 999}, headers=STUDENT
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_idempotency_key(self, client):
        headers = headers_for("student-1", **{"Idempotency-Key": "create-1"})
        first = await create_ticket(client, headers)
        replay = await create_ticket(client, headers)
        assert replay == first

        response = await client.post(
            "/tickets", json={"description": "Something else entirely"}, headers=headers
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

        other = await create_ticket(client)
        assert other["id"] == first["id"] + 1


class TestAccess:
    @pytest.mark.asyncio
    async def test_get_ticket(self, client, student, session_factory):
        ticket = await create_ticket(client)
        await add_user(session_factory, "student-2")

        assert (await client.get(f"/tickets/{ticket['id']}", headers=STUDENT)).status_code == 200
        assert (await client.get(f"/tickets/{ticket['id']}", headers=headers_for("student-2"))).status_code == 403
        assert (await client.get("/tickets/9999", headers=STUDENT)).status_code == 404

    @pytest.mark.asyncio
    async def test_assigned_to_me(self, client, session_factory, admin):
        category_id = await add_category(session_factory, default_admin_id=admin.user_id)
        mine = await create_ticket(client, category_id=category_id)
        await create_ticket(client)

        response = await client.get("/tickets/assigned/me", headers=ADMIN)
        assert response.status_code == 200
        assert [t["id"] for t in response.json()] == [mine["id"]]

        assert (await client.get("/tickets/assigned/me", headers=STUDENT)).status_code == 403


class TestConversation:
    @pytest.mark.asyncio
    async def test_question_pauses_and_reply_resumes(self, client, admin, clock):
        ticket = await create_ticket(client)

        asked = await client.post(
            f"/tickets/{ticket['id']}/ask-question",
            json={"question": "Which building?"},
            headers=ADMIN,
        )
        assert asked.status_code == 200
        assert asked.json()["status"] == "awaiting_student_response"
        assert asked.json()["tat_paused"] is True

        clock.advance(hours=30)
        reply = await client.post(
            f"/tickets/{ticket['id']}/comments",
            json={"comment": "Main block"},
            headers=STUDENT,
        )
        assert reply.status_code == 201
        body = reply.json()
        assert body["activity"]["action"] == "comment"
        assert body["ticket"]["status"] == "in_progress"
        assert body["ticket"]["tat_paused"] is False
        # 30 paused hours are not charged against the TAT
        assert parse_ts(body["ticket"]["resolution_due_at"]) == (
            parse_ts(ticket["resolution_due_at"]) + timedelta(hours=30)
        )

    @pytest.mark.asyncio
    async def test_students_cannot_ask_questions(self, client):
        ticket = await create_ticket(client)
        response = await client.post(
            f"/tickets/{ticket['id']}/ask-question", json={"question": "?"}, headers=STUDENT
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_internal_note(self, client, container, admin):
        ticket = await create_ticket(client)

        note = await client.post(
            f"/tickets/{ticket['id']}/comments",
            json={"comment": "Vendor ticket #77", "is_internal": True},
            headers=ADMIN,
        )
        assert note.status_code == 201
        assert note.json()["activity"]["visibility"] == "admin_only"
        assert await comment_events(container, ticket["id"]) == []

        student_log = await client.get(f"/tickets/{ticket['id']}/activity", headers=STUDENT)
        assert "internal_note" not in [a["action"] for a in student_log.json()]
        admin_log = await client.get(f"/tickets/{ticket['id']}/activity", headers=ADMIN)
        assert "internal_note" in [a["action"] for a in admin_log.json()]

        forbidden = await client.post(
            f"/tickets/{ticket['id']}/comments",
            json={"comment": "Sneaky", "is_internal": True},
            headers=STUDENT,
        )
        assert forbidden.status_code == 403

    @pytest.mark.asyncio
    async def test_public_comment_notifies_assignee(self, client, container, session_factory, admin):
        category_id = await add_category(session_factory, default_admin_id=admin.user_id)
        ticket = await create_ticket(client, category_id=category_id)

        await client.post(f"/tickets/{ticket['id']}/comments", json={"comment": "Any update?"},
                          headers=STUDENT)

        [event] = await comment_events(container, ticket["id"])
        assert event.payload["recipients"] == [str(admin.user_id)]

    @pytest.mark.asyncio
    async def test_no_comments_on_closed_ticket(self, client, admin):
        ticket = await create_ticket(client)
        await client.post(f"/tickets/{ticket['id']}/status", json={"status": "cancelled"}, headers=ADMIN)

        response = await client.post(
            f"/tickets/{ticket['id']}/comments", json={"comment": "Hello?"}, headers=STUDENT
        )
        assert response.status_code == 400


class TestReassign:
    @pytest.mark.asyncio
    async def test_reassign(self, client, session_factory, admin, student):
        other_admin = await add_user(session_factory, "admin-2", role=UserRole.ADMIN)
        ticket = await create_ticket(client)
        url = f"/tickets/{ticket['id']}/reassign"

        moved = await client.post(url, json={"assignedTo": str(other_admin.user_id)}, headers=ADMIN)
        assert moved.status_code == 200
        assert moved.json()["assigned_to"] == str(other_admin.user_id)

        to_student = await client.post(url, json={"assignedTo": str(student.user_id)}, headers=ADMIN)
        assert to_student.status_code == 400

        to_nobody = await client.post(url, json={"assignedTo": str(uuid4())}, headers=ADMIN)
        assert to_nobody.status_code == 404

        unassigned = await client.post(url, json={"assignedTo": "unassigned"}, headers=ADMIN)
        assert unassigned.json()["assigned_to"] is None

        by_student = await client.post(url, json={"assignedTo": "unassigned"}, headers=STUDENT)
        assert by_student.status_code == 403


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_invalid_transition(self, client, admin):
        ticket = await create_ticket(client)

        response = await client.post(
            f"/tickets/{ticket['id']}/status", json={"status": "closed"}, headers=ADMIN
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"from": "open", "to": "closed"}

    @pytest.mark.asyncio
    async def test_unknown_status(self, client, admin):
        ticket = await create_ticket(client)
        response = await client.post(
            f"/tickets/{ticket['id']}/status", json={"status": "archived"}, headers=ADMIN
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_resolve_rate_and_reopen(self, client, admin):
        ticket = await create_ticket(client)
        base = f"/tickets/{ticket['id']}"

        acknowledged = await client.post(f"{base}/status", json={"status": "acknowledged"}, headers=ADMIN)
        assert acknowledged.json()["acknowledged_at"] is not None

        early = await client.post(f"{base}/rating", json={"rating": 5}, headers=STUDENT)
        assert early.status_code == 400

        resolved = await client.post(f"{base}/resolve", json={"comment": "Replaced bulb"}, headers=ADMIN)
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved"
        assert resolved.json()["is_final"] is True

        by_admin = await client.post(f"{base}/rating", json={"rating": 5}, headers=ADMIN)
        assert by_admin.status_code == 403

        rated = await client.post(f"{base}/rating", json={"rating": 5, "feedback": "Quick"}, headers=STUDENT)
        assert rated.status_code == 200
        assert rated.json()["rating"] == 5

        twice = await client.post(f"{base}/rating", json={"rating": 4}, headers=STUDENT)
        assert twice.status_code == 409

        reopened = await client.post(f"{base}/reopen", json={"reason": "Flickering"}, headers=STUDENT)
        assert reopened.status_code == 200
        assert reopened.json()["status"] == "reopened"
        assert reopened.json()["reopen_count"] == 1
        assert reopened.json()["resolved_at"] is None

    @pytest.mark.asyncio
    async def test_extend_tat(self, client, admin):
        ticket = await create_ticket(client)
        base = f"/tickets/{ticket['id']}"

        extended = await client.post(f"{base}/tat/extend", json={"hours": 8, "reason": "Parts"}, headers=ADMIN)
        assert extended.status_code == 200
        assert parse_ts(extended.json()["resolution_due_at"]) == (
            parse_ts(ticket["resolution_due_at"]) + timedelta(hours=8)
        )
        assert extended.json()["tat_extensions"] == 1

        invalid = await client.post(f"{base}/tat/extend", json={"hours": 0}, headers=ADMIN)
        assert invalid.status_code == 400

        by_student = await client.post(f"{base}/tat/extend", json={"hours": 2}, headers=STUDENT)
        assert by_student.status_code == 403

    @pytest.mark.asyncio
    async def test_escalate(self, client, admin):
        ticket = await create_ticket(client)

        response = await client.post(f"/tickets/{ticket['id']}/escalate", headers=STUDENT)

        assert response.status_code == 200
        assert response.json()["ticket_id"] == ticket["id"]
        assert response.json()["escalation_level"] == 1

    @pytest.mark.asyncio
    async def test_update_description(self, client, admin):
        ticket = await create_ticket(client)

        response = await client.patch(
            f"/tickets/{ticket['id']}/description",
            json={"description": "Projector and speakers are dead"},
            headers=STUDENT,
        )
        assert response.status_code == 200
        assert response.json()["description"] == "Projector and speakers are dead"


class TestCron:
    @pytest.mark.asyncio
    async def test_requires_secret(self, client):
        assert (await client.post("/cron/escalations")).status_code == 403
        wrong = await client.post("/cron/outbox", headers={"X-Cron-Secret": "nope"})
        assert wrong.status_code == 403

    @pytest.mark.asyncio
    async def test_escalation_sweep(self, client, clock):
        ticket = await create_ticket(client)
        clock.advance(hours=6)

        response = await client.post("/cron/escalations", headers=CRON)

        assert response.status_code == 200
        assert response.json()["escalated"] == 1
        assert response.json()["ticket_ids"] == [ticket["id"]]

    @pytest.mark.asyncio
    async def test_outbox_dispatch(self, client):
        await create_ticket(client)

        response = await client.post("/cron/outbox", headers=CRON)

        assert response.status_code == 200
        assert response.json()["completed"] == 1

    @pytest.mark.asyncio
    async def test_idempotency_purge(self, client, clock):
        await create_ticket(client, headers_for("student-1", **{"Idempotency-Key": "k-1"}))
        clock.advance(hours=25)

        response = await client.post("/cron/idempotency/purge", headers=CRON)

        assert response.json() == {"purged": 1}
