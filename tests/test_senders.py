"""Slack and email relay senders against a mocked HTTP transport."""

import json

import httpx
import pytest

from ticketflow.outbox.infrastructure.senders import (
    CircuitBreaker,
    CircuitState,
    EmailRelayNotifier,
    SlackNotifier,
)

TEMPLATE_DATA = {
    "template": "ticket.escalated",
    "subject": "Ticket TKT-1 escalated to level 2",
    "ticket_number": "TKT-1",
    "status": "in_progress",
    "escalation_level": 2,
    "location": "Hostel A",
    "reason": "Resolution deadline passed",
    "event_id": 7,
}


def mock_client(status_code=200, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 300})
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestCircuitBreaker:
    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        breaker.record_failure()
        assert breaker.allow_request()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_half_open_after_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        breaker.record_failure()
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED


class TestSlackNotifier:
    @pytest.mark.asyncio
    async def test_posts_block_message(self):
        requests = []
        notifier = SlackNotifier(
            "https://hooks.slack.test/T000", "#tickets", http_client=mock_client(requests=requests)
        )

        result = await notifier.send("slack", "#escalations", TEMPLATE_DATA)

        assert result.delivered
        body = json.loads(requests[0].content)
        assert body["channel"] == "#escalations"
        assert body["blocks"][0]["text"]["text"].startswith(":rotating_light:")
        assert "Reason: Resolution deadline passed" in json.dumps(body["blocks"])

    @pytest.mark.asyncio
    async def test_skipped_without_webhook(self):
        result = await SlackNotifier(None, "#tickets").send("slack", None, TEMPLATE_DATA)
        assert result.skipped and result.ok

    @pytest.mark.asyncio
    async def test_error_status_is_a_failure(self):
        notifier = SlackNotifier("https://hooks.slack.test/T000", "#tickets",
                                 http_client=mock_client(status_code=500))

        result = await notifier.send("slack", None, TEMPLATE_DATA)

        assert not result.ok
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits(self):
        requests = []
        notifier = SlackNotifier(
            "https://hooks.slack.test/T000", "#tickets",
            http_client=mock_client(status_code=503, requests=requests),
            circuit_breaker=CircuitBreaker(failure_threshold=1, recovery_timeout=60),
        )

        await notifier.send("slack", None, TEMPLATE_DATA)
        result = await notifier.send("slack", None, TEMPLATE_DATA)

        assert result.error == "Slack circuit breaker open"
        assert len(requests) == 1


class TestEmailRelayNotifier:
    @pytest.mark.asyncio
    async def test_posts_to_relay(self):
        requests = []
        notifier = EmailRelayNotifier(
            "https://relay.test/send", "support@campus.test", http_client=mock_client(requests=requests)
        )

        result = await notifier.send("email", "student@campus.test", TEMPLATE_DATA)

        assert result.delivered
        body = json.loads(requests[0].content)
        assert body["from"] == "support@campus.test"
        assert body["to"] == "student@campus.test"
        assert body["subject"] == TEMPLATE_DATA["subject"]
        assert body["template"] == "ticket.escalated"

    @pytest.mark.asyncio
    async def test_missing_recipient_is_skipped(self):
        notifier = EmailRelayNotifier("https://relay.test/send", "support@campus.test",
                                      http_client=mock_client())
        assert (await notifier.send("email", None, TEMPLATE_DATA)).skipped

    @pytest.mark.asyncio
    async def test_relay_rejection(self):
        notifier = EmailRelayNotifier("https://relay.test/send", "support@campus.test",
                                      http_client=mock_client(status_code=422))

        result = await notifier.send("email", "student@campus.test", TEMPLATE_DATA)

        assert not result.ok
        assert result.error == "Email relay returned 422"
