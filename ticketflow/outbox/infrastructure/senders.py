"""
Notification Senders
====================

External delivery channels used by the outbox dispatcher:
- Slack incoming webhook (Block Kit message)
- HTTP email relay

Both guard the remote endpoint with a circuit breaker. Retries are not done
here; a failed send is reported back and the outbox reschedules the event.
"""

import time
from typing import Any, Dict, Optional

import httpx

from ticketflow.outbox.application.interfaces import DeliveryResult, NotificationSender
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for a remote endpoint.

    States:
    - CLOSED: requests pass through
    - OPEN: after N consecutive failures, reject requests for M seconds
    - HALF_OPEN: after the timeout, let one trial request through
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class SlackNotifier(NotificationSender):
    """
    Posts ticket alerts to a Slack incoming webhook.

    Without a webhook URL every send is reported as skipped.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        default_channel: str,
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.webhook_url = webhook_url
        self.default_channel = default_channel
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    def _build_message(self, channel: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Build a Slack Block Kit message."""
        is_escalation = data.get("template") == "ticket.escalated"
        emoji = ":rotating_light:" if is_escalation else ":ticket:"

        fields = [
            {"type": "mrkdwn", "text": f"*Ticket:*\n{data.get('ticket_number', '-')}"},
            {"type": "mrkdwn", "text": f"*Status:*\n{data.get('new_status') or data.get('status', '-')}"},
        ]
        if data.get("escalation_level") is not None:
            fields.append({"type": "mrkdwn", "text": f"*Escalation Level:*\n{data['escalation_level']}"})
        if data.get("location"):
            fields.append({"type": "mrkdwn", "text": f"*Location:*\n{data['location']}"})

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} {data.get('subject', 'Ticket update')}",
                    "emoji": True
                }
            },
            {"type": "section", "fields": fields},
        ]
        if data.get("reason"):
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Reason: {data['reason']}"}]
            })

        return {"channel": channel or self.default_channel, "blocks": blocks}

    async def send(
        self,
        channel: str,
        recipient: Optional[str],
        template_data: Dict[str, Any],
    ) -> DeliveryResult:
        if not self.webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return DeliveryResult(delivered=False, skipped=True)

        if not self._circuit_breaker.allow_request():
            return DeliveryResult(delivered=False, error="Slack circuit breaker open")

        message = self._build_message(recipient or self.default_channel, template_data)
        try:
            client = await self._get_client()
            response = await client.post(self.webhook_url, json=message)
        except httpx.HTTPError as e:
            self._circuit_breaker.record_failure()
            return DeliveryResult(delivered=False, error=f"Slack request failed: {e}")

        if response.status_code != 200:
            self._circuit_breaker.record_failure()
            return DeliveryResult(
                delivered=False,
                error=f"Slack webhook returned {response.status_code}"
            )

        self._circuit_breaker.record_success()
        logger.info(
            "Slack notification sent",
            extra={"event_id": template_data.get("event_id"), "slack_channel": message["channel"]}
        )
        return DeliveryResult(delivered=True)

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class EmailRelayNotifier(NotificationSender):
    """
    Sends ticket emails through an HTTP relay.

    The relay receives ``{from, to, subject, template, data}`` and renders
    the message. Without a relay URL every send is reported as skipped.
    """

    def __init__(
        self,
        relay_url: Optional[str],
        sender_address: str,
        api_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.relay_url = relay_url
        self.sender_address = sender_address
        self.api_token = api_token
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds, headers=headers)
        return self._http_client

    async def send(
        self,
        channel: str,
        recipient: Optional[str],
        template_data: Dict[str, Any],
    ) -> DeliveryResult:
        if not self.relay_url:
            logger.debug("Email relay not configured, skipping notification")
            return DeliveryResult(delivered=False, skipped=True)
        if not recipient:
            return DeliveryResult(delivered=False, skipped=True)

        if not self._circuit_breaker.allow_request():
            return DeliveryResult(delivered=False, error="Email relay circuit breaker open")

        body = {
            "from": self.sender_address,
            "to": recipient,
            "subject": template_data.get("subject", "Ticket update"),
            "template": template_data.get("template"),
            "data": template_data,
        }
        try:
            client = await self._get_client()
            response = await client.post(self.relay_url, json=body)
        except httpx.HTTPError as e:
            self._circuit_breaker.record_failure()
            return DeliveryResult(delivered=False, error=f"Email relay request failed: {e}")

        if response.status_code >= 300:
            self._circuit_breaker.record_failure()
            return DeliveryResult(
                delivered=False,
                error=f"Email relay returned {response.status_code}"
            )

        self._circuit_breaker.record_success()
        logger.info(
            "Email notification sent",
            extra={"event_id": template_data.get("event_id"), "template": body["template"]}
        )
        return DeliveryResult(delivered=True)

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
