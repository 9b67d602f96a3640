"""
Outbox Dispatcher
=================

Claims due outbox events, hands them to the notification senders and records
the outcome.

Delivery is at-least-once: a claimed event is completed only after every
delivery it routes to succeeded; any failure sends the whole event back for
retry with exponential backoff, or to ``dead_letter`` once its attempts are
exhausted. Failures never propagate to whoever enqueued the event.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from ticketflow.config import EventType, NotificationChannel, OutboxStatus
from ticketflow.core.clock import Clock
from ticketflow.core.exceptions import NotificationDeliveryException
from ticketflow.outbox.application.interfaces import IContactDirectory, NotificationSender
from ticketflow.outbox.domain import ClaimedEvent, is_exhausted, retry_delay
from ticketflow.shared.application.unit_of_work import UnitOfWorkFactory
from ticketflow.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


SUBJECTS: Dict[str, str] = {
    EventType.TICKET_CREATED: "Ticket {ticket_number} created",
    EventType.TICKET_ASSIGNED: "Ticket {ticket_number} has been assigned to you",
    EventType.TICKET_STATUS_UPDATED: "Ticket {ticket_number} is now {new_status}",
    EventType.TICKET_ESCALATED: "Ticket {ticket_number} escalated to level {escalation_level}",
    EventType.TICKET_COMMENT_ADDED: "New comment on ticket {ticket_number}",
    EventType.TICKET_REOPENED: "Ticket {ticket_number} was reopened",
    EventType.TICKET_TAT_EXTENDED: "TAT extended for ticket {ticket_number}",
}


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


@dataclass(frozen=True)
class Delivery:
    """One message for one channel/recipient."""
    channel: str
    recipient: Optional[str]
    template_data: Dict[str, Any]


@dataclass
class DispatchResult:
    """Counters for one dispatch run."""
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    released: int = 0
    errors: List[str] = field(default_factory=list)


class NotificationRouter:
    """
    Turns an outbox event into deliveries.

    Payloads name their audience: ``recipients`` (user ids, emailed) and
    ``slack`` (True or a channel name). The event type picks the template.
    """

    def __init__(self, default_slack_channel: str):
        self.default_slack_channel = default_slack_channel

    def knows(self, event_type: str) -> bool:
        return event_type in SUBJECTS

    async def route(
        self,
        event: ClaimedEvent,
        directory: IContactDirectory,
    ) -> List[Delivery]:
        payload = event.payload or {}
        template_data = {
            **payload,
            "template": event.event_type,
            "subject": SUBJECTS[event.event_type].format_map(_Blank(payload)),
            "event_id": event.id,
        }

        deliveries: List[Delivery] = []
        seen = set()
        for user_id in payload.get("recipients") or []:
            if not user_id or user_id in seen:
                continue
            seen.add(user_id)
            contact = await directory.get_contact(str(user_id))
            if contact is None or not contact.email:
                logger.warning(
                    "Recipient has no email address, skipping",
                    extra={"event_id": event.id, "user_id": str(user_id)}
                )
                continue
            deliveries.append(Delivery(
                channel=NotificationChannel.EMAIL,
                recipient=contact.email,
                template_data={**template_data, "recipient_name": contact.full_name},
            ))

        slack = payload.get("slack")
        if slack:
            channel = slack if isinstance(slack, str) else self.default_slack_channel
            deliveries.append(Delivery(
                channel=NotificationChannel.SLACK,
                recipient=channel,
                template_data=template_data,
            ))

        return deliveries


class OutboxDispatcher:
    """
    Polls the outbox and delivers events.

    Safe to run in several processes at once: claiming is exclusive per row.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        router: NotificationRouter,
        senders: Mapping[str, NotificationSender],
        clock: Clock,
        batch_size: int = 10,
        retry_base_seconds: float = 60.0,
        processing_timeout_seconds: int = 300,
    ):
        self._uow_factory = uow_factory
        self._router = router
        self._senders = dict(senders)
        self._clock = clock
        self.batch_size = batch_size
        self.retry_base_seconds = retry_base_seconds
        self.processing_timeout_seconds = processing_timeout_seconds

    async def dispatch_batch(self) -> DispatchResult:
        """Claim one batch of due events and process it."""
        result = DispatchResult()
        now = self._clock.now()

        async with self._uow_factory() as uow:
            result.released = await uow.outbox.release_stale(
                now - timedelta(seconds=self.processing_timeout_seconds)
            )
            events = await uow.outbox.claim_batch(now, self.batch_size)
        result.claimed = len(events)

        if result.released:
            logger.warning(
                "Released stuck outbox events",
                extra={"released": result.released}
            )
        if not events:
            return result

        with log_latency(logger, "outbox_dispatch", claimed=len(events)):
            for event in events:
                try:
                    await self._execute(event)
                except Exception as e:
                    status = await self._record_failure(event, e)
                    result.errors.append(f"{event.id}: {e}")
                    if status == OutboxStatus.DEAD_LETTER:
                        result.dead_lettered += 1
                    else:
                        result.retried += 1
                else:
                    await self._record_success(event)
                    result.completed += 1

        return result

    async def _execute(self, event: ClaimedEvent) -> None:
        if not self._router.knows(event.event_type):
            logger.warning(
                "Unknown outbox event type, completing without delivery",
                extra={"event_id": event.id, "event_type": event.event_type}
            )
            return

        async with self._uow_factory() as uow:
            deliveries = await self._router.route(event, uow.users)

        for delivery in deliveries:
            sender = self._senders.get(delivery.channel)
            if sender is None:
                logger.warning(
                    "No sender registered for channel",
                    extra={"event_id": event.id, "channel": delivery.channel}
                )
                continue

            outcome = await sender.send(delivery.channel, delivery.recipient, delivery.template_data)
            if not outcome.ok:
                raise NotificationDeliveryException(
                    delivery.channel,
                    outcome.error or "delivery failed",
                    {"event_id": event.id, "recipient": delivery.recipient}
                )

    async def _record_success(self, event: ClaimedEvent) -> None:
        async with self._uow_factory() as uow:
            await uow.outbox.mark_completed(event.id, self._clock.now())
        logger.info(
            "Outbox event delivered",
            extra={"event_id": event.id, "event_type": event.event_type}
        )

    async def _record_failure(self, event: ClaimedEvent, error: Exception) -> str:
        attempts = event.attempts + 1
        retry_at: Optional[datetime] = None
        if not is_exhausted(attempts, event.max_attempts):
            retry_at = self._clock.now() + retry_delay(attempts, self.retry_base_seconds)

        async with self._uow_factory() as uow:
            status = await uow.outbox.record_failure(event.id, attempts, str(error), retry_at)

        log = logger.error if status == OutboxStatus.DEAD_LETTER else logger.warning
        log(
            "Outbox event delivery failed",
            extra={
                "event_id": event.id,
                "event_type": event.event_type,
                "attempts": attempts,
                "max_attempts": event.max_attempts,
                "status": status,
                "retry_at": retry_at.isoformat() if retry_at else None,
                "error": str(error),
            }
        )
        return status
