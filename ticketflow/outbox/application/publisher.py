"""
Outbox Publisher
================

Post-commit enqueue of ticket events.

Runs after the ticket transaction has committed, in its own transaction.
A failure here is logged and never raised; the ticket change already stands.
"""

from dataclasses import replace
from typing import Optional, Sequence

from ticketflow.core.clock import Clock
from ticketflow.outbox.domain import OutboxEvent
from ticketflow.shared.application.unit_of_work import UnitOfWorkFactory
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class OutboxPublisher:
    """Writes events to the outbox table."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        max_attempts: int = 3,
        clock: Optional[Clock] = None,
    ):
        self._uow_factory = uow_factory
        self._max_attempts = max_attempts
        self._clock = clock

    async def publish(self, events: Sequence[OutboxEvent]) -> int:
        """
        Enqueue events after a committed mutation.

        Returns:
            Number of events handed to the outbox (0 on failure)
        """
        if not events:
            return 0

        try:
            async with self._uow_factory() as uow:
                for event in events:
                    await uow.outbox.enqueue(self._prepare(event))
        except Exception as e:
            logger.error(
                "Failed to enqueue outbox events (non-critical)",
                extra={
                    "event_types": [ev.event_type for ev in events],
                    "aggregate_ids": sorted({ev.aggregate_id for ev in events}),
                    "error": str(e),
                }
            )
            return 0

        logger.info(
            "Outbox events enqueued",
            extra={"event_types": [ev.event_type for ev in events]}
        )
        return len(events)

    def _prepare(self, event: OutboxEvent) -> OutboxEvent:
        changes = {}
        if event.max_attempts is None:
            changes["max_attempts"] = self._max_attempts
        if event.scheduled_at is None and self._clock is not None:
            changes["scheduled_at"] = self._clock.now()
        return replace(event, **changes) if changes else event
