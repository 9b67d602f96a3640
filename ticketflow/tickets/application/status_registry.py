"""
Status Registry
===============

Cached access to the ``ticket_statuses`` table.

Statuses are data, not code: labels, progress and finality come from the
registry rows. The snapshot is reloaded after ``ttl_seconds``; if a reload
fails while a previous snapshot exists, the stale one keeps serving.
"""

from datetime import datetime
from typing import List, Optional

from ticketflow.core.clock import Clock
from ticketflow.core.exceptions import ConfigurationException
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.tickets.domain.statuses import StatusEntry, StatusSnapshot

logger = get_logger(__name__)


class StatusRegistry:
    """
    Async lookups over a TTL-cached StatusSnapshot.

    Args:
        uow_factory: opens a unit of work exposing ``statuses``
        clock: time source for cache expiry
        ttl_seconds: how long a snapshot is reused (0 disables caching)
    """

    def __init__(self, uow_factory, clock: Clock, ttl_seconds: int = 60):
        self._uow_factory = uow_factory
        self._clock = clock
        self.ttl_seconds = ttl_seconds
        self._snapshot: Optional[StatusSnapshot] = None
        self._loaded_at: Optional[datetime] = None

    def _fresh(self, now: datetime) -> bool:
        if self._snapshot is None or self._loaded_at is None:
            return False
        return (now - self._loaded_at).total_seconds() < self.ttl_seconds

    async def snapshot(self) -> StatusSnapshot:
        now = self._clock.now()
        if self._fresh(now):
            return self._snapshot

        try:
            async with self._uow_factory() as uow:
                entries = await uow.statuses.list_active()
        except Exception as e:
            if self._snapshot is None:
                raise
            logger.error(
                "Status registry reload failed, serving stale snapshot",
                extra={"error": str(e)}
            )
            return self._snapshot

        if not entries:
            raise ConfigurationException("Status registry is empty; seed ticket_statuses first")

        self._snapshot = StatusSnapshot(entries)
        self._loaded_at = now
        return self._snapshot

    def invalidate(self) -> None:
        self._snapshot = None
        self._loaded_at = None

    async def get_statuses(self) -> List[StatusEntry]:
        return (await self.snapshot()).get_statuses()

    async def is_final(self, value: str) -> bool:
        return (await self.snapshot()).is_final(value)

    async def progress(self, value: str) -> int:
        return (await self.snapshot()).progress(value)
