"""
Ticket Statuses
===============

Registry entries and an immutable snapshot of the ``ticket_statuses`` table.

Lookups of an unknown value fail closed: not final, zero progress.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ticketflow.config import TicketStatus
from ticketflow.core.exceptions import ConfigurationException
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StatusEntry:
    """One row of the status registry."""
    value: str
    label: str
    progress_percent: int
    display_order: int
    is_final: bool
    id: Optional[int] = None
    description: Optional[str] = None


DEFAULT_STATUSES: List[StatusEntry] = [
    StatusEntry(TicketStatus.OPEN, "Open", 0, 1, False,
                description="Ticket has been created and is awaiting acknowledgement"),
    StatusEntry(TicketStatus.ACKNOWLEDGED, "Acknowledged", 20, 2, False,
                description="An admin has acknowledged the ticket"),
    StatusEntry(TicketStatus.IN_PROGRESS, "In Progress", 50, 3, False,
                description="Work is being done on the ticket"),
    StatusEntry(TicketStatus.AWAITING_STUDENT_RESPONSE, "Awaiting Student Response", 60, 4, False,
                description="Waiting for the student to answer; TAT is paused"),
    StatusEntry(TicketStatus.RESOLVED, "Resolved", 90, 5, True,
                description="Ticket has been resolved, awaiting confirmation"),
    StatusEntry(TicketStatus.CLOSED, "Closed", 100, 6, True,
                description="Ticket is closed and archived"),
    StatusEntry(TicketStatus.REOPENED, "Reopened", 10, 7, False,
                description="Ticket was reopened after resolution"),
    StatusEntry(TicketStatus.CANCELLED, "Cancelled", 100, 8, True,
                description="Ticket was cancelled"),
]


class StatusSnapshot:
    """Point-in-time view of the registry with synchronous lookups."""

    def __init__(self, entries: Iterable[StatusEntry]):
        self._entries = sorted(entries, key=lambda e: (e.display_order, e.value))
        self._by_value: Dict[str, StatusEntry] = {e.value: e for e in self._entries}
        self._by_id: Dict[int, StatusEntry] = {
            e.id: e for e in self._entries if e.id is not None
        }

    def get_statuses(self) -> List[StatusEntry]:
        return list(self._entries)

    def get(self, value: str) -> Optional[StatusEntry]:
        entry = self._by_value.get(value)
        if entry is None:
            logger.error("Unknown ticket status", extra={"status": value})
        return entry

    def is_final(self, value: str) -> bool:
        entry = self.get(value)
        return entry.is_final if entry else False

    def progress(self, value: str) -> int:
        entry = self.get(value)
        return entry.progress_percent if entry else 0

    def id_for(self, value: str) -> int:
        """Primary key for a status value; an unregistered value is a setup error."""
        entry = self._by_value.get(value)
        if entry is None or entry.id is None:
            raise ConfigurationException(
                f"Status '{value}' is not registered",
                {"status": value}
            )
        return entry.id

    def value_for(self, status_id: Optional[int]) -> str:
        entry = self._by_id.get(status_id) if status_id is not None else None
        if entry is None:
            logger.error("Ticket references unknown status id", extra={"status_id": status_id})
            return ""
        return entry.value

    def final_ids(self) -> List[int]:
        return [e.id for e in self._entries if e.is_final and e.id is not None]

    def __len__(self) -> int:
        return len(self._entries)
