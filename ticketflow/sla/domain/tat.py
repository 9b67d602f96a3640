"""
TAT Calculator
==============

Pure deadline logic on top of a BusinessCalendar: initial deadlines,
pause/resume across the awaiting-input status, overdue checks and
extensions. Nothing here reads the wall clock; callers pass ``now``.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ticketflow.core.exceptions import ValidationException
from ticketflow.sla.domain.calendar import BusinessCalendar
from ticketflow.sla.domain.value_objects import (
    Breach, Deadlines, ExtensionRecord, TatState
)


@dataclass(frozen=True)
class Extension:
    """Result of extending a deadline."""
    new_deadline: datetime
    tat_state: Optional[TatState]
    record: ExtensionRecord


class TatCalculator:
    """
    Business-hours TAT arithmetic.

    Stateless apart from the calendar it was built with.
    """

    def __init__(self, calendar: BusinessCalendar, acknowledgement_ratio: float = 0.1):
        self.calendar = calendar
        self.acknowledgement_ratio = acknowledgement_ratio

    def add_business_hours(self, start: datetime, hours: float) -> datetime:
        return self.calendar.add_business_hours(start, hours)

    def remaining_business_hours(self, deadline: datetime, now: datetime) -> float:
        """Working hours from ``now`` until ``deadline`` (negative once past)."""
        return self.calendar.business_hours_between(now, deadline)

    def initial_deadlines(self, created_at: datetime, sla_hours: float) -> Deadlines:
        """
        Deadlines for a new (or reopened) ticket.

        Acknowledgement gets ceil(ratio * TAT) business hours, at least one.
        """
        ack_hours = max(1, math.ceil(sla_hours * self.acknowledgement_ratio))
        return Deadlines(
            acknowledgement_due_at=self.add_business_hours(created_at, ack_hours),
            resolution_due_at=self.add_business_hours(created_at, sla_hours),
        )

    # ------------------------------------------------------------------
    # Pause / resume
    # ------------------------------------------------------------------

    def pause(
        self,
        deadline: Optional[datetime],
        now: datetime,
        status: Optional[str] = None,
        current: Optional[TatState] = None,
    ) -> Optional[TatState]:
        """
        Freeze the countdown.

        Returns the state to persist, or ``None`` when there is no deadline
        to freeze. Pausing an already paused ticket keeps the original state.
        """
        if current is not None:
            return current
        if deadline is None:
            return None
        return TatState(
            paused_at=now,
            remaining_hours=self.remaining_business_hours(deadline, now),
            paused_status=status,
        )

    def resume(self, state: TatState, now: datetime) -> datetime:
        """Deadline after resuming; may be in the past when little was left."""
        return self.add_business_hours(now, state.remaining_hours)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def is_overdue(
        self,
        deadline: Optional[datetime],
        tat_state: Optional[TatState],
        now: datetime,
        is_final: bool = False,
    ) -> bool:
        """Wall-clock check against the effective deadline; never while paused."""
        if is_final or deadline is None or tat_state is not None:
            return False
        return now > deadline

    def find_breach(
        self,
        status: str,
        acknowledgement_due_at: Optional[datetime],
        resolution_due_at: Optional[datetime],
        tat_state: Optional[TatState],
        now: datetime,
        is_final: bool = False,
        awaiting_acknowledgement: bool = False,
    ) -> Optional[Breach]:
        """
        The lapsed deadline a sweep should escalate, if any.

        Resolution breaches take precedence over acknowledgement breaches.
        """
        if self.is_overdue(resolution_due_at, tat_state, now, is_final):
            return Breach(kind="resolution", deadline=resolution_due_at)
        if awaiting_acknowledgement and self.is_overdue(
            acknowledgement_due_at, tat_state, now, is_final
        ):
            return Breach(kind="acknowledgement", deadline=acknowledgement_due_at)
        return None

    # ------------------------------------------------------------------
    # Extension
    # ------------------------------------------------------------------

    def extend(
        self,
        deadline: Optional[datetime],
        hours: float,
        now: datetime,
        tat_state: Optional[TatState] = None,
        reason: Optional[str] = None,
        extended_by: Optional[str] = None,
    ) -> Extension:
        """
        Push the resolution deadline out by ``hours`` business hours.

        A paused ticket also gets the hours added to its frozen remainder so
        the extension survives the resume.
        """
        if deadline is None:
            raise ValidationException("Ticket has no TAT deadline to extend")
        if hours <= 0:
            raise ValidationException("Extension hours must be positive", {"hours": hours})

        new_deadline = self.add_business_hours(deadline, hours)
        if tat_state is not None:
            tat_state = tat_state.model_copy(
                update={"remaining_hours": tat_state.remaining_hours + hours}
            )

        record = ExtensionRecord(
            extended_at=now,
            previous_deadline=deadline,
            new_deadline=new_deadline,
            hours=hours,
            reason=reason,
            extended_by=extended_by,
        )
        return Extension(new_deadline=new_deadline, tat_state=tat_state, record=record)
