"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

TAT pause state and extension records live in the ticket's JSON metadata;
these models are the typed view of that data and are validated whenever it
is read or written.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketflow.config import DEFAULT_TAT_HOURS
from ticketflow.sla.domain.calendar import BusinessCalendar


class TatState(BaseModel):
    """Countdown state captured when a ticket's TAT is paused."""
    model_config = ConfigDict(frozen=True)

    paused_at: datetime
    remaining_hours: float
    paused_status: Optional[str] = None


class ExtensionRecord(BaseModel):
    """One entry of a ticket's TAT extension history."""
    model_config = ConfigDict(frozen=True)

    extended_at: datetime
    previous_deadline: Optional[datetime] = None
    new_deadline: datetime
    hours: float
    reason: Optional[str] = None
    extended_by: Optional[str] = None


@dataclass(frozen=True)
class Deadlines:
    """Acknowledgement and resolution deadlines of a ticket."""
    acknowledgement_due_at: datetime
    resolution_due_at: datetime


@dataclass(frozen=True)
class Breach:
    """
    A lapsed deadline the escalation engine acts on.

    ``marker`` identifies the breach so it is escalated at most once.
    """
    kind: str
    deadline: datetime

    @property
    def marker(self) -> str:
        return f"{self.kind}:{self.deadline.isoformat()}"


class BusinessCalendarConfig(BaseModel):
    """YAML section describing the working calendar."""
    working_days: List[int] = Field(
        default_factory=lambda: [0, 1, 2, 3, 4],
        description="Weekday numbers that count (Monday=0)"
    )
    day_start_hour: int = Field(default=0, ge=0, le=23)
    day_end_hour: int = Field(default=24, ge=1, le=24)
    timezone: str = Field(default="UTC")

    def to_calendar(self) -> BusinessCalendar:
        return BusinessCalendar(
            working_days=frozenset(self.working_days),
            day_start_hour=self.day_start_hour,
            day_end_hour=self.day_end_hour,
            timezone_name=self.timezone,
        )


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from YAML.

    This is a value object - replaced wholesale on hot reload.
    """
    business_calendar: BusinessCalendarConfig = Field(default_factory=BusinessCalendarConfig)
    default_sla_hours: float = Field(
        default=DEFAULT_TAT_HOURS,
        gt=0,
        description="Resolution TAT when the category sets none"
    )
    acknowledgement_ratio: float = Field(
        default=0.1,
        gt=0,
        le=1,
        description="Share of the TAT allowed for acknowledgement"
    )
    max_escalation_level: int = Field(default=3, ge=1)
    reopen_escalation_threshold: int = Field(
        default=3,
        ge=1,
        description="Reopen count that triggers an automatic escalation"
    )
    extension_escalation_counts: List[int] = Field(
        default_factory=lambda: [3, 5, 7],
        description="Extension counts that trigger an automatic escalation"
    )
    poor_rating_threshold: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Ratings at or below this escalate the ticket"
    )

    @field_validator("extension_escalation_counts")
    @classmethod
    def validate_extension_counts(cls, v: List[int]) -> List[int]:
        """Keep thresholds positive and sorted."""
        if any(count < 1 for count in v):
            raise ValueError("extension_escalation_counts must be positive")
        return sorted(set(v))

    def calendar(self) -> BusinessCalendar:
        return self.business_calendar.to_calendar()
