"""
SLA Domain Layer
================

Domain layer for TAT (turnaround time) tracking.

Contains:
- BusinessCalendar: working-time arithmetic
- TatCalculator: deadlines, pause/resume, overdue checks, extensions
- Value Objects: TatState, ExtensionRecord, Breach, SLAConfig

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from ticketflow.sla.domain.calendar import BusinessCalendar, default_calendar
from ticketflow.sla.domain.tat import Extension, TatCalculator
from ticketflow.sla.domain.value_objects import (
    Breach,
    BusinessCalendarConfig,
    Deadlines,
    ExtensionRecord,
    SLAConfig,
    TatState,
)

__all__ = [
    "BusinessCalendar",
    "default_calendar",
    "Extension",
    "TatCalculator",
    "Breach",
    "BusinessCalendarConfig",
    "Deadlines",
    "ExtensionRecord",
    "SLAConfig",
    "TatState",
]
