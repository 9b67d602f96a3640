"""TAT deadlines, pause/resume, breaches and extensions."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from ticketflow.core.exceptions import ValidationException
from ticketflow.sla.domain import Breach, SLAConfig, TatCalculator, TatState, default_calendar
from tests.conftest import FIXED_NOW

UTC = timezone.utc
TUESDAY = FIXED_NOW + timedelta(days=1)
WEDNESDAY = FIXED_NOW + timedelta(days=2)


@pytest.fixture
def calculator() -> TatCalculator:
    return TatCalculator(default_calendar(), acknowledgement_ratio=0.1)


class TestInitialDeadlines:
    def test_acknowledgement_is_share_of_tat(self, calculator):
        deadlines = calculator.initial_deadlines(FIXED_NOW, 48)
        assert deadlines.acknowledgement_due_at == FIXED_NOW + timedelta(hours=5)
        assert deadlines.resolution_due_at == WEDNESDAY

    def test_acknowledgement_is_at_least_one_hour(self, calculator):
        deadlines = calculator.initial_deadlines(FIXED_NOW, 5)
        assert deadlines.acknowledgement_due_at == FIXED_NOW + timedelta(hours=1)

    def test_deadline_skips_weekend(self, calculator):
        friday = datetime(2024, 1, 19, 12, 0, tzinfo=UTC)
        deadlines = calculator.initial_deadlines(friday, 24)
        assert deadlines.resolution_due_at == datetime(2024, 1, 22, 12, 0, tzinfo=UTC)


class TestPauseResume:
    def test_pause_captures_remaining_hours(self, calculator):
        state = calculator.pause(WEDNESDAY, TUESDAY, status="awaiting_student_response")
        assert state.paused_at == TUESDAY
        assert state.remaining_hours == pytest.approx(24.0)
        assert state.paused_status == "awaiting_student_response"

    def test_pause_is_idempotent(self, calculator):
        first = calculator.pause(WEDNESDAY, TUESDAY)
        again = calculator.pause(WEDNESDAY, TUESDAY + timedelta(hours=5), current=first)
        assert again is first

    def test_pause_without_deadline(self, calculator):
        assert calculator.pause(None, TUESDAY) is None

    def test_resume_restores_remaining_business_hours(self, calculator):
        state = TatState(paused_at=TUESDAY, remaining_hours=24)
        friday = datetime(2024, 1, 19, 10, 0, tzinfo=UTC)
        assert calculator.resume(state, friday) == datetime(2024, 1, 22, 10, 0, tzinfo=UTC)

    def test_overdue_pause_resumes_into_the_past(self, calculator):
        state = calculator.pause(FIXED_NOW, TUESDAY)
        assert state.remaining_hours == pytest.approx(-24.0)
        assert calculator.resume(state, WEDNESDAY) == TUESDAY


class TestBreaches:
    def test_never_overdue_while_paused(self, calculator):
        state = TatState(paused_at=TUESDAY, remaining_hours=1)
        assert not calculator.is_overdue(FIXED_NOW, state, WEDNESDAY)

    def test_never_overdue_when_final(self, calculator):
        assert not calculator.is_overdue(FIXED_NOW, None, WEDNESDAY, is_final=True)

    def test_overdue_after_deadline(self, calculator):
        assert calculator.is_overdue(FIXED_NOW, None, TUESDAY)
        assert not calculator.is_overdue(FIXED_NOW, None, FIXED_NOW)
        assert not calculator.is_overdue(None, None, TUESDAY)

    def test_resolution_breach_takes_precedence(self, calculator):
        breach = calculator.find_breach(
            "open",
            acknowledgement_due_at=FIXED_NOW,
            resolution_due_at=FIXED_NOW + timedelta(hours=1),
            tat_state=None,
            now=TUESDAY,
            awaiting_acknowledgement=True,
        )
        assert breach == Breach(kind="resolution", deadline=FIXED_NOW + timedelta(hours=1))

    def test_acknowledgement_breach_only_while_unacknowledged(self, calculator):
        kwargs = dict(
            acknowledgement_due_at=FIXED_NOW,
            resolution_due_at=WEDNESDAY,
            tat_state=None,
            now=TUESDAY,
        )
        breach = calculator.find_breach("open", awaiting_acknowledgement=True, **kwargs)
        assert breach.kind == "acknowledgement"
        assert calculator.find_breach("in_progress", **kwargs) is None

    def test_breach_marker_identifies_deadline(self):
        breach = Breach(kind="resolution", deadline=FIXED_NOW)
        assert breach.marker == "resolution:2024-01-15T10:00:00+00:00"


class TestExtension:
    def test_extends_in_business_hours(self, calculator):
        extension = calculator.extend(WEDNESDAY, 8, TUESDAY, reason="Parts on order", extended_by="admin-1")
        assert extension.new_deadline == WEDNESDAY + timedelta(hours=8)
        assert extension.tat_state is None
        assert extension.record.previous_deadline == WEDNESDAY
        assert extension.record.new_deadline == extension.new_deadline
        assert extension.record.hours == 8
        assert extension.record.reason == "Parts on order"

    def test_paused_extension_grows_remaining_hours(self, calculator):
        state = TatState(paused_at=TUESDAY, remaining_hours=4)
        extension = calculator.extend(WEDNESDAY, 6, TUESDAY, tat_state=state)
        assert extension.tat_state.remaining_hours == pytest.approx(10)
        assert extension.tat_state.paused_at == TUESDAY

    @pytest.mark.parametrize("hours", [0, -2])
    def test_rejects_non_positive_hours(self, calculator, hours):
        with pytest.raises(ValidationException):
            calculator.extend(WEDNESDAY, hours, TUESDAY)

    def test_rejects_missing_deadline(self, calculator):
        with pytest.raises(ValidationException):
            calculator.extend(None, 4, TUESDAY)


class TestSLAConfig:
    def test_defaults(self):
        config = SLAConfig()
        assert config.default_sla_hours == 48
        assert config.max_escalation_level == 3
        assert config.calendar() == default_calendar()

    def test_extension_counts_are_normalised(self):
        config = SLAConfig(extension_escalation_counts=[5, 3, 5])
        assert config.extension_escalation_counts == [3, 5]

    def test_rejects_non_positive_extension_counts(self):
        with pytest.raises(ValidationError):
            SLAConfig(extension_escalation_counts=[0])
