"""Tests for booking, QR activation, check-in and the optimistic selection."""

from datetime import date, datetime

import pytest
from conftest import at

from roomwatch.errors import InvalidInputError, ValidationError
from roomwatch.lifecycle import (
    ActiveSelection,
    SessionState,
    activate_scheduled,
    amend_session,
    book_adhoc,
    confirm_attendance,
    schedule_session,
    state_of,
)
from roomwatch.timewindow import Weekday


class TestBookAdhoc:
    def test_two_hour_booking(self, teacher):
        now = at("13:55")
        session = book_adhoc(teacher, "l1", "2026-10-19", "14:00", 2, now=now)
        assert session.end_time == "16:00"
        assert session.day is Weekday.MONDAY
        assert session.id == f"adhoc-{int(now.timestamp() * 1000)}"
        assert session.qr_code_generated is True
        assert session.checked_in is False
        assert session.duration_hours == 2
        assert session.teacher_id == "u2"
        assert session.teacher_name == "Prof. Smith"
        assert state_of(session) is SessionState.QR_ACTIVE

    def test_wraps_past_midnight_keeping_day(self, teacher):
        session = book_adhoc(teacher, "c3", date(2026, 10, 23), "23:30", 1, now=at("23:00"))
        assert session.end_time == "00:30"
        assert session.day is Weekday.FRIDAY

    def test_accepts_datetime_as_date(self, teacher):
        session = book_adhoc(teacher, "c3", datetime(2026, 10, 20, 8, 0), "09:00", 3)
        assert session.day is Weekday.TUESDAY
        assert session.end_time == "12:00"

    @pytest.mark.parametrize(
        "room_id, booking_date, start_time",
        [
            (None, "2026-10-19", "14:00"),
            ("", "2026-10-19", "14:00"),
            ("c1", None, "14:00"),
            ("c1", "19/10/2026", "14:00"),
            ("c1", "2026-10-19", None),
            ("c1", "2026-10-19", "2pm"),
        ],
    )
    def test_missing_or_bad_fields(self, teacher, room_id, booking_date, start_time):
        with pytest.raises(InvalidInputError):
            book_adhoc(teacher, room_id, booking_date, start_time, 1)

    @pytest.mark.parametrize("duration", [0, 4, -1, True, 2.0, 1.5, "2"])
    def test_duration_outside_allowed_set(self, teacher, duration):
        with pytest.raises(InvalidInputError):
            book_adhoc(teacher, "c1", "2026-10-19", "14:00", duration)


class TestActivateScheduled:
    def test_scheduled_to_qr_active(self, make_session):
        session = make_session()
        activated = activate_scheduled(session)
        assert state_of(activated) is SessionState.QR_ACTIVE
        assert activated.duration_hours == 1
        assert session.qr_code_generated is False

    def test_short_period_gets_one_hour(self, make_session):
        activated = activate_scheduled(make_session(end_time="09:45"))
        assert activated.duration_hours == 1

    def test_long_period(self, make_session):
        activated = activate_scheduled(make_session(end_time="11:00"))
        assert activated.duration_hours == 2

    def test_idempotent(self, make_session):
        once = activate_scheduled(make_session())
        twice = activate_scheduled(once)
        assert twice == once

    def test_confirmed_session_is_left_alone(self, make_session):
        confirmed = make_session(qr_code_generated=True, checked_in=True, student_count=30)
        assert activate_scheduled(confirmed) == confirmed


class TestConfirmAttendance:
    def test_confirms_with_headcount(self, make_session):
        session = activate_scheduled(make_session())
        confirmed = confirm_attendance(session, 42, now=at("09:12"))
        assert confirmed.checked_in is True
        assert confirmed.student_count == 42
        assert confirmed.check_in_time == "09:12:00"
        assert state_of(confirmed) is SessionState.CONFIRMED

    @pytest.mark.parametrize("count", [0, -3])
    def test_non_positive_count_rejected(self, make_session, count):
        session = activate_scheduled(make_session())
        with pytest.raises(ValidationError):
            confirm_attendance(session, count)
        assert session.checked_in is False
        assert session.student_count is None

    def test_reconfirmation_overwrites(self, make_session):
        session = activate_scheduled(make_session())
        first = confirm_attendance(session, 30, now=at("09:05"))
        second = confirm_attendance(first, 35, now=at("09:20"))
        assert second.student_count == 35
        assert second.check_in_time == "09:20:00"
        assert second.checked_in is True

    def test_requires_qr_code(self, make_session):
        with pytest.raises(ValidationError):
            confirm_attendance(make_session(), 10)


class TestTimetableEdits:
    def test_schedule_session(self, hod):
        session = schedule_session(
            hod,
            day="tuesday",
            start_time="11:00",
            end_time="12:00",
            subject="Networks",
            room_id="l3",
            teacher_name="Prof. Johnson",
            now=at("08:00"),
        )
        assert session.id == f"manual-{int(at('08:00').timestamp() * 1000)}"
        assert session.day is Weekday.TUESDAY
        assert session.teacher_id == "u1"
        assert state_of(session) is SessionState.SCHEDULED

    @pytest.mark.parametrize(
        "field, value",
        [("subject", ""), ("room_id", " "), ("day", "Someday"), ("end_time", "25:00")],
    )
    def test_schedule_rejects_bad_fields(self, hod, field, value):
        fields = {
            "day": "Monday",
            "start_time": "11:00",
            "end_time": "12:00",
            "subject": "Networks",
            "room_id": "l3",
            "teacher_name": "Prof. Johnson",
        }
        fields[field] = value
        with pytest.raises(InvalidInputError):
            schedule_session(hod, **fields)

    def test_amend_allows_end_before_start(self, make_session):
        session = make_session()
        amended = amend_session(session, end_time="08:00", room_id="c2")
        assert (amended.start_time, amended.end_time, amended.room_id) == ("09:00", "08:00", "c2")
        assert session.end_time == "10:00"

    def test_amend_normalizes_day(self, make_session):
        assert amend_session(make_session(), day=" friday ").day is Weekday.FRIDAY

    @pytest.mark.parametrize(
        "changes",
        [{"checked_in": True}, {"start_time": "9am"}, {"teacher_name": ""}, {"day": "Caturday"}],
    )
    def test_amend_rejects(self, make_session, changes):
        with pytest.raises(InvalidInputError):
            amend_session(make_session(), **changes)


class TestActiveSelection:
    def test_nothing_selected(self, make_session):
        assert ActiveSelection().resolve([make_session()]) is None

    def test_override_wins_while_selected(self, make_session):
        stored = make_session()
        selection = ActiveSelection()
        selection.select(activate_scheduled(stored))
        shown = selection.resolve([stored])
        assert shown.qr_code_generated is True

    def test_new_selection_replaces_override(self, make_session):
        selection = ActiveSelection()
        selection.select(activate_scheduled(make_session(id="a")))
        other = make_session(id="b")
        selection.select(other)
        assert selection.resolve([make_session(id="a"), other]).id == "b"

    def test_snapshot_used_after_override_converges(self, make_session):
        activated = activate_scheduled(make_session())
        selection = ActiveSelection()
        selection.select(activated)
        selection.reconcile([activated])
        assert selection.override is None
        later = activated.model_copy(update={"subject": "Renamed by admin"})
        assert selection.resolve([later]).subject == "Renamed by admin"

    def test_stale_snapshot_keeps_override(self, make_session):
        stored = make_session()
        selection = ActiveSelection()
        selection.select(activate_scheduled(stored))
        selection.reconcile([stored])
        assert selection.override is not None

    def test_clear(self, make_session):
        selection = ActiveSelection()
        selection.select(make_session())
        selection.clear()
        assert selection.resolve([make_session()]) is None
