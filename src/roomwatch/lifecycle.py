"""Session lifecycle: booking, QR activation and attendance check-in.

States:
    SCHEDULED  - in the timetable, no QR code issued
    QR_ACTIVE  - qr_code_generated and not yet checked in
    CONFIRMED  - checked in with a headcount (terminal for the day)

Ad-hoc bookings start at QR_ACTIVE because issuing the QR code is part of
creating them. Nothing here moves a session back from CONFIRMED; only an
administrator editing or deleting the record does that. schedule_session and
amend_session are those administrator edits.

Every operation returns a new Session and never modifies its argument, so a
rejected call leaves the caller's record exactly as it was.
"""

from datetime import date, datetime
from enum import Enum

from roomwatch.errors import InvalidInputError, ValidationError
from roomwatch.logging import get_logger
from roomwatch.models import Session, User
from roomwatch.timewindow import (
    Weekday,
    add_hours,
    duration_hours_between,
    parse_hhmm,
    weekday_of,
)

log = get_logger(__name__)

ALLOWED_DURATIONS: frozenset[int] = frozenset({1, 2, 3})
ADHOC_SUBJECT = "Ad-hoc Class / Lab"


class SessionState(str, Enum):
    SCHEDULED = "SCHEDULED"
    QR_ACTIVE = "QR_ACTIVE"
    CONFIRMED = "CONFIRMED"


def state_of(session: Session) -> SessionState:
    if session.checked_in:
        return SessionState.CONFIRMED
    if session.qr_code_generated:
        return SessionState.QR_ACTIVE
    return SessionState.SCHEDULED


def _parse_booking_date(booking_date: date | str | None) -> date:
    if booking_date is None or booking_date == "":
        raise InvalidInputError("Booking date is required")
    if isinstance(booking_date, datetime):
        return booking_date.date()
    if isinstance(booking_date, date):
        return booking_date
    try:
        return date.fromisoformat(str(booking_date).strip())
    except ValueError:
        raise InvalidInputError(
            f"Booking date {booking_date!r} is not in YYYY-MM-DD format"
        ) from None


def book_adhoc(
    teacher: User,
    room_id: str | None,
    booking_date: date | str | None,
    start_time: str | None,
    duration_hours: int,
    *,
    now: datetime | None = None,
) -> Session:
    """Create an unscheduled booking with its QR code already issued.

    Args:
        teacher: Teacher making the booking.
        room_id: Room to book.
        booking_date: Calendar date (date or "YYYY-MM-DD"); only its weekday is kept.
        start_time: "HH:MM" start.
        duration_hours: 1, 2 or 3.
        now: Creation instant, used for the session id (defaults to the wall clock).

    Returns:
        New QR_ACTIVE session. end_time wraps past midnight without changing day.

    Raises:
        InvalidInputError: Missing/unparseable room, date or time, or a duration
            outside {1, 2, 3}.
    """
    if not room_id:
        raise InvalidInputError("Room is required")
    day = weekday_of(_parse_booking_date(booking_date))
    parse_hhmm(start_time)
    if (
        not isinstance(duration_hours, int)
        or isinstance(duration_hours, bool)
        or duration_hours not in ALLOWED_DURATIONS
    ):
        raise InvalidInputError(
            f"Duration must be one of {sorted(ALLOWED_DURATIONS)} hours, got {duration_hours!r}"
        )

    created = now or datetime.now()
    session = Session(
        id=f"adhoc-{int(created.timestamp() * 1000)}",
        day=day,
        start_time=start_time.strip(),
        end_time=add_hours(start_time, duration_hours),
        subject=ADHOC_SUBJECT,
        room_id=room_id,
        teacher_id=teacher.id,
        teacher_name=teacher.name,
        checked_in=False,
        duration_hours=duration_hours,
        qr_code_generated=True,
    )
    log.info(
        "adhoc_session_booked",
        session_id=session.id,
        room_id=room_id,
        day=day.value,
        start=session.start_time,
        end=session.end_time,
    )
    return session


def activate_scheduled(session: Session) -> Session:
    """Issue the QR code for a timetabled session (SCHEDULED -> QR_ACTIVE).

    duration_hours is derived from the start/end delta, rounded to the nearest
    hour with a floor of 1. Calling this on a session that already has its QR
    code is a no-op.
    """
    current = state_of(session)
    if current is not SessionState.SCHEDULED:
        log.debug("activation_skipped", session_id=session.id, state=current.value)
        return session

    duration = duration_hours_between(session.start_time, session.end_time)
    activated = session.model_copy(
        update={"qr_code_generated": True, "duration_hours": duration}
    )
    log.info("session_activated", session_id=session.id, duration_hours=duration)
    return activated


def confirm_attendance(
    session: Session, student_count: int, *, now: datetime | None = None
) -> Session:
    """Check a teacher in with the headcount (QR_ACTIVE -> CONFIRMED).

    Confirming an already confirmed session overwrites the headcount and
    check-in time.

    Raises:
        ValidationError: student_count is not positive, or no QR code was issued.
    """
    if student_count is None or student_count <= 0:
        raise ValidationError(
            f"Student count must be a positive number, got {student_count!r}"
        )
    if state_of(session) is SessionState.SCHEDULED:
        raise ValidationError(
            f"Session {session.id} has no QR code issued; activate it before check-in"
        )

    checked_at = now or datetime.now()
    confirmed = session.model_copy(
        update={
            "checked_in": True,
            "check_in_time": checked_at.strftime("%H:%M:%S"),
            "student_count": student_count,
        }
    )
    log.info(
        "session_confirmed",
        session_id=session.id,
        room_id=session.room_id,
        student_count=student_count,
        recheck=session.checked_in,
    )
    return confirmed


EDITABLE_FIELDS: frozenset[str] = frozenset(
    {"day", "start_time", "end_time", "subject", "room_id", "teacher_name"}
)


def _require(value: str | None, label: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidInputError(f"{label} is required")
    return str(value).strip()


def schedule_session(
    admin: User,
    *,
    day: str,
    start_time: str,
    end_time: str,
    subject: str,
    room_id: str,
    teacher_name: str,
    now: datetime | None = None,
) -> Session:
    """Add a timetable entry by hand (administrator timetable management).

    The entry is recorded under the administrator's id since only the teacher's
    display name is known. Start and end are checked for format only; an end
    before the start is accepted.

    Raises:
        InvalidInputError: A field is missing, or day/times don't parse.
    """
    weekday = Weekday.parse(day)
    parse_hhmm(start_time)
    parse_hhmm(end_time)

    created = now or datetime.now()
    session = Session(
        id=f"manual-{int(created.timestamp() * 1000)}",
        day=weekday,
        start_time=start_time.strip(),
        end_time=end_time.strip(),
        subject=_require(subject, "Subject"),
        room_id=_require(room_id, "Room"),
        teacher_id=admin.id,
        teacher_name=_require(teacher_name, "Teacher name"),
    )
    log.info(
        "session_scheduled",
        session_id=session.id,
        room_id=session.room_id,
        day=weekday.value,
        start=session.start_time,
        end=session.end_time,
    )
    return session


def amend_session(session: Session, **changes) -> Session:
    """Apply an administrator's edit to a timetable entry.

    Only day, start_time, end_time, subject, room_id and teacher_name can be
    changed. Times are not ordered against each other, so an edit may leave
    end_time earlier than start_time; the resolver then never reports the
    session ACTIVE.

    Raises:
        InvalidInputError: Unknown field, empty value, or a day/time that doesn't parse.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise InvalidInputError(f"Cannot edit {', '.join(sorted(unknown))}")

    update = {}
    for name, value in changes.items():
        if name == "day":
            update[name] = Weekday.parse(value)
        elif name in ("start_time", "end_time"):
            parse_hhmm(value)
            update[name] = value.strip()
        else:
            update[name] = _require(value, name.replace("_", " ").capitalize())

    amended = session.model_copy(update=update)
    log.info("session_amended", session_id=session.id, fields=sorted(update))
    return amended


class ActiveSelection:
    """The session a teacher is currently working with, plus an optimistic copy.

    After a booking or activation the console shows the locally built session
    before the store snapshot catches up. The override is used only while its
    id matches the selection; selecting something else or clearing discards it.
    """

    def __init__(self) -> None:
        self.selected_id: str | None = None
        self.override: Session | None = None

    def select(self, session: Session) -> None:
        self.selected_id = session.id
        self.override = session

    def clear(self) -> None:
        self.selected_id = None
        self.override = None

    def resolve(self, snapshot: list[Session]) -> Session | None:
        """The session to display: the override if it still matches, else the snapshot's."""
        if self.selected_id is None:
            return None
        if self.override is not None and self.override.id == self.selected_id:
            return self.override
        return next((s for s in snapshot if s.id == self.selected_id), None)

    def reconcile(self, snapshot: list[Session]) -> None:
        """Drop the override once the snapshot holds the same state for the selection."""
        if self.override is None:
            return
        stored = next((s for s in snapshot if s.id == self.override.id), None)
        if stored is not None and stored == self.override:
            log.debug("optimistic_override_converged", session_id=stored.id)
            self.override = None
