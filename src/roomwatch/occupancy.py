"""Room status resolution against the weekly timetable.

resolve_status is a pure function of (room, sessions, now): the caller passes
the evaluation instant instead of the resolver reading a clock, so tests can
use any simulated time.

Priority order is fixed: an ACTIVE session beats an UPCOMING one, and EMPTY is
returned only when neither exists. Overlapping sessions in the same room are a
data-quality problem the resolver does not prevent; the first match in
iteration order wins (the store keeps sessions in creation order).
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from roomwatch.logging import get_logger
from roomwatch.models import Room, Session
from roomwatch.timewindow import Weekday, contains, minute_of, minutes_until, weekday_of

log = get_logger(__name__)

DEFAULT_UPCOMING_WINDOW_MINUTES = 15


class RoomStatus(str, Enum):
    EMPTY = "EMPTY"
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class StatusResult:
    """Resolved status of one room at one instant.

    Attributes:
        room_id: The room that was resolved.
        status: Coarse status (EMPTY / UPCOMING / ACTIVE).
        session: The session that produced the status, None when EMPTY.
        confirmed: True only for an ACTIVE session whose teacher checked in.
    """

    room_id: str
    status: RoomStatus
    session: Session | None = None
    confirmed: bool = False

    @property
    def awaiting_check_in(self) -> bool:
        """ACTIVE but nobody has checked in yet."""
        return self.status is RoomStatus.ACTIVE and not self.confirmed

    @property
    def occupied(self) -> bool:
        """ACTIVE and confirmed by a check-in."""
        return self.status is RoomStatus.ACTIVE and self.confirmed


def resolve_status(
    room_id: str,
    sessions: Iterable[Session],
    now: datetime,
    *,
    upcoming_window: int = DEFAULT_UPCOMING_WINDOW_MINUTES,
) -> StatusResult:
    """Compute a room's status from the session snapshot.

    Args:
        room_id: Room to resolve.
        sessions: Full session snapshot; only sessions for room_id on now's weekday count.
        now: Evaluation instant.
        upcoming_window: Minutes of lookahead for UPCOMING (inclusive).

    Returns:
        StatusResult with the matched session, if any.
    """
    today = weekday_of(now)
    now_minute = minute_of(now)
    todays = [s for s in sessions if s.room_id == room_id and s.day == today]

    for session in todays:
        if contains(session.start_time, session.end_time, now_minute):
            return StatusResult(
                room_id=room_id,
                status=RoomStatus.ACTIVE,
                session=session,
                confirmed=session.checked_in,
            )

    for session in todays:
        if 0 < minutes_until(session.start_time, now_minute) <= upcoming_window:
            return StatusResult(
                room_id=room_id, status=RoomStatus.UPCOMING, session=session
            )

    return StatusResult(room_id=room_id, status=RoomStatus.EMPTY)


def occupancy_board(
    rooms: Iterable[Room],
    sessions: Iterable[Session],
    now: datetime,
    *,
    upcoming_window: int = DEFAULT_UPCOMING_WINDOW_MINUTES,
) -> list[StatusResult]:
    """Resolve every room, in room order, for the live tracker display."""
    snapshot = list(sessions)
    board = [
        resolve_status(room.id, snapshot, now, upcoming_window=upcoming_window)
        for room in rooms
    ]
    log.debug(
        "occupancy_board_resolved",
        rooms=len(board),
        active=sum(1 for r in board if r.status is RoomStatus.ACTIVE),
        awaiting=sum(1 for r in board if r.awaiting_check_in),
    )
    return board


def sessions_for_day(sessions: Iterable[Session], day: Weekday) -> list[Session]:
    """Sessions on one weekday, sorted by start time (admin timetable view)."""
    return sorted(
        (s for s in sessions if s.day == day),
        key=lambda s: s.start_minute,
    )


def sessions_for_teacher_today(
    sessions: Iterable[Session], teacher_id: str, now: datetime
) -> list[Session]:
    """A teacher's sessions on now's weekday, sorted by start time."""
    return [
        s for s in sessions_for_day(sessions, weekday_of(now)) if s.teacher_id == teacher_id
    ]
