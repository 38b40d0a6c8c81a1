"""Room occupancy tracking and teacher absence alerting.

Resolves each room's live status from the weekly timetable, walks sessions
through booking, QR activation and check-in, and raises debounced alerts when
a scheduled teacher has not checked in after the grace period.
"""

from roomwatch.lifecycle import (
    ActiveSelection,
    SessionState,
    activate_scheduled,
    amend_session,
    book_adhoc,
    confirm_attendance,
    schedule_session,
)
from roomwatch.models import Alert, AlertIntent, AlertSeverity, Room, Session, User
from roomwatch.monitor import AbsenceMonitor, DedupMode
from roomwatch.occupancy import RoomStatus, StatusResult, resolve_status
from roomwatch.service import RoomwatchService
from roomwatch.store import JsonFileStore, MemoryStore

__all__ = [
    "AbsenceMonitor",
    "ActiveSelection",
    "Alert",
    "AlertIntent",
    "AlertSeverity",
    "DedupMode",
    "JsonFileStore",
    "MemoryStore",
    "Room",
    "RoomStatus",
    "RoomwatchService",
    "Session",
    "SessionState",
    "StatusResult",
    "User",
    "activate_scheduled",
    "amend_session",
    "book_adhoc",
    "confirm_attendance",
    "resolve_status",
    "schedule_session",
]
