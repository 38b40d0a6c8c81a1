"""Pydantic models for rooms, timetable sessions and alerts.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Records serialize with camelCase aliases (roomId, checkedIn, ...) so stored JSON
keeps the field names of the browser app's stored records; Python code uses snake_case.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from roomwatch.errors import InvalidInputError
from roomwatch.timewindow import Weekday, parse_hhmm


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        """Serialize with camelCase keys, as stored on disk."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RoomType(str, Enum):
    CLASSROOM = "CLASSROOM"
    LAB = "LAB"
    SEMINAR_HALL = "SEMINAR_HALL"


class UserRole(str, Enum):
    ADMIN = "ADMIN"  # head of department, receives absence alerts
    TEACHER = "TEACHER"


class AlertSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class Room(_Record):
    """A bookable room. Reference data, never changed by the core."""

    id: str  # "c1", "l3", "s1"
    name: str  # "Classroom 1", "Lab 3", "Main Seminar Hall"
    type: RoomType
    capacity: int
    features: list[str] = Field(default_factory=list)


class User(_Record):
    """A teacher or administrator referenced by sessions and alerts."""

    id: str
    name: str
    email: str = ""
    role: UserRole = UserRole.TEACHER
    department: str | None = None
    phone: str | None = None


class Session(_Record):
    """One scheduled occupation of a room by a teacher on a weekday.

    Identity fields never change. checked_in, check_in_time, student_count,
    qr_code_generated and duration_hours are the only fields updated by the
    session lifecycle, always by building a new Session.
    """

    id: str  # "s1", "adhoc-<ms>", "auto-<ms>-<n>", "manual-<ms>"
    day: Weekday
    start_time: str  # "09:00"
    end_time: str  # "10:00", may be earlier than start_time after an admin edit
    subject: str
    room_id: str
    teacher_id: str
    teacher_name: str
    checked_in: bool = False
    check_in_time: str | None = None  # wall clock "HH:MM:SS" at check-in
    student_count: int | None = None
    duration_hours: int | None = None  # 1, 2 or 3 for bookings
    qr_code_generated: bool = False

    @field_validator("day", mode="before")
    @classmethod
    def _normalize_day(cls, value):
        if isinstance(value, str):
            try:
                return Weekday.parse(value)
            except InvalidInputError as e:
                raise ValueError(str(e)) from e
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        try:
            parse_hhmm(value)
        except InvalidInputError as e:
            raise ValueError(str(e)) from e
        return value.strip()

    @property
    def start_minute(self) -> int:
        return parse_hhmm(self.start_time)


class Alert(_Record):
    """A persisted notification for one recipient."""

    id: str
    message: str
    severity: AlertSeverity = Field(alias="type")
    timestamp: int  # epoch milliseconds
    read: bool = False
    recipient_id: str


class AlertIntent(_Record):
    """An alert the absence monitor wants to raise, before debouncing."""

    id: str  # "absent-<session id>"
    kind: str = "absent"
    session_id: str
    room_id: str
    message: str
    severity: AlertSeverity = AlertSeverity.CRITICAL
    recipient_id: str

    def to_alert(self, timestamp_ms: int) -> Alert:
        return Alert(
            id=self.id,
            message=self.message,
            severity=self.severity,
            timestamp=timestamp_ms,
            read=False,
            recipient_id=self.recipient_id,
        )


class ExtractedTimetableEntry(_Record):
    """A single row returned by the timetable-image extraction service."""

    day: str  # "Monday", not yet validated against Weekday
    start_time: str  # "HH:MM"
    end_time: str
    subject: str
    room_name: str  # free text, "General" or "TBD" when not visible
    teacher_name: str | None = None
