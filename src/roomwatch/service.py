"""RoomwatchService wires the store, resolver, lifecycle and monitor together.

The service keeps the latest session snapshot (re-read on every refresh) and
the teacher console's optimistic selection. Writes go straight to the store
as whole-record replacements; the next refresh picks them up.
"""

from collections.abc import Callable
from datetime import date, datetime

from roomwatch.config import RoomwatchConfig, get_config
from roomwatch.errors import PermanentServiceError
from roomwatch.extraction import ImportResult, TimetableExtractor, map_extracted_rows
from roomwatch.lifecycle import (
    ActiveSelection,
    activate_scheduled,
    amend_session,
    book_adhoc,
    confirm_attendance,
    schedule_session,
)
from roomwatch.logging import get_logger, log_context
from roomwatch.models import Alert, Session, User
from roomwatch.monitor import AbsenceMonitor
from roomwatch.occupancy import (
    StatusResult,
    occupancy_board,
    resolve_status,
    sessions_for_day,
    sessions_for_teacher_today,
)
from roomwatch.scheduler import TickHandle, Ticker
from roomwatch.store import CollectionStore
from roomwatch.timewindow import Weekday, weekday_of

log = get_logger(__name__)


class RoomwatchService:
    """Occupancy tracking and absence alerting over one store."""

    def __init__(
        self,
        store: CollectionStore,
        *,
        config: RoomwatchConfig | None = None,
        extractor: TimetableExtractor | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.config = config or get_config()
        self.extractor = extractor
        self.clock = clock
        self.monitor = AbsenceMonitor(
            grace_minutes=self.config.grace_period_minutes,
            ceiling_minutes=self.config.alert_ceiling_minutes,
            debounce_minutes=self.config.debounce_minutes,
            dedup=self.config.dedup_mode,
        )
        self.selection = ActiveSelection()
        self.sessions: list[Session] | None = None
        self._handles: list[TickHandle] = []

    # --- Snapshot and status -------------------------------------------------

    def refresh(self) -> list[Session]:
        """Re-read the session snapshot from the store."""
        self.sessions = self.store.list_sessions()
        self.selection.reconcile(self.sessions)
        return self.sessions

    def _snapshot(self) -> list[Session]:
        return self.refresh() if self.sessions is None else self.sessions

    def room_status(self, room_id: str, now: datetime | None = None) -> StatusResult:
        return resolve_status(
            room_id,
            self._snapshot(),
            now or self.clock(),
            upcoming_window=self.config.upcoming_window_minutes,
        )

    def room_board(self, now: datetime | None = None) -> list[StatusResult]:
        return occupancy_board(
            self.store.list_rooms(),
            self._snapshot(),
            now or self.clock(),
            upcoming_window=self.config.upcoming_window_minutes,
        )

    def check_absences(self, now: datetime | None = None) -> list[Alert]:
        """Run one absence sweep over the current snapshot and store new alerts."""
        now = now or self.clock()
        with log_context(sweep_at=now.isoformat(timespec="minutes")):
            return self.monitor.raise_alerts(
                self.store,
                now,
                self.config.alert_recipient_id,
                sessions=self._snapshot(),
            )

    def alerts_for(self, user_id: str | None = None) -> list[Alert]:
        return self.store.alerts_for_user(user_id or self.config.alert_recipient_id)

    def active_session(self) -> Session | None:
        """The session the teacher console is showing, optimistic copy first."""
        return self.selection.resolve(self._snapshot())

    # --- Teacher actions -----------------------------------------------------

    def book(
        self,
        teacher: User,
        room_id: str | None,
        booking_date: date | str | None,
        start_time: str | None,
        duration_hours: int,
    ) -> Session:
        session = book_adhoc(
            teacher, room_id, booking_date, start_time, duration_hours, now=self.clock()
        )
        self.store.create_session(session)
        self.selection.select(session)
        self.refresh()
        return session

    def start_scheduled(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        activated = activate_scheduled(session)
        self.selection.select(activated)
        if activated != session:
            self.store.update_session(activated)
        self.refresh()
        return activated

    def confirm(self, session_id: str, student_count: int) -> Session:
        session = self.store.get_session(session_id)
        confirmed = confirm_attendance(session, student_count, now=self.clock())
        self.store.update_session(confirmed)
        self.selection.clear()
        self.refresh()
        return confirmed

    def my_sessions_today(self, teacher_id: str, now: datetime | None = None) -> list[Session]:
        """A teacher's sessions on today's weekday, earliest first."""
        return sessions_for_teacher_today(self._snapshot(), teacher_id, now or self.clock())

    # --- Timetable management ------------------------------------------------

    def timetable(self, day: Weekday | str | None = None) -> list[Session]:
        """Sessions for one weekday (today by default), sorted by start time."""
        weekday = Weekday.parse(day) if day else weekday_of(self.clock())
        return sessions_for_day(self.refresh(), weekday)

    def add_session(
        self,
        admin: User,
        *,
        day: str,
        start_time: str,
        end_time: str,
        subject: str,
        room_id: str,
        teacher_name: str,
    ) -> Session:
        session = schedule_session(
            admin,
            day=day,
            start_time=start_time,
            end_time=end_time,
            subject=subject,
            room_id=room_id,
            teacher_name=teacher_name,
            now=self.clock(),
        )
        self.store.create_session(session)
        self.refresh()
        return session

    def edit_session(self, session_id: str, **changes) -> Session:
        """Apply an administrator's edit and write the whole record back."""
        amended = amend_session(self.store.get_session(session_id), **changes)
        self.store.update_session(amended)
        self.refresh()
        return amended

    def remove_session(self, session_id: str) -> None:
        self.store.delete_session(session_id)
        if self.selection.selected_id == session_id:
            self.selection.clear()
        self.refresh()

    # --- Timetable import ----------------------------------------------------

    def import_timetable(
        self, image_b64: str, uploader: User, mime_type: str = "image/png"
    ) -> ImportResult:
        """Extract sessions from a timetable image and append them to the store."""
        if self.extractor is None:
            raise PermanentServiceError("No timetable extractor configured")

        rows = self.extractor.extract(image_b64, mime_type)
        result = map_extracted_rows(rows, self.store.list_rooms(), uploader, now=self.clock())
        if result.sessions:
            self.store.add_sessions(result.sessions)
            self.refresh()
        return result

    # --- Periodic triggers ---------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._handles)

    def start(self, ticker: Ticker) -> None:
        """Register the refresh and sweep triggers on a ticker."""
        if self._handles:
            raise RuntimeError("RoomwatchService is already started")
        self._handles = [
            ticker.every(self.config.refresh_interval_seconds, self.refresh),
            ticker.every(self.config.sweep_interval_seconds, self.check_absences),
        ]
        log.info(
            "service_started",
            refresh_seconds=self.config.refresh_interval_seconds,
            sweep_seconds=self.config.sweep_interval_seconds,
        )

    def stop(self) -> None:
        """Cancel both triggers. Safe to call more than once."""
        for handle in self._handles:
            handle.cancel()
        if self._handles:
            log.info("service_stopped")
        self._handles = []
