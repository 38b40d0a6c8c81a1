"""Key-value persistence for rooms, sessions and alerts.

Each collection (rooms, sessions, alerts) is stored and replaced as a whole
list; there is no partial-update primitive. Reads always build fresh models
from the stored rows, so no caller ever holds an alias into the store's own
data. Writes are replace-by-id with last-write-wins semantics.

Two backends share the same operations:
    MemoryStore   - process-local, for tests and simulations
    JsonFileStore - one JSON file per collection under a state directory
"""

import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from roomwatch.errors import NotFoundError, StoreError
from roomwatch.logging import get_logger
from roomwatch.models import Alert, Room, RoomType, Session

log = get_logger(__name__)

ROOMS = "rooms"
SESSIONS = "sessions"
ALERTS = "alerts"

DEFAULT_DEBOUNCE_MINUTES = 10


def default_rooms() -> list[Room]:
    """15 classrooms, 5 labs and the seminar hall of the reference department."""
    rooms: list[Room] = []
    for i in range(1, 16):
        rooms.append(
            Room(
                id=f"c{i}",
                name=f"Classroom {i}",
                type=RoomType.CLASSROOM,
                capacity=60,
                features=["Projector", "Whiteboard"],
            )
        )
    for i in range(1, 6):
        rooms.append(
            Room(
                id=f"l{i}",
                name=f"Lab {i}",
                type=RoomType.LAB,
                capacity=60,
                features=["Computers", "AC", "Safety Gear"],
            )
        )
    rooms.append(
        Room(
            id="s1",
            name="Main Seminar Hall",
            type=RoomType.SEMINAR_HALL,
            capacity=150,
            features=["Audio System", "Stage", "Projector"],
        )
    )
    return rooms


def demo_sessions() -> list[Session]:
    """The single Monday session the demo timetable starts with."""
    return [
        Session(
            id="s1",
            day="Monday",
            start_time="09:00",
            end_time="10:00",
            subject="Intro to CS",
            room_id="c1",
            teacher_id="u2",
            teacher_name="Prof. Smith",
            checked_in=False,
            duration_hours=1,
        )
    ]


def find_recent_duplicate(
    message: str,
    recipient_id: str,
    alerts: list[Alert],
    now_ms: int,
    window_minutes: int = DEFAULT_DEBOUNCE_MINUTES,
) -> Alert | None:
    """Existing alert with the same text for the same recipient inside the window."""
    window_ms = window_minutes * 60 * 1000
    for alert in alerts:
        if (
            alert.recipient_id == recipient_id
            and alert.message == message
            and now_ms - alert.timestamp < window_ms
        ):
            return alert
    return None


def _validate_rows(model: type[BaseModel], name: str, rows: list) -> list:
    """Rows of a collection as models, or StoreError naming the first bad row."""
    records = []
    for index, row in enumerate(rows):
        try:
            records.append(model.model_validate(row))
        except PydanticValidationError as e:
            raise StoreError(f"Invalid row {index} in {name}: {e}") from e
    return records


class CollectionStore(ABC):
    """Whole-collection persistence plus the record operations built on it."""

    def __init__(
        self,
        *,
        seed_demo: bool = False,
        debounce_minutes: int = DEFAULT_DEBOUNCE_MINUTES,
    ) -> None:
        """Initialize the store.

        Args:
            seed_demo: Start with the demo session when no session collection exists.
            debounce_minutes: Window used by create_alert to drop identical alerts.
        """
        self.seed_demo = seed_demo
        self.debounce_minutes = debounce_minutes

    @abstractmethod
    def _load(self, name: str) -> list[dict] | None:
        """Raw rows of a collection, or None if it was never written."""

    @abstractmethod
    def _save(self, name: str, rows: list[dict]) -> None:
        """Replace a collection with the given rows, all or nothing."""

    # --- Collections -------------------------------------------------------

    def list_rooms(self) -> list[Room]:
        rows = self._load(ROOMS)
        if rows is None:
            rooms = default_rooms()
            self.put_rooms(rooms)
            log.info("rooms_seeded", count=len(rooms))
            return rooms
        return _validate_rows(Room, ROOMS, rows)

    def put_rooms(self, rooms: list[Room]) -> None:
        self._save(ROOMS, [r.to_json_dict() for r in rooms])

    def list_sessions(self) -> list[Session]:
        rows = self._load(SESSIONS)
        if rows is None:
            return demo_sessions() if self.seed_demo else []
        return _validate_rows(Session, SESSIONS, rows)

    def put_sessions(self, sessions: list[Session]) -> None:
        self._save(SESSIONS, [s.to_json_dict() for s in sessions])

    def list_alerts(self) -> list[Alert]:
        rows = self._load(ALERTS)
        return _validate_rows(Alert, ALERTS, rows or [])

    def put_alerts(self, alerts: list[Alert]) -> None:
        self._save(ALERTS, [a.to_json_dict() for a in alerts])

    # --- Sessions ----------------------------------------------------------

    def get_session(self, session_id: str) -> Session:
        for session in self.list_sessions():
            if session.id == session_id:
                return session
        raise NotFoundError(f"Session {session_id!r} not found")

    def create_session(self, session: Session) -> Session:
        self.add_sessions([session])
        return session

    def add_sessions(self, new_sessions: list[Session]) -> None:
        sessions = self.list_sessions()
        self.put_sessions([*sessions, *new_sessions])
        log.info("sessions_added", count=len(new_sessions), total=len(sessions) + len(new_sessions))

    def update_session(self, updated: Session) -> Session:
        """Replace the stored record with the same id.

        Raises:
            NotFoundError: No stored session has updated.id.
        """
        sessions = self.list_sessions()
        for idx, session in enumerate(sessions):
            if session.id == updated.id:
                sessions[idx] = updated
                self.put_sessions(sessions)
                log.debug("session_updated", session_id=updated.id)
                return updated
        raise NotFoundError(f"Session {updated.id!r} not found")

    def delete_session(self, session_id: str) -> None:
        sessions = self.list_sessions()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) == len(sessions):
            raise NotFoundError(f"Session {session_id!r} not found")
        self.put_sessions(remaining)
        log.info("session_deleted", session_id=session_id)

    # --- Alerts ------------------------------------------------------------

    def append_alerts(self, new_alerts: list[Alert]) -> None:
        """Store alerts newest first, without debouncing."""
        if not new_alerts:
            return
        ordered = sorted(new_alerts, key=lambda a: a.timestamp, reverse=True)
        self.put_alerts([*ordered, *self.list_alerts()])

    def create_alert(self, alert: Alert, now_ms: int | None = None) -> bool:
        """Store an alert unless an identical one was raised recently.

        The check compares message text and recipient only, so two sessions
        rendering the same message are treated as duplicates.

        Returns:
            True if the alert was stored, False if it was debounced.
        """
        now_ms = alert.timestamp if now_ms is None else now_ms
        alerts = self.list_alerts()
        duplicate = find_recent_duplicate(
            alert.message, alert.recipient_id, alerts, now_ms, self.debounce_minutes
        )
        if duplicate is not None:
            log.debug("alert_debounced", alert_id=alert.id, duplicate_of=duplicate.id)
            return False
        self.put_alerts([alert, *alerts])
        return True

    def alerts_for_user(self, user_id: str) -> list[Alert]:
        """Alerts addressed to one user, newest first."""
        return sorted(
            (a for a in self.list_alerts() if a.recipient_id == user_id),
            key=lambda a: a.timestamp,
            reverse=True,
        )


class MemoryStore(CollectionStore):
    """Process-local store; rows are deep-copied in and out."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._collections: dict[str, list[dict]] = {}

    def _load(self, name: str) -> list[dict] | None:
        rows = self._collections.get(name)
        return copy.deepcopy(rows) if rows is not None else None

    def _save(self, name: str, rows: list[dict]) -> None:
        self._collections[name] = copy.deepcopy(rows)


class JsonFileStore(CollectionStore):
    """One JSON file per collection: {state_dir}/rooms.json, sessions.json, alerts.json."""

    def __init__(self, state_dir: str | Path = "data/state", **kwargs) -> None:
        super().__init__(**kwargs)
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        log.debug("json_store_initialized", state_dir=str(self.state_dir))

    def _path(self, name: str) -> Path:
        return self.state_dir / f"{name}.json"

    def _load(self, name: str) -> list[dict] | None:
        path = self._path(name)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            try:
                rows = json.load(f)
            except json.JSONDecodeError as e:
                raise StoreError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(rows, list):
            raise StoreError(f"{path} does not hold a JSON array")
        return rows

    def _save(self, name: str, rows: list[dict]) -> None:
        # Write beside the target then rename, so readers see old or new, never half
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{name}.", suffix=".tmp", dir=self.state_dir
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path(name))
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
