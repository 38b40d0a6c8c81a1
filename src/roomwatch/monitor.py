"""Absence monitor: flags scheduled sessions whose teacher has not checked in.

A session is flagged when it runs today, is not checked in, and
grace < minutes since start < ceiling. The grace period (20 min) keeps late
but present teachers from being reported; the ceiling (60 min) stops a
session nobody ever started from producing alerts for the rest of the day.
The ceiling applies whatever the session's own length is.

sweep() is pure. Debouncing against already stored alerts happens in
suppress_duplicates(), and raise_alerts() ties both to a store.
"""

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from roomwatch.logging import get_logger
from roomwatch.models import Alert, AlertIntent, AlertSeverity, Session
from roomwatch.store import DEFAULT_DEBOUNCE_MINUTES, find_recent_duplicate
from roomwatch.timewindow import minute_of, weekday_of

if TYPE_CHECKING:
    from roomwatch.store import CollectionStore

log = get_logger(__name__)

ABSENT_KIND = "absent"


class DedupMode(str, Enum):
    """How two alerts are judged to be the same alert."""

    MESSAGE = "message"  # identical text for the same recipient
    SESSION = "session"  # same (recipient, session, kind)


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def absence_message(session: Session, grace_minutes: int) -> str:
    return (
        f"CRITICAL: Room {session.room_id} is EMPTY. "
        f"{session.teacher_name} absent > {grace_minutes}mins."
    )


class AbsenceMonitor:
    """Periodic sweep producing deduplicated absence alerts."""

    def __init__(
        self,
        grace_minutes: int = 20,
        ceiling_minutes: int = 60,
        debounce_minutes: int = DEFAULT_DEBOUNCE_MINUTES,
        dedup: DedupMode | str = DedupMode.MESSAGE,
    ) -> None:
        self.grace_minutes = grace_minutes
        self.ceiling_minutes = ceiling_minutes
        self.debounce_minutes = debounce_minutes
        self.dedup = DedupMode(dedup)

    def sweep(
        self, sessions: Iterable[Session], now: datetime, recipient_id: str
    ) -> list[AlertIntent]:
        """Alert intents for every session whose teacher is overdue at now.

        Args:
            sessions: Session snapshot.
            now: Evaluation instant.
            recipient_id: User who receives the alerts.

        Returns:
            CRITICAL intents with id "absent-<session id>", in session order.
        """
        today = weekday_of(now)
        now_minute = minute_of(now)
        intents: list[AlertIntent] = []

        for session in sessions:
            if session.day != today or session.checked_in:
                continue
            elapsed = now_minute - session.start_minute
            if self.grace_minutes < elapsed < self.ceiling_minutes:
                intents.append(
                    AlertIntent(
                        id=f"{ABSENT_KIND}-{session.id}",
                        kind=ABSENT_KIND,
                        session_id=session.id,
                        room_id=session.room_id,
                        message=absence_message(session, self.grace_minutes),
                        severity=AlertSeverity.CRITICAL,
                        recipient_id=recipient_id,
                    )
                )

        log.debug(
            "absence_sweep",
            day=today.value,
            minute=now_minute,
            candidates=len(intents),
        )
        return intents

    def _key(self, intent: AlertIntent) -> tuple:
        if self.dedup is DedupMode.SESSION:
            return (intent.recipient_id, intent.session_id, intent.kind)
        return (intent.recipient_id, intent.message)

    def suppress_duplicates(
        self, intents: list[AlertIntent], existing: list[Alert], now: datetime
    ) -> list[AlertIntent]:
        """Drop intents already covered by a recent alert or by an earlier intent."""
        now_ms = epoch_ms(now)
        window_ms = self.debounce_minutes * 60 * 1000
        seen: set[tuple] = set()
        kept: list[AlertIntent] = []

        for intent in intents:
            key = self._key(intent)
            if key in seen:
                continue
            seen.add(key)

            if self.dedup is DedupMode.SESSION:
                # Stored alerts carry the intent id, which encodes kind and session
                recent = any(
                    a.recipient_id == intent.recipient_id
                    and a.id == intent.id
                    and now_ms - a.timestamp < window_ms
                    for a in existing
                )
            else:
                recent = (
                    find_recent_duplicate(
                        intent.message,
                        intent.recipient_id,
                        existing,
                        now_ms,
                        self.debounce_minutes,
                    )
                    is not None
                )

            if recent:
                log.debug("alert_debounced", alert_id=intent.id)
                continue
            kept.append(intent)

        return kept

    def raise_alerts(
        self,
        store: "CollectionStore",
        now: datetime,
        recipient_id: str,
        sessions: list[Session] | None = None,
    ) -> list[Alert]:
        """Sweep, debounce against stored alerts, and persist what remains.

        Args:
            store: Persistence collaborator.
            now: Evaluation instant.
            recipient_id: User who receives the alerts.
            sessions: Snapshot to sweep; read from the store when omitted.

        Returns:
            The alerts actually written.
        """
        snapshot = store.list_sessions() if sessions is None else sessions
        intents = self.sweep(snapshot, now, recipient_id)
        if not intents:
            return []

        fresh = self.suppress_duplicates(intents, store.list_alerts(), now)
        alerts = [intent.to_alert(epoch_ms(now)) for intent in fresh]
        store.append_alerts(alerts)

        for alert in alerts:
            log.warning(
                "alert_raised",
                alert_id=alert.id,
                recipient_id=recipient_id,
                message=alert.message,
            )
        return alerts
