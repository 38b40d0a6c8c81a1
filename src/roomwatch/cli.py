"""Command line interface for roomwatch.

Run with: roomwatch status
At time:  roomwatch status --at 2026-10-19T09:05
Sweep:    roomwatch sweep --at 2026-10-19T09:25
Book:     roomwatch book --teacher-id u2 --teacher-name "Prof. Smith" --room l1 --date 2026-10-19 --time 14:00 --duration 2
Start:    roomwatch activate s1
Check-in: roomwatch confirm s1 42
Alerts:   roomwatch alerts
Timetable: roomwatch timetable --day Monday
Today:    roomwatch today --teacher-id u2
Add:      roomwatch add-session --day Monday --start 11:00 --end 12:00 --subject Networks --room l3 --teacher-name "Prof. Smith"
Edit:     roomwatch edit-session manual-1760000000000 --end 08:00
Delete:   roomwatch remove-session manual-1760000000000
Import:   roomwatch import-timetable timetable.png --uploader-id u1 --uploader-name "Dr. HOD"
Service:  roomwatch run
Replay:   roomwatch simulate --start 2026-10-19T08:55 --minutes 90

Exit codes:
  0 = success (JSON on stdout)
  1 = error (message on stderr)
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from roomwatch.config import RoomwatchConfig, get_config
from roomwatch.errors import RoomwatchError
from roomwatch.extraction import TimetableExtractor, encode_image
from roomwatch.logging import get_logger, setup_logging
from roomwatch.models import Alert, User, UserRole
from roomwatch.occupancy import StatusResult
from roomwatch.scheduler import AsyncioTicker, ManualTicker
from roomwatch.service import RoomwatchService
from roomwatch.store import JsonFileStore, MemoryStore

log = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        prog="roomwatch",
        description="Room occupancy tracking and teacher absence alerts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--state-dir",
        type=str,
        default=None,
        help="Directory holding the JSON collections (default: STATE_DIR or data/state).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show every room's status.")
    status.add_argument("--at", type=datetime.fromisoformat, default=None)

    sweep = sub.add_parser("sweep", help="Run one absence sweep and store new alerts.")
    sweep.add_argument("--at", type=datetime.fromisoformat, default=None)

    book = sub.add_parser("book", help="Book a room ad hoc and issue its QR code.")
    book.add_argument("--teacher-id", required=True)
    book.add_argument("--teacher-name", required=True)
    book.add_argument("--room", required=True, help="Room id, e.g. c1 or l2.")
    book.add_argument("--date", required=True, help="YYYY-MM-DD")
    book.add_argument("--time", required=True, help="HH:MM start time")
    book.add_argument("--duration", type=int, default=1, choices=(1, 2, 3))

    activate = sub.add_parser("activate", help="Issue the QR code for a scheduled session.")
    activate.add_argument("session_id")

    confirm = sub.add_parser("confirm", help="Check in with the student headcount.")
    confirm.add_argument("session_id")
    confirm.add_argument("student_count", type=int)

    alerts = sub.add_parser("alerts", help="List alerts for a recipient, newest first.")
    alerts.add_argument("--recipient", default=None)

    imp = sub.add_parser("import-timetable", help="Extract sessions from a timetable image.")
    imp.add_argument("image")
    imp.add_argument("--uploader-id", required=True)
    imp.add_argument("--uploader-name", required=True)

    timetable = sub.add_parser("timetable", help="List one weekday's sessions by start time.")
    timetable.add_argument("--day", default=None, help="Weekday name (default: today).")

    today = sub.add_parser("today", help="List a teacher's sessions for today.")
    today.add_argument("--teacher-id", required=True)
    today.add_argument("--at", type=datetime.fromisoformat, default=None)

    add = sub.add_parser("add-session", help="Add a timetable entry by hand.")
    add.add_argument(
        "--admin-id", default=None, help="Recording administrator (default: ALERT_RECIPIENT_ID)."
    )
    add.add_argument("--day", required=True)
    add.add_argument("--start", required=True, help="HH:MM")
    add.add_argument("--end", required=True, help="HH:MM")
    add.add_argument("--subject", required=True)
    add.add_argument("--room", required=True)
    add.add_argument("--teacher-name", required=True)

    edit = sub.add_parser("edit-session", help="Change fields of a timetable entry.")
    edit.add_argument("session_id")
    edit.add_argument("--day")
    edit.add_argument("--start", dest="start_time")
    edit.add_argument("--end", dest="end_time")
    edit.add_argument("--subject")
    edit.add_argument("--room", dest="room_id")
    edit.add_argument("--teacher-name")

    remove = sub.add_parser("remove-session", help="Delete a timetable entry.")
    remove.add_argument("session_id")

    sub.add_parser("run", help="Run the refresh and sweep loops until interrupted.")

    simulate = sub.add_parser(
        "simulate", help="Replay the timetable in simulated time on a copy of the store."
    )
    simulate.add_argument("--start", type=datetime.fromisoformat, required=True)
    simulate.add_argument("--minutes", type=int, default=60)

    return parser.parse_args(argv)


def _status_row(result: StatusResult) -> dict:
    session = result.session
    return {
        "roomId": result.room_id,
        "status": result.status.value,
        "confirmed": result.confirmed,
        "awaitingCheckIn": result.awaiting_check_in,
        "sessionId": session.id if session else None,
        "subject": session.subject if session else None,
        "teacherName": session.teacher_name if session else None,
        "time": f"{session.start_time}-{session.end_time}" if session else None,
    }


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _alert_rows(alerts: list[Alert]) -> list[dict]:
    return [a.to_json_dict() for a in alerts]


def _build_service(config: RoomwatchConfig, state_dir: str | None) -> RoomwatchService:
    store = JsonFileStore(
        state_dir or config.state_dir,
        seed_demo=True,
        debounce_minutes=config.debounce_minutes,
    )
    extractor = None
    if config.gemini_api_key:
        extractor = TimetableExtractor(
            config.gemini_api_key,
            model=config.gemini_model,
            base_url=config.gemini_base_url,
            timeout=config.gemini_timeout_seconds,
            max_attempts=config.gemini_max_attempts,
        )
    return RoomwatchService(store, config=config, extractor=extractor)


async def _run_forever(service: RoomwatchService) -> None:
    service.start(AsyncioTicker())
    try:
        await asyncio.Event().wait()
    finally:
        service.stop()


def _simulate(service: RoomwatchService, start: datetime, minutes: int) -> dict:
    """Replay the loops minute by minute on an in-memory copy of the store."""
    replica = MemoryStore(debounce_minutes=service.config.debounce_minutes)
    replica.put_rooms(service.store.list_rooms())
    replica.put_sessions(service.store.list_sessions())
    replica.put_alerts(service.store.list_alerts())

    ticker = ManualTicker(start)
    sim = RoomwatchService(replica, config=service.config, clock=ticker.now)
    sim.start(ticker)
    try:
        ticker.advance(minutes * 60)
    finally:
        sim.stop()

    raised = [a for a in replica.list_alerts() if a.timestamp >= int(start.timestamp() * 1000)]
    return {
        "start": start.isoformat(),
        "end": ticker.now().isoformat(),
        "alertsRaised": _alert_rows(sorted(raised, key=lambda a: a.timestamp)),
        "board": [_status_row(r) for r in sim.room_board() if r.session is not None],
    }


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    try:
        config = get_config()
    except PydanticValidationError as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        return 1
    setup_logging(json_output=config.log_json, log_level=config.log_level)

    try:
        service = _build_service(config, args.state_dir)

        if args.command == "status":
            _print_json([_status_row(r) for r in service.room_board(args.at)])
        elif args.command == "sweep":
            _print_json(_alert_rows(service.check_absences(args.at)))
        elif args.command == "book":
            teacher = User(id=args.teacher_id, name=args.teacher_name)
            session = service.book(teacher, args.room, args.date, args.time, args.duration)
            _print_json(session.to_json_dict())
        elif args.command == "activate":
            _print_json(service.start_scheduled(args.session_id).to_json_dict())
        elif args.command == "confirm":
            _print_json(service.confirm(args.session_id, args.student_count).to_json_dict())
        elif args.command == "alerts":
            _print_json(_alert_rows(service.alerts_for(args.recipient)))
        elif args.command == "import-timetable":
            uploader = User(id=args.uploader_id, name=args.uploader_name, role=UserRole.ADMIN)
            image_b64, mime_type = encode_image(args.image)
            result = service.import_timetable(image_b64, uploader, mime_type)
            _print_json(
                {
                    "imported": [s.to_json_dict() for s in result.sessions],
                    "skipped": [r.to_json_dict() for r in result.skipped],
                }
            )
        elif args.command == "timetable":
            _print_json([s.to_json_dict() for s in service.timetable(args.day)])
        elif args.command == "today":
            sessions = service.my_sessions_today(args.teacher_id, args.at)
            _print_json([s.to_json_dict() for s in sessions])
        elif args.command == "add-session":
            admin = User(
                id=args.admin_id or config.alert_recipient_id,
                name="Administrator",
                role=UserRole.ADMIN,
            )
            session = service.add_session(
                admin,
                day=args.day,
                start_time=args.start,
                end_time=args.end,
                subject=args.subject,
                room_id=args.room,
                teacher_name=args.teacher_name,
            )
            _print_json(session.to_json_dict())
        elif args.command == "edit-session":
            changes = {
                name: getattr(args, name)
                for name in ("day", "start_time", "end_time", "subject", "room_id", "teacher_name")
                if getattr(args, name) is not None
            }
            _print_json(service.edit_session(args.session_id, **changes).to_json_dict())
        elif args.command == "remove-session":
            service.remove_session(args.session_id)
            _print_json({"deleted": args.session_id})
        elif args.command == "run":
            asyncio.run(_run_forever(service))
        elif args.command == "simulate":
            _print_json(_simulate(service, args.start, args.minutes))
    except RoomwatchError as e:
        log.error("command_failed", command=args.command, error=str(e), type=type(e).__name__)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        log.info("interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
