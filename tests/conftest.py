"""Shared fixtures: a Monday timetable, in-memory stores and simulated clocks."""

from datetime import datetime

import pytest
import structlog

from roomwatch.config import RoomwatchConfig
from roomwatch.models import Session, User, UserRole
from roomwatch.store import MemoryStore

# Keep log output out of captured stdout (CLI tests parse stdout as JSON)
structlog.configure(
    processors=[structlog.processors.KeyValueRenderer()],
    logger_factory=structlog.ReturnLoggerFactory(),
    cache_logger_on_first_use=False,
)

# 2026-10-19 is a Monday
MONDAY = datetime(2026, 10, 19)


def at(hhmm: str, day: datetime = MONDAY) -> datetime:
    """Monday (by default) at the given HH:MM."""
    hours, minutes = (int(p) for p in hhmm.split(":"))
    return day.replace(hour=hours, minute=minutes, second=0, microsecond=0)


@pytest.fixture
def make_session():
    """Factory for sessions; defaults describe the demo Monday 09:00-10:00 class in c1."""

    def _make(**overrides) -> Session:
        fields = {
            "id": "s1",
            "day": "Monday",
            "start_time": "09:00",
            "end_time": "10:00",
            "subject": "Intro to CS",
            "room_id": "c1",
            "teacher_id": "u2",
            "teacher_name": "Prof. Smith",
        }
        fields.update(overrides)
        return Session(**fields)

    return _make


@pytest.fixture
def teacher() -> User:
    return User(id="u2", name="Prof. Smith", email="smith@college.edu")


@pytest.fixture
def hod() -> User:
    return User(id="u1", name="Dr. HOD", email="hod@college.edu", role=UserRole.ADMIN)


@pytest.fixture
def config() -> RoomwatchConfig:
    return RoomwatchConfig(_env_file=None)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(seed_demo=True)
