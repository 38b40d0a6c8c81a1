"""Tests for the Gemini extraction client and row-to-session mapping.

HTTP is faked with a stand-in for requests.Session; nothing touches the network.
"""

import json

import pytest
import requests
from conftest import at

from roomwatch.errors import (
    InvalidInputError,
    PermanentServiceError,
    RateLimitError,
    TransientServiceError,
)
from roomwatch.extraction import (
    TimetableExtractor,
    encode_image,
    map_extracted_rows,
    match_room,
)
from roomwatch.models import ExtractedTimetableEntry
from roomwatch.store import default_rooms
from roomwatch.timewindow import Weekday

ROWS = [
    {
        "day": "Monday",
        "startTime": "09:00",
        "endTime": "10:00",
        "subject": "Data Structures",
        "roomName": "Lab 2",
        "teacherName": "Prof. Johnson",
    },
    {
        "day": "tuesday",
        "startTime": "11:00",
        "endTime": "12:30",
        "subject": "Discrete Maths",
        "roomName": "TBD",
    },
]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHttp:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def gemini_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def extractor(http, **kwargs):
    return TimetableExtractor("test-key", http=http, retry_wait_seconds=0, **kwargs)


class TestExtract:
    def test_returns_rows(self):
        http = FakeHttp(FakeResponse(payload=gemini_payload(json.dumps(ROWS))))
        rows = extractor(http).extract("aW1hZ2U=", "image/jpeg")

        assert [r.subject for r in rows] == ["Data Structures", "Discrete Maths"]
        assert rows[0].teacher_name == "Prof. Johnson"
        assert rows[1].teacher_name is None

        call = http.calls[0]
        assert call["url"].endswith("/models/gemini-2.5-flash:generateContent")
        assert call["headers"] == {"x-goog-api-key": "test-key"}
        parts = call["json"]["contents"][0]["parts"]
        assert parts[0]["inline_data"] == {"mime_type": "image/jpeg", "data": "aW1hZ2U="}
        assert call["json"]["generationConfig"]["responseMimeType"] == "application/json"

    def test_missing_key_is_permanent(self):
        http = FakeHttp(FakeResponse(payload=gemini_payload("[]")))
        with pytest.raises(PermanentServiceError):
            TimetableExtractor("", http=http).extract("aW1hZ2U=")
        assert http.calls == []

    def test_transient_failure_is_retried(self):
        http = FakeHttp(
            FakeResponse(status_code=503),
            FakeResponse(payload=gemini_payload(json.dumps(ROWS[:1]))),
        )
        rows = extractor(http).extract("aW1hZ2U=")
        assert len(rows) == 1
        assert len(http.calls) == 2

    def test_rate_limit_gives_up_after_max_attempts(self):
        http = FakeHttp(FakeResponse(status_code=429))
        with pytest.raises(RateLimitError):
            extractor(http, max_attempts=3).extract("aW1hZ2U=")
        assert len(http.calls) == 3

    def test_timeout_is_transient(self):
        http = FakeHttp(requests.Timeout("read timed out"))
        with pytest.raises(TransientServiceError):
            extractor(http, max_attempts=2).extract("aW1hZ2U=")
        assert len(http.calls) == 2

    def test_client_error_not_retried(self):
        http = FakeHttp(FakeResponse(status_code=400, text="bad request"))
        with pytest.raises(PermanentServiceError):
            extractor(http).extract("aW1hZ2U=")
        assert len(http.calls) == 1

    def test_model_output_not_json(self):
        http = FakeHttp(FakeResponse(payload=gemini_payload("Sorry, I can't read that")))
        with pytest.raises(PermanentServiceError):
            extractor(http).extract("aW1hZ2U=")

    def test_model_output_not_array(self):
        http = FakeHttp(FakeResponse(payload=gemini_payload('{"day": "Monday"}')))
        with pytest.raises(PermanentServiceError):
            extractor(http).extract("aW1hZ2U=")

    def test_empty_text_yields_no_rows(self):
        http = FakeHttp(FakeResponse(payload=gemini_payload("")))
        assert extractor(http).extract("aW1hZ2U=") == []

    def test_incomplete_rows_are_dropped(self):
        rows = [ROWS[0], {"day": "Monday", "subject": "No times"}]
        http = FakeHttp(FakeResponse(payload=gemini_payload(json.dumps(rows))))
        assert len(extractor(http).extract("aW1hZ2U=")) == 1


class TestMapping:
    def test_room_substring_match(self):
        assert match_room("lab 2", default_rooms()).id == "l2"
        assert match_room("SEMINAR", default_rooms()).id == "s1"

    def test_unknown_room_falls_back_to_first(self):
        assert match_room("Auditorium B", default_rooms()).id == "c1"

    def test_no_rooms(self):
        with pytest.raises(InvalidInputError):
            match_room("Lab 2", [])

    def test_rows_become_sessions(self, hod):
        now = at("07:30")
        rows = [ExtractedTimetableEntry.model_validate(r) for r in ROWS]
        result = map_extracted_rows(rows, default_rooms(), hod, now=now)

        stamp = int(now.timestamp() * 1000)
        assert [s.id for s in result.sessions] == [f"auto-{stamp}-0", f"auto-{stamp}-1"]
        first, second = result.sessions
        assert first.room_id == "l2"
        assert first.teacher_name == "Prof. Johnson"
        assert first.teacher_id == "u1"
        assert first.checked_in is False
        assert second.day is Weekday.TUESDAY
        assert second.room_id == "c1"
        assert second.teacher_name == "Dr. HOD"
        assert result.skipped == []

    def test_bad_rows_are_skipped(self, hod):
        rows = [
            ExtractedTimetableEntry(
                day="Someday", start_time="09:00", end_time="10:00", subject="X", room_name="Lab 1"
            ),
            ExtractedTimetableEntry(
                day="Friday", start_time="9am", end_time="10:00", subject="Y", room_name="Lab 1"
            ),
        ]
        result = map_extracted_rows(rows, default_rooms(), hod)
        assert result.sessions == []
        assert len(result.skipped) == 2


def test_encode_image(tmp_path):
    image = tmp_path / "timetable.jpg"
    image.write_bytes(b"image")
    assert encode_image(image) == ("aW1hZ2U=", "image/jpeg")
