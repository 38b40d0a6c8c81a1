"""Timetable-image extraction through the Gemini REST API.

The model is asked to return a JSON array of rows matching
ExtractedTimetableEntry. Everything about reading the image is the service's
business; this module only sends the request, classifies failures for retry,
and maps returned rows onto rooms.

Failure classification:
    timeouts, connection errors, HTTP 5xx -> TransientServiceError (retried)
    HTTP 429                              -> RateLimitError (retried)
    missing key, other HTTP errors, bad payload -> PermanentServiceError
"""

import base64
import json
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import requests
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from roomwatch.errors import (
    InvalidInputError,
    PermanentServiceError,
    RateLimitError,
    TransientServiceError,
)
from roomwatch.logging import get_logger
from roomwatch.models import ExtractedTimetableEntry, Room, Session, User

log = get_logger(__name__)

EXTRACTION_PROMPT = (
    "Analyze this timetable/schedule image. Extract all class sessions. "
    "Return a JSON array where each item represents a session with day, "
    "start time (HH:MM format), end time (HH:MM format), subject, room name "
    "(if visible, else use 'General'), and teacher name (if visible)."
)

RESPONSE_SCHEMA: dict = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "day": {"type": "STRING", "description": "Day of the week e.g., Monday"},
            "startTime": {"type": "STRING", "description": "Start time in HH:MM 24h format"},
            "endTime": {"type": "STRING", "description": "End time in HH:MM 24h format"},
            "subject": {"type": "STRING", "description": "Course or Subject Name"},
            "roomName": {"type": "STRING", "description": "Room identifier or 'TBD'"},
            "teacherName": {"type": "STRING", "description": "Name of teacher if present"},
        },
        "required": ["day", "startTime", "endTime", "subject", "roomName"],
    },
}


def encode_image(path: str | Path) -> tuple[str, str]:
    """Read an image file as (base64 data, mime type)."""
    path = Path(path)
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return base64.b64encode(path.read_bytes()).decode("ascii"), mime_type


def _log_retry(retry_state: RetryCallState) -> None:
    log.warning(
        "extraction_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


class TimetableExtractor:
    """Client for the Gemini generateContent endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_wait_seconds: float = 2.0,
        http: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Gemini API key.
            model: Model name.
            base_url: REST API base URL.
            timeout: Per-request timeout in seconds.
            max_attempts: Attempts for transient failures.
            retry_wait_seconds: Base for exponential backoff between attempts.
            http: requests.Session to use (one is created if omitted).
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self.http = http or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def extract(
        self, image_b64: str, mime_type: str = "image/png"
    ) -> list[ExtractedTimetableEntry]:
        """Send a timetable image and return the rows the model found.

        Args:
            image_b64: Base64-encoded image, without a data: URL prefix.
            mime_type: Image MIME type.

        Returns:
            Extracted rows; empty when the model returned no text.

        Raises:
            PermanentServiceError: Missing API key, rejected request, or a
                response that is not a JSON array.
            TransientServiceError: Still failing after max_attempts.
        """
        if not self.api_key:
            raise PermanentServiceError("Gemini API key is missing")

        body = {
            "contents": [
                {
                    "parts": [
                        {"inline_data": {"mime_type": mime_type, "data": image_b64}},
                        {"text": EXTRACTION_PROMPT},
                    ]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

        log.info("extraction_started", model=self.model, mime_type=mime_type)
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=30),
            retry=retry_if_exception_type(TransientServiceError),
            before_sleep=_log_retry,
            reraise=True,
        )
        payload = retrying(self._post, body)
        rows = self._parse_rows(payload)
        log.info("extraction_completed", rows=len(rows))
        return rows

    def _post(self, body: dict) -> dict:
        try:
            resp = self.http.post(
                self.endpoint,
                headers={"x-goog-api-key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientServiceError(f"Extraction request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError("Extraction rate limit exceeded")
        if resp.status_code >= 500:
            raise TransientServiceError(
                f"Extraction service unavailable: {resp.status_code}"
            )
        if resp.status_code != 200:
            raise PermanentServiceError(
                f"Extraction request rejected: {resp.status_code} {resp.text[:200]}"
            )

        try:
            return resp.json()
        except ValueError as e:
            raise PermanentServiceError("Extraction response is not JSON") from e

    def _parse_rows(self, payload: dict) -> list[ExtractedTimetableEntry]:
        try:
            text = payload["candidates"][0]["content"]["parts"][0].get("text", "")
        except (KeyError, IndexError, TypeError):
            log.warning("extraction_no_candidates")
            return []
        if not text:
            return []

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PermanentServiceError("Model output is not valid JSON") from e
        if not isinstance(data, list):
            raise PermanentServiceError("Model output is not a JSON array")

        rows: list[ExtractedTimetableEntry] = []
        for index, item in enumerate(data):
            try:
                rows.append(ExtractedTimetableEntry.model_validate(item))
            except PydanticValidationError as e:
                log.warning("extracted_row_invalid", index=index, error=str(e))
        return rows


@dataclass
class ImportResult:
    """Sessions built from extracted rows, plus the rows that were rejected."""

    sessions: list[Session] = field(default_factory=list)
    skipped: list[ExtractedTimetableEntry] = field(default_factory=list)


def match_room(room_name: str, rooms: list[Room]) -> Room:
    """First room whose name contains room_name (case-insensitive), else the first room."""
    if not rooms:
        raise InvalidInputError("No rooms available to map timetable rows onto")
    needle = (room_name or "").strip().lower()
    return next((r for r in rooms if needle in r.name.lower()), rooms[0])


def map_extracted_rows(
    rows: list[ExtractedTimetableEntry],
    rooms: list[Room],
    uploader: User,
    *,
    now: datetime | None = None,
) -> ImportResult:
    """Turn extracted rows into unconfirmed timetable sessions.

    Rows without a teacher name are assigned to the uploader. Rows with an
    unknown day or malformed times are skipped and logged.
    """
    created = now or datetime.now()
    stamp = int(created.timestamp() * 1000)
    result = ImportResult()

    for index, row in enumerate(rows):
        room = match_room(row.room_name, rooms)
        try:
            session = Session(
                id=f"auto-{stamp}-{index}",
                day=row.day,
                start_time=row.start_time,
                end_time=row.end_time,
                subject=row.subject,
                room_id=room.id,
                teacher_id=uploader.id,
                teacher_name=row.teacher_name or uploader.name,
                checked_in=False,
            )
        except PydanticValidationError as e:
            log.warning("extracted_row_skipped", index=index, day=row.day, error=str(e))
            result.skipped.append(row)
            continue
        result.sessions.append(session)

    log.info(
        "extracted_rows_mapped",
        sessions=len(result.sessions),
        skipped=len(result.skipped),
    )
    return result
