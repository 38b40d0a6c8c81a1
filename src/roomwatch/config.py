"""Roomwatch configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

from roomwatch.monitor import DedupMode


class RoomwatchConfig(BaseSettings):
    """Roomwatch configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Paths
    state_dir: str = Field(
        default="data/state",
        description="Directory holding rooms.json, sessions.json and alerts.json",
    )

    # Periodic triggers
    refresh_interval_seconds: float = Field(
        default=5.0,
        description="Seconds between session snapshot refreshes",
    )
    sweep_interval_seconds: float = Field(
        default=60.0,
        description="Seconds between absence sweeps",
    )

    # Occupancy and absence policy
    upcoming_window_minutes: int = Field(
        default=15,
        description="Lookahead for reporting a room as UPCOMING",
    )
    grace_period_minutes: int = Field(
        default=20,
        description="Minutes of absence tolerated before an alert is raised",
    )
    alert_ceiling_minutes: int = Field(
        default=60,
        description="Minutes after session start beyond which absence is no longer flagged",
    )
    debounce_minutes: int = Field(
        default=10,
        description="Window during which an identical alert is not raised again",
    )
    dedup_mode: DedupMode = Field(
        default=DedupMode.MESSAGE,
        description="Alert dedup key: 'message' (full text) or 'session' (recipient, session, kind)",
    )
    alert_recipient_id: str = Field(
        default="u1",
        description="User id receiving absence alerts (head of department)",
    )

    # Gemini timetable extraction
    gemini_api_key: str = Field(
        default="",
        description="API key for the Gemini generateContent endpoint",
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used to read timetable images",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST API base URL",
    )
    gemini_timeout_seconds: float = Field(
        default=60.0,
        description="HTTP timeout for a single extraction request",
    )
    gemini_max_attempts: int = Field(
        default=3,
        description="Attempts before a transient extraction failure is reported",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: RoomwatchConfig | None = None


def get_config() -> RoomwatchConfig:
    """Get the roomwatch configuration singleton.

    Returns:
        RoomwatchConfig: Roomwatch configuration instance
    """
    global _config
    if _config is None:
        _config = RoomwatchConfig()
    return _config
