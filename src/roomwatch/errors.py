"""Error hierarchy for occupancy tracking and timetable import.

Every failure is scoped to a single operation and leaves previously stored
state untouched. The ExternalServiceError branch lets tenacity retry
decorators classify extraction failures as transient (retry) or permanent
(give up immediately).

Example usage with tenacity:
    Retrying(retry=retry_if_exception_type(TransientServiceError), stop=stop_after_attempt(3))
"""


class RoomwatchError(Exception):
    """Base exception for all roomwatch errors."""

    pass


class InvalidInputError(RoomwatchError):
    """A required booking or time field is missing or unparseable.

    Raised before any state is touched; the caller may retry with corrected input.
    """

    pass


class ValidationError(RoomwatchError):
    """Well-formed input that breaks a business rule.

    Examples: a non-positive headcount at check-in, checking in before a QR code
    was issued.
    """

    pass


class NotFoundError(RoomwatchError):
    """The targeted session identifier is absent from the current snapshot."""

    pass


class StoreError(RoomwatchError):
    """A stored collection could not be read back.

    Examples: a truncated or hand-edited JSON file, a row that no longer
    validates as a Room, Session or Alert.
    """

    pass


class ExternalServiceError(RoomwatchError):
    """The timetable-extraction service failed."""

    pass


class TransientServiceError(ExternalServiceError):
    """Temporary failure that may succeed on retry.

    Examples: network timeouts, connection resets, 503 Service Unavailable.
    """

    pass


class RateLimitError(TransientServiceError):
    """Rate limit exceeded (HTTP 429).

    Inherits from TransientServiceError so tenacity will retry it.
    """

    pass


class PermanentServiceError(ExternalServiceError):
    """Failure that won't succeed on retry.

    Examples: missing API key, rejected request, a response that is not the
    expected JSON array.
    """

    pass
