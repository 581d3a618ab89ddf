# orchestration/error_handler.py
"""
Error taxonomy for the console core, plus helpers that turn failures into
records and user-facing messages.

- Cancellation: asyncio.CancelledError. Expected, silent, never shown.
- TransportFailure: non-2xx response, connection failure or unparseable body.
- ValidationFailure: a local pre-save check failed; no request was sent.
- PreconditionError: an edit was invoked where it must refuse (programmer error).
"""

from datetime import datetime
from typing import Optional

import httpx

from orchestration.state import ErrorRecord
from sequences.state import PreconditionError
from sequences.validation import ValidationIssue


class ConsoleError(Exception):
    """Base class for console failures shown to the user"""
    pass


class TransportFailure(ConsoleError):
    """Raised when a backend call fails or returns an unusable response"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationFailure(ConsoleError):
    """Raised when the draft fails the pre-save checks"""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        self.message = issues[0].message if issues else "Validation failed"
        super().__init__(self.message)


def error_message_from_response(response: httpx.Response, default: str) -> str:
    """
    Extract the message to show for a failed response.

    Uses the JSON body's "error" field when present, the default when the
    body is JSON without one, and the status line when the body is not JSON.
    """
    try:
        body = response.json()
    except ValueError:
        return f"Server error: {response.status_code} {response.reason_phrase}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


def create_error_record(source: str, error: Exception) -> ErrorRecord:
    """Create an error record for tracking"""

    # Validation and transport failures can be retried after a fix
    recoverable = not isinstance(error, PreconditionError)

    return ErrorRecord(
        source=source,
        error_type=type(error).__name__,
        message=describe_error(error),
        timestamp=datetime.now().isoformat(),
        recoverable=recoverable,
    )


def describe_error(error: Exception) -> str:
    """User-facing message for any failure that reaches the UI."""
    if isinstance(error, (TransportFailure, ValidationFailure)):
        return error.message
    if isinstance(error, (ConsoleError, PreconditionError)):
        return str(error)
    return f"Unexpected error: {str(error)[:200]}"
