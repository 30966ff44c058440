"""
Error taxonomy for external provider calls.

Failures are classified through a narrow structural view (status, code,
message) so the classifier does not depend on any SDK's exception hierarchy.
Provider libraries are adapted to this shape at the boundary.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..storage.models import LogStatus


DEFAULT_STATUS = 500

CONNECTION_RESET = "ECONNRESET"
TIMED_OUT = "ETIMEDOUT"
RETRYABLE_CODES = frozenset({CONNECTION_RESET, TIMED_OUT})

CONTEXT_LENGTH_MARKER = "context_length_exceeded"

MESSAGE_RATE_LIMITED = "We're experiencing high demand. Please try again in a few moments."
MESSAGE_AUTHENTICATION = "Authentication error. Please contact support."
MESSAGE_PERMISSION = "Access denied. Please check your permissions."
MESSAGE_UNAVAILABLE = "Our AI service is temporarily unavailable. Please try again."
MESSAGE_TIMEOUT = "Request timed out. Please try again with a shorter document or fewer files."
MESSAGE_CONTEXT_LENGTH = "Document is too long. Please reduce the content or number of files."
MESSAGE_UNEXPECTED = "An unexpected error occurred. Please try again."
MESSAGE_NOT_CONFIGURED = "The AI service is not configured. Please contact support."


@dataclass(frozen=True)
class FailureInfo:
    """Structural description of a failed provider call."""
    status: Optional[int] = None
    code: Optional[str] = None
    message: str = ""


def _exception_chain(error: BaseException):
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _code_from_chain(error: BaseException) -> Optional[str]:
    for exc in _exception_chain(error):
        code = getattr(exc, "code", None)
        if isinstance(code, str) and code in RETRYABLE_CODES:
            return code
        if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
            return TIMED_OUT
        if isinstance(exc, ConnectionResetError):
            return CONNECTION_RESET
    return None


def describe_failure(error: BaseException) -> FailureInfo:
    """Read status, code and message from an arbitrary exception.

    ``status`` falls back to ``status_code``. When the exception has no
    string ``code``, a connection-reset or timeout anywhere in its cause
    chain yields ``ECONNRESET`` or ``ETIMEDOUT``.
    """
    status = getattr(error, "status", None)
    if not isinstance(status, int) or isinstance(status, bool):
        status = getattr(error, "status_code", None)
    if not isinstance(status, int) or isinstance(status, bool):
        status = None

    code = getattr(error, "code", None)
    if not isinstance(code, str):
        code = None
    if code not in RETRYABLE_CODES:
        code = _code_from_chain(error) or code

    message = getattr(error, "message", None)
    if not isinstance(message, str):
        message = str(error)

    return FailureInfo(status=status, code=code, message=message)


def is_retryable(info: FailureInfo) -> bool:
    """Rate limits, server errors and connection faults are worth retrying."""
    if info.status == 429:
        return True
    if info.status is not None and 500 <= info.status < 600:
        return True
    return info.code in RETRYABLE_CODES


def log_status_for(info: FailureInfo, duration_ms: int, timeout_ms: int) -> LogStatus:
    if info.status == 429:
        return LogStatus.RATE_LIMITED
    if duration_ms >= timeout_ms:
        return LogStatus.TIMEOUT
    return LogStatus.ERROR


def user_message_for(info: FailureInfo) -> str:
    """Map a failure to a message that is safe to show end users.

    Checked in priority order; provider error text is never echoed.
    """
    if info.status == 429:
        return MESSAGE_RATE_LIMITED
    if info.status == 401:
        return MESSAGE_AUTHENTICATION
    if info.status == 403:
        return MESSAGE_PERMISSION
    if info.status is not None and info.status >= 500:
        return MESSAGE_UNAVAILABLE
    if info.code == TIMED_OUT:
        return MESSAGE_TIMEOUT
    if info.code == CONTEXT_LENGTH_MARKER or CONTEXT_LENGTH_MARKER in (info.message or ""):
        return MESSAGE_CONTEXT_LENGTH
    return MESSAGE_UNEXPECTED


class OperationError(Exception):
    """Terminal failure of an executor call.

    Wraps the last underlying failure. Callers show ``user_message`` directly
    and may offer a manual retry when ``is_retryable`` is true.
    """

    def __init__(
        self,
        original_error: Optional[BaseException],
        retry_count: int = 0,
        info: Optional[FailureInfo] = None,
        operation: Optional[str] = None
    ):
        if info is None:
            info = describe_failure(original_error) if original_error is not None else FailureInfo()
        super().__init__(info.message or "External API request failed")
        self.original_error = original_error
        self.operation = operation
        self.status = info.status if info.status is not None else DEFAULT_STATUS
        self.retry_count = retry_count
        self.is_retryable = is_retryable(info)
        self.user_message = user_message_for(info)

    @property
    def http_status(self) -> int:
        """HTTP status a web handler should answer with."""
        return 429 if self.status == 429 else 500

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.user_message,
            "retryable": self.is_retryable,
            "retryCount": self.retry_count
        }

    def to_response(self) -> Tuple[Dict[str, Any], int]:
        """Build the JSON payload and HTTP status for a web response."""
        return self.to_dict(), self.http_status


class ConfigurationError(OperationError):
    """The executor is not usable: credential missing or client construction failed.

    Raised on every call without any network attempt.
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(None, retry_count=0, info=FailureInfo(message=message), operation=operation)
        self.is_retryable = False
        self.user_message = MESSAGE_NOT_CONFIGURED
