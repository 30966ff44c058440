"""
Data models for storage layer.

Defines the request log entity written once per executor call.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class LogStatus(Enum):
    """Final outcome of an executor call."""
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class RequestLogEntry:
    """Immutable record of one external-provider call and its final outcome.

    Intermediate failed attempts are folded into ``retry_count`` and the
    final status. Once written, these records must never be modified.
    """
    prompt_hash: str
    status: LogStatus
    duration_ms: int
    retry_count: int = 0
    token_count: int = 0
    file_ids: Tuple[str, ...] = ()
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    operation: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validate counters and the error message rule."""
        if self.token_count < 0:
            raise ValueError("token_count must be >= 0")
        if self.duration_ms < 0:
            raise ValueError("duration_ms must be >= 0")
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        if self.status == LogStatus.SUCCESS and self.error_message is not None:
            raise ValueError("error_message must be empty for successful requests")
        # Accept any iterable of ids but store a tuple
        object.__setattr__(self, "file_ids", tuple(self.file_ids))
