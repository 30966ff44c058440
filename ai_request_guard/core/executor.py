"""
Resilient request executor.

Runs an asynchronous provider operation with bounded retry, exponential
backoff with jitter, and exactly one request log entry per call.
"""

import asyncio
import inspect
import logging
import random
import time
from typing import Any, Awaitable, Callable, Iterable, Optional

from ..config.loader import ExecutorConfig
from ..storage.models import LogStatus, RequestLogEntry
from ..storage.repository import RequestLogSink
from .backoff import calculate_backoff_delay
from .errors import (
    FailureInfo,
    OperationError,
    describe_failure,
    is_retryable,
    log_status_for,
)
from .usage import extract_total_tokens

log = logging.getLogger(__name__)


class RequestExecutor:
    """Retry loop shared by every provider operation.

    Holds only read-only configuration and collaborators, so one instance
    can serve many concurrent calls. Each call runs its own loop.
    """

    def __init__(
        self,
        config: ExecutorConfig,
        log_sink: Optional[RequestLogSink] = None,
        describe: Callable[[BaseException], FailureInfo] = describe_failure,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rand: Callable[[], float] = random.random
    ):
        """Initialize the executor.

        Args:
            config: Retry policy
            log_sink: Destination for request log entries (optional)
            describe: Maps a raised exception to FailureInfo
            sleep: Coroutine function taking seconds, awaited between attempts
            clock: Monotonic clock in seconds
            rand: Uniform [0, 1) source for jitter
        """
        self.config = config
        self.log_sink = log_sink
        self.describe = describe
        self.sleep = sleep
        self.clock = clock
        self.rand = rand

    def backoff_delay_ms(self, attempt: int) -> float:
        return calculate_backoff_delay(
            attempt,
            self.config.base_delay_ms,
            self.config.max_delay_ms,
            self.config.jitter_ratio,
            self.rand
        )

    def _elapsed_ms(self, start: float) -> int:
        return max(0, int(round((self.clock() - start) * 1000)))

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        *,
        operation_name: str,
        prompt_hash: str,
        file_ids: Iterable[str] = (),
        user_id: Optional[str] = None
    ) -> Any:
        """Run ``operation`` until it succeeds or retrying is pointless.

        Args:
            operation: Zero-argument coroutine function issuing one attempt
            operation_name: Name recorded in logs
            prompt_hash: Correlation hash of the request body
            file_ids: File identifiers referenced by the call, for logging only
            user_id: Acting principal, for logging only

        Returns:
            The raw provider response of the successful attempt

        Raises:
            OperationError: When retries are exhausted or the failure is not retryable
        """
        file_ids = tuple(file_ids)
        max_attempts = self.config.max_attempts
        start = self.clock()
        last_error: Optional[BaseException] = None
        last_info = FailureInfo()
        retry_count = 0
        duration_ms = 0

        for attempt in range(max_attempts):
            log.debug("%s attempt %d/%d", operation_name, attempt + 1, max_attempts)
            try:
                response = await operation()
            except Exception as e:
                last_error = e
                last_info = self.describe(e)
                retry_count = attempt
                duration_ms = self._elapsed_ms(start)
                log.info(
                    "%s failed on attempt %d: status=%s code=%s",
                    operation_name, attempt + 1, last_info.status, last_info.code
                )

                if attempt == self.config.max_retries:
                    break
                if not is_retryable(last_info):
                    log.info("%s error not retryable (status=%s)", operation_name, last_info.status)
                    break

                delay_ms = self.backoff_delay_ms(attempt)
                log.warning("Retrying %s in %dms", operation_name, round(delay_ms))
                await self.sleep(delay_ms / 1000.0)
                continue

            duration_ms = self._elapsed_ms(start)
            await self._record(RequestLogEntry(
                operation=operation_name,
                prompt_hash=prompt_hash,
                file_ids=file_ids,
                token_count=extract_total_tokens(response),
                duration_ms=duration_ms,
                status=LogStatus.SUCCESS,
                retry_count=attempt,
                user_id=user_id
            ))
            log.info("%s completed successfully in %dms", operation_name, duration_ms)
            return response

        await self._record(RequestLogEntry(
            operation=operation_name,
            prompt_hash=prompt_hash,
            file_ids=file_ids,
            token_count=0,
            duration_ms=duration_ms,
            status=log_status_for(last_info, duration_ms, self.config.timeout_ms),
            error_message=last_info.message or type(last_error).__name__,
            retry_count=retry_count,
            user_id=user_id
        ))
        log.error(
            "%s failed after %d attempt(s): %s",
            operation_name, retry_count + 1, last_info.message
        )
        raise OperationError(
            last_error, retry_count, info=last_info, operation=operation_name
        ) from last_error

    async def _record(self, entry: RequestLogEntry) -> None:
        """Write a log entry; sink failures never reach the caller."""
        if self.log_sink is None:
            return
        try:
            result = self.log_sink.insert(entry)
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.exception("Failed to log API request for %s", entry.operation)
