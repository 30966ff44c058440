"""
Resilient OpenAI client wrapper.

Applies the executor's retry discipline and request logging to each
OpenAI operation the document generator needs.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Dict, Iterable, Mapping, Optional

import openai
from openai import AsyncOpenAI

from ..config.loader import ExecutorConfig, resolve_api_key
from ..core.errors import (
    CONNECTION_RESET,
    TIMED_OUT,
    ConfigurationError,
    FailureInfo,
    describe_failure,
)
from ..core.executor import RequestExecutor
from ..core.prompt_hash import hash_request
from ..storage.repository import RequestLogRepository, RequestLogSink

log = logging.getLogger(__name__)


def describe_openai_error(error: BaseException) -> FailureInfo:
    """Adapt OpenAI SDK exceptions to the structural failure view.

    The SDK reports transport faults as exception types rather than codes.
    """
    info = describe_failure(error)
    if isinstance(error, openai.APITimeoutError):
        return replace(info, code=TIMED_OUT)
    if isinstance(error, openai.APIConnectionError):
        return replace(info, code=CONNECTION_RESET)
    return info


class ResilientOpenAI:
    """OpenAI client wrapper with bounded retry and request logging.

    Construct once at startup and share it. A missing credential leaves the
    wrapper in a failed state where every operation raises
    ConfigurationError before any network call.
    """

    def __init__(
        self,
        config: Optional[ExecutorConfig] = None,
        api_key: Optional[str] = None,
        log_sink: Optional[RequestLogSink] = None,
        client: Optional[Any] = None,
        sleep=asyncio.sleep,
        clock=time.monotonic,
        environ: Optional[Mapping[str, str]] = None
    ):
        """Initialize the wrapper.

        Args:
            config: Executor configuration (defaults to ExecutorConfig())
            api_key: Credential; read from the environment when omitted
            log_sink: Request log destination (defaults to the SQLite repository)
            client: Pre-built AsyncOpenAI-compatible client
            sleep: Coroutine function awaited for backoff delays
            clock: Monotonic clock in seconds, used for request durations
            environ: Environment mapping used to resolve the credential
        """
        self.config = config or ExecutorConfig()
        self.initialization_error: Optional[str] = None
        self.client: Optional[Any] = None

        if log_sink is None:
            log_sink = RequestLogRepository(self.config.db_path)

        self.executor = RequestExecutor(
            self.config,
            log_sink=log_sink,
            describe=describe_openai_error,
            sleep=sleep,
            clock=clock
        )

        credential = api_key or resolve_api_key(self.config, environ)
        if not credential:
            self.initialization_error = "OpenAI API key not configured"
            log.error("ResilientOpenAI: %s (%s)", self.initialization_error, self.config.api_key_env)
            return

        if client is not None:
            self.client = client
            return

        try:
            self.client = AsyncOpenAI(
                api_key=credential,
                timeout=self.config.timeout_seconds,
                max_retries=0
            )
        except Exception as e:
            self.initialization_error = f"Failed to initialize OpenAI client: {e}"
            log.exception("ResilientOpenAI: initialization failed")
            return
        log.info("ResilientOpenAI: client initialized")

    def _ensure_initialized(self, operation: str) -> None:
        if self.initialization_error:
            raise ConfigurationError(self.initialization_error, operation=operation)
        if self.client is None:
            raise ConfigurationError("OpenAI client not properly initialized", operation=operation)

    async def chat_completion(
        self,
        params: Dict[str, Any],
        file_ids: Iterable[str] = (),
        user_id: Optional[str] = None
    ) -> Any:
        """Create a chat completion.

        Args:
            params: Keyword arguments for ``chat.completions.create``, passed unchanged
            file_ids: Reference file ids, recorded in the request log
            user_id: Acting principal, recorded in the request log

        Returns:
            The provider's chat completion response, unmodified

        Raises:
            OperationError: On exhausted retries or a non-retryable failure
        """
        self._ensure_initialized("chat_completion")
        return await self.executor.execute(
            lambda: self.client.chat.completions.create(**params),
            operation_name="chat_completion",
            prompt_hash=hash_request(params.get("messages")),
            file_ids=file_ids,
            user_id=user_id
        )

    async def create_vector_store(self, params: Dict[str, Any], user_id: Optional[str] = None) -> Any:
        self._ensure_initialized("create_vector_store")
        return await self.executor.execute(
            lambda: self.client.vector_stores.create(**params),
            operation_name="create_vector_store",
            prompt_hash=hash_request({"operation": "create_vector_store", "params": params}),
            user_id=user_id
        )

    async def create_file_batch(
        self,
        vector_store_id: str,
        params: Dict[str, Any],
        user_id: Optional[str] = None
    ) -> Any:
        """Attach uploaded files to a vector store in one batch."""
        self._ensure_initialized("create_file_batch")
        file_ids = params.get("file_ids") or ()
        return await self.executor.execute(
            lambda: self.client.vector_stores.file_batches.create(vector_store_id, **params),
            operation_name="create_file_batch",
            prompt_hash=hash_request({
                "operation": "create_file_batch",
                "vector_store_id": vector_store_id,
                "params": params
            }),
            file_ids=file_ids,
            user_id=user_id
        )

    async def delete_vector_store(self, vector_store_id: str, user_id: Optional[str] = None) -> Any:
        self._ensure_initialized("delete_vector_store")
        return await self.executor.execute(
            lambda: self.client.vector_stores.delete(vector_store_id),
            operation_name="delete_vector_store",
            prompt_hash=hash_request({"operation": "delete_vector_store", "vector_store_id": vector_store_id}),
            user_id=user_id
        )

    async def create_file(self, params: Dict[str, Any], user_id: Optional[str] = None) -> Any:
        """Upload a file.

        The file payload itself is left out of the correlation hash.
        """
        self._ensure_initialized("create_file")
        hashed = {key: value for key, value in params.items() if key != "file"}
        return await self.executor.execute(
            lambda: self.client.files.create(**params),
            operation_name="create_file",
            prompt_hash=hash_request({"operation": "create_file", "params": hashed}),
            user_id=user_id
        )

    async def retrieve_vector_store(self, vector_store_id: str, user_id: Optional[str] = None) -> Any:
        self._ensure_initialized("retrieve_vector_store")
        return await self.executor.execute(
            lambda: self.client.vector_stores.retrieve(vector_store_id),
            operation_name="retrieve_vector_store",
            prompt_hash=hash_request({"operation": "retrieve_vector_store", "vector_store_id": vector_store_id}),
            user_id=user_id
        )
