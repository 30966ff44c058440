"""
Unit tests for SDK layer.

Tests the OpenAI wrapper's operations, initialization and error adaptation.
"""

import os
import tempfile
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from ai_request_guard.config.loader import ExecutorConfig
from ai_request_guard.core.errors import (
    CONNECTION_RESET,
    MESSAGE_NOT_CONFIGURED,
    MESSAGE_TIMEOUT,
    MESSAGE_UNEXPECTED,
    TIMED_OUT,
    ConfigurationError,
    OperationError,
)
from ai_request_guard.core.prompt_hash import hash_request
from ai_request_guard.sdk.openai_client import ResilientOpenAI, describe_openai_error
from ai_request_guard.storage.models import LogStatus
from ai_request_guard.storage.repository import fetch_recent_request_logs

from helpers import FakeProviderError


REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls, status, message="provider said no"):
    response = httpx.Response(status, request=REQUEST)
    return cls(message, response=response, body=None)


def _mock_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.vector_stores.create = AsyncMock()
    client.vector_stores.retrieve = AsyncMock()
    client.vector_stores.delete = AsyncMock()
    client.vector_stores.file_batches.create = AsyncMock()
    client.files.create = AsyncMock()
    return client


@pytest.fixture
def mock_client():
    return _mock_client()


@pytest.fixture
def wrapper(mock_client, timeline, sink):
    return ResilientOpenAI(
        api_key="sk-test",
        client=mock_client,
        log_sink=sink,
        sleep=timeline.sleep,
        clock=timeline.clock
    )


class TestInitialization:
    """Test construct-once initialization and fail-fast behavior."""

    @patch('ai_request_guard.sdk.openai_client.AsyncOpenAI')
    def test_client_built_from_environment(self, mock_openai_class, sink):
        built = MagicMock()
        mock_openai_class.return_value = built

        wrapper = ResilientOpenAI(log_sink=sink, environ={"OPENAI_API_KEY": "sk-env"})

        mock_openai_class.assert_called_once_with(api_key="sk-env", timeout=75.0, max_retries=0)
        assert wrapper.client is built
        assert wrapper.initialization_error is None

    @patch('ai_request_guard.sdk.openai_client.AsyncOpenAI')
    def test_custom_credential_variable(self, mock_openai_class, sink):
        config = ExecutorConfig(api_key_env="DOCGEN_OPENAI_KEY")

        ResilientOpenAI(config=config, log_sink=sink, environ={"DOCGEN_OPENAI_KEY": "sk-x"})

        assert mock_openai_class.call_args.kwargs["api_key"] == "sk-x"

    @patch('ai_request_guard.sdk.openai_client.AsyncOpenAI')
    def test_missing_credential_sets_initialization_error(self, mock_openai_class, sink):
        wrapper = ResilientOpenAI(log_sink=sink, environ={})

        mock_openai_class.assert_not_called()
        assert wrapper.client is None
        assert wrapper.initialization_error == "OpenAI API key not configured"

    @patch('ai_request_guard.sdk.openai_client.AsyncOpenAI')
    def test_client_construction_failure_is_captured(self, mock_openai_class, sink):
        mock_openai_class.side_effect = RuntimeError("bad proxy settings")

        wrapper = ResilientOpenAI(log_sink=sink, environ={"OPENAI_API_KEY": "sk-env"})

        assert wrapper.client is None
        assert "bad proxy settings" in wrapper.initialization_error

    @pytest.mark.asyncio
    async def test_every_operation_fails_fast_without_credential(self, mock_client, timeline, sink):
        """No credential means no attempts, no delays and no log rows."""
        wrapper = ResilientOpenAI(
            client=mock_client,
            log_sink=sink,
            sleep=timeline.sleep,
            clock=timeline.clock,
            environ={}
        )

        calls = [
            wrapper.chat_completion({"model": "gpt-4o", "messages": []}),
            wrapper.create_vector_store({"name": "refs"}),
            wrapper.create_file_batch("vs_1", {"file_ids": ["file_1"]}),
            wrapper.delete_vector_store("vs_1"),
            wrapper.create_file({"purpose": "assistants"}),
            wrapper.retrieve_vector_store("vs_1"),
        ]
        for call in calls:
            with pytest.raises(ConfigurationError) as exc_info:
                await call
            assert isinstance(exc_info.value, OperationError)
            assert exc_info.value.is_retryable is False
            assert exc_info.value.retry_count == 0
            assert exc_info.value.user_message == MESSAGE_NOT_CONFIGURED

        mock_client.chat.completions.create.assert_not_called()
        mock_client.vector_stores.create.assert_not_called()
        mock_client.vector_stores.file_batches.create.assert_not_called()
        mock_client.vector_stores.delete.assert_not_called()
        mock_client.files.create.assert_not_called()
        mock_client.vector_stores.retrieve.assert_not_called()
        assert timeline.sleeps == []
        assert sink.entries == []

    def test_unconfigured_wrapper_creates_no_database(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "requests.db")

            ResilientOpenAI(config=ExecutorConfig(db_path=db_path), environ={})

            assert not os.path.exists(db_path)

    @pytest.mark.asyncio
    async def test_default_sink_writes_request_log(self, mock_client):
        mock_client.vector_stores.retrieve.return_value = SimpleNamespace(id="vs_1")
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "requests.db")
            wrapper = ResilientOpenAI(
                config=ExecutorConfig(db_path=db_path),
                api_key="sk-test",
                client=mock_client
            )

            await wrapper.retrieve_vector_store("vs_1", user_id="user_1")

            entries = fetch_recent_request_logs(db_path=db_path)
            assert len(entries) == 1
            assert entries[0].operation == "retrieve_vector_store"
            assert entries[0].user_id == "user_1"


class TestOperations:
    """Test that each operation reaches the right provider call."""

    @pytest.mark.asyncio
    async def test_chat_completion_passes_params_unchanged(self, wrapper, mock_client, sink):
        response = SimpleNamespace(id="chat_1", usage=SimpleNamespace(total_tokens=321))
        mock_client.chat.completions.create.return_value = response
        messages = [{"role": "user", "content": "Draft a marine survey"}]
        params = {"model": "gpt-4o", "messages": messages, "temperature": 0.2}

        result = await wrapper.chat_completion(params, file_ids=["file_a"], user_id="user_1")

        assert result is response
        mock_client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o", messages=messages, temperature=0.2
        )
        entry = sink.entries[0]
        assert entry.operation == "chat_completion"
        assert entry.token_count == 321
        assert entry.file_ids == ("file_a",)
        assert entry.user_id == "user_1"
        assert entry.prompt_hash == hash_request(messages)

    @pytest.mark.asyncio
    async def test_create_vector_store(self, wrapper, mock_client, sink):
        mock_client.vector_stores.create.return_value = SimpleNamespace(id="vs_1")

        result = await wrapper.create_vector_store({"name": "refs"}, user_id="user_1")

        assert result.id == "vs_1"
        mock_client.vector_stores.create.assert_awaited_once_with(name="refs")
        assert sink.entries[0].operation == "create_vector_store"

    @pytest.mark.asyncio
    async def test_create_file_batch_logs_file_ids(self, wrapper, mock_client, sink):
        await wrapper.create_file_batch("vs_1", {"file_ids": ["f1", "f2"]})

        mock_client.vector_stores.file_batches.create.assert_awaited_once_with(
            "vs_1", file_ids=["f1", "f2"]
        )
        assert sink.entries[0].file_ids == ("f1", "f2")

    @pytest.mark.asyncio
    async def test_delete_and_retrieve_vector_store(self, wrapper, mock_client, sink):
        await wrapper.retrieve_vector_store("vs_9")
        await wrapper.delete_vector_store("vs_9")

        mock_client.vector_stores.retrieve.assert_awaited_once_with("vs_9")
        mock_client.vector_stores.delete.assert_awaited_once_with("vs_9")
        assert [e.operation for e in sink.entries] == ["retrieve_vector_store", "delete_vector_store"]

    @pytest.mark.asyncio
    async def test_create_file_hash_ignores_payload(self, wrapper, mock_client, sink):
        await wrapper.create_file({"file": b"one", "purpose": "assistants"})
        await wrapper.create_file({"file": b"two", "purpose": "assistants"})

        assert mock_client.files.create.await_count == 2
        assert sink.entries[0].prompt_hash == sink.entries[1].prompt_hash


class TestScenarios:
    """End-to-end retry scenarios through the wrapper."""

    @pytest.mark.asyncio
    async def test_chat_rate_limited_twice_then_succeeds(self, wrapper, mock_client, timeline, sink):
        response = SimpleNamespace(usage=SimpleNamespace(total_tokens=10))
        mock_client.chat.completions.create.side_effect = [
            _status_error(openai.RateLimitError, 429),
            _status_error(openai.RateLimitError, 429),
            response,
        ]

        result = await wrapper.chat_completion({"model": "gpt-4o", "messages": []})

        assert result is response
        assert mock_client.chat.completions.create.await_count == 3
        assert len(sink.entries) == 1
        assert sink.entries[0].status == LogStatus.SUCCESS
        assert sink.entries[0].retry_count == 2

    @pytest.mark.asyncio
    async def test_delete_not_found_is_not_retried(self, wrapper, mock_client, timeline, sink):
        mock_client.vector_stores.delete.side_effect = _status_error(openai.NotFoundError, 404)

        with pytest.raises(OperationError) as exc_info:
            await wrapper.delete_vector_store("vs_missing")

        assert mock_client.vector_stores.delete.await_count == 1
        assert exc_info.value.is_retryable is False
        assert exc_info.value.status == 404
        assert exc_info.value.user_message == MESSAGE_UNEXPECTED
        assert timeline.sleeps == []

    @pytest.mark.asyncio
    async def test_vector_store_connection_reset_every_attempt(self, wrapper, mock_client, timeline, sink):
        mock_client.vector_stores.create.side_effect = ConnectionResetError("connection reset by peer")

        with pytest.raises(OperationError) as exc_info:
            await wrapper.create_vector_store({"name": "refs"})

        assert mock_client.vector_stores.create.await_count == 4
        assert exc_info.value.retry_count == 3
        assert exc_info.value.is_retryable is True
        entry = sink.entries[0]
        assert entry.status == LogStatus.ERROR
        assert entry.duration_ms >= int(sum(timeline.sleeps) * 1000)

    @pytest.mark.asyncio
    async def test_sdk_timeout_is_retried_and_explained(self, wrapper, mock_client, timeline):
        mock_client.chat.completions.create.side_effect = openai.APITimeoutError(request=REQUEST)

        with pytest.raises(OperationError) as exc_info:
            await wrapper.chat_completion({"model": "gpt-4o", "messages": []})

        assert mock_client.chat.completions.create.await_count == 4
        assert exc_info.value.user_message == MESSAGE_TIMEOUT

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_retried(self, wrapper, mock_client, timeline):
        mock_client.chat.completions.create.side_effect = _status_error(
            openai.AuthenticationError, 401, "Incorrect API key provided: sk-test"
        )

        with pytest.raises(OperationError) as exc_info:
            await wrapper.chat_completion({"model": "gpt-4o", "messages": []})

        assert mock_client.chat.completions.create.await_count == 1
        assert "sk-test" not in exc_info.value.user_message
        assert exc_info.value.to_response() == (
            {"error": exc_info.value.user_message, "retryable": False, "retryCount": 0},
            500
        )


class TestDescribeOpenAIError:
    """Test adaptation of SDK exceptions to the structural failure view."""

    def test_timeout_maps_to_timed_out_code(self):
        info = describe_openai_error(openai.APITimeoutError(request=REQUEST))
        assert info.code == TIMED_OUT

    def test_connection_error_maps_to_reset_code(self):
        info = describe_openai_error(openai.APIConnectionError(request=REQUEST))
        assert info.code == CONNECTION_RESET

    def test_status_error_reads_status_code(self):
        info = describe_openai_error(_status_error(openai.InternalServerError, 502))
        assert info.status == 502

    def test_plain_errors_fall_through(self):
        info = describe_openai_error(FakeProviderError("nope", status=409))
        assert info.status == 409
        assert info.code is None
