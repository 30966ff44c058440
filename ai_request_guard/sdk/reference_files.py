"""
Temporary vector stores for grounding generation in uploaded files.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from ..core.errors import OperationError
from .openai_client import ResilientOpenAI

log = logging.getLogger(__name__)


@asynccontextmanager
async def reference_vector_store(
    client: ResilientOpenAI,
    file_ids: Sequence[str],
    user_id: Optional[str] = None,
    name_prefix: str = "reference",
    expires_after_days: int = 1
) -> AsyncIterator[Optional[str]]:
    """Create a vector store holding ``file_ids`` for the duration of the block.

    Yields the vector store id, or None when there are no files or the store
    could not be set up; generation then proceeds without references.
    The store is deleted on exit and cleanup failures are only logged.

    Args:
        client: Resilient OpenAI wrapper
        file_ids: Ids of already uploaded files
        user_id: Acting principal, recorded in the request log
        name_prefix: Prefix of the generated store name
        expires_after_days: Provider-side expiry after last activity
    """
    if not file_ids:
        yield None
        return

    vector_store_id = None
    ready = False
    try:
        vector_store = await client.create_vector_store(
            {
                "name": f"{name_prefix}-{int(time.time() * 1000)}",
                "expires_after": {"anchor": "last_active_at", "days": expires_after_days},
            },
            user_id=user_id
        )
        vector_store_id = vector_store.id
        await client.create_file_batch(vector_store_id, {"file_ids": list(file_ids)}, user_id=user_id)
        ready = True
    except OperationError as e:
        log.warning("Reference vector store setup failed: %s", e.user_message)

    if not ready:
        if vector_store_id is not None:
            await _cleanup(client, vector_store_id, user_id)
        yield None
        return

    try:
        yield vector_store_id
    finally:
        await _cleanup(client, vector_store_id, user_id)


async def _cleanup(client: ResilientOpenAI, vector_store_id: str, user_id: Optional[str]) -> None:
    try:
        await client.delete_vector_store(vector_store_id, user_id=user_id)
    except OperationError as e:
        log.warning("Failed to delete vector store %s: %s", vector_store_id, e.user_message)
