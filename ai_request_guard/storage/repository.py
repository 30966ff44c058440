"""
Repository pattern for data access.

Handles persistence of the append-only request log.
"""

import asyncio
import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .db import get_connection
from .models import LogStatus, RequestLogEntry


DEFAULT_DB_PATH = "ai_request_guard.db"

_SELECT_COLUMNS = """
    SELECT created_at, operation, prompt_hash, file_ids, token_count,
           duration_ms, status, error_message, retry_count, user_id
    FROM api_request_log
"""


class RequestLogSink(Protocol):
    """Anything the executor can append request log entries to.

    ``insert`` may be a plain method or a coroutine function.
    """

    def insert(self, entry: RequestLogEntry) -> Any:
        ...


def _row_to_entry(row: Tuple) -> RequestLogEntry:
    return RequestLogEntry(
        created_at=datetime.fromisoformat(row[0]),
        operation=row[1],
        prompt_hash=row[2],
        file_ids=tuple(json.loads(row[3] or "[]")),
        token_count=row[4],
        duration_ms=row[5],
        status=LogStatus(row[6]),
        error_message=row[7],
        retry_count=row[8],
        user_id=row[9]
    )


def _build_filters(
    status: Optional[LogStatus] = None,
    user_id: Optional[str] = None,
    operation: Optional[str] = None,
    since: Optional[datetime] = None
) -> Tuple[str, List[Any]]:
    conditions = []
    params: List[Any] = []

    if status is not None:
        conditions.append("status = ?")
        params.append(LogStatus(status).value)
    if user_id:
        conditions.append("user_id = ?")
        params.append(user_id)
    if operation:
        conditions.append("operation = ?")
        params.append(operation)
    if since is not None:
        conditions.append("created_at >= ?")
        params.append(since.isoformat())

    if not conditions:
        return "", params
    return " WHERE " + " AND ".join(conditions), params


class RequestLogRepository:
    """Repository for writing and reading request log entries.

    Also serves as the executor's default log sink. The table is created on
    the first append, so constructing a repository touches no files.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._schema_ready = False

    def append(self, entry: RequestLogEntry) -> None:
        """Append one entry to the request log, blocking until written."""
        if not self._schema_ready:
            initialize_schema(self.db_path)
            self._schema_ready = True
        insert_request_log(entry, self.db_path)

    async def insert(self, entry: RequestLogEntry) -> None:
        """Append one entry from a worker thread.

        A write waiting on the database lock must not stall the event loop.
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.append, entry)

    def get_recent_logs(
        self,
        status: Optional[LogStatus] = None,
        user_id: Optional[str] = None,
        operation: Optional[str] = None,
        days: Optional[int] = None,
        limit: int = 100
    ) -> List[RequestLogEntry]:
        """Get recent request log entries with optional filtering.

        Args:
            status: Optional filter for a final outcome
            user_id: Optional filter for the acting principal
            operation: Optional filter for the operation name
            days: Optional number of days to look back
            limit: Maximum number of entries to return

        Returns:
            List of entries ordered by creation time (newest first)
        """
        since = None
        if days is not None:
            since = datetime.now() - timedelta(days=days)

        where, params = _build_filters(status, user_id, operation, since)
        query = _SELECT_COLUMNS + where + " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(query, params)
            return [_row_to_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_request_stats(
        self,
        days: int = 30,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Get request statistics for the specified time period.

        Args:
            days: Number of days to include in the statistics
            user_id: Optional filter for the acting principal

        Returns:
            Dictionary containing request statistics
        """
        since = datetime.now() - timedelta(days=days)
        where, params = _build_filters(user_id=user_id, since=since)

        conn = get_connection(self.db_path)
        try:
            row = conn.execute(f"""
                SELECT
                    COUNT(*),
                    AVG(duration_ms),
                    SUM(token_count),
                    SUM(retry_count)
                FROM api_request_log{where}
            """, params).fetchone()

            by_status = {status.value: 0 for status in LogStatus}
            cursor = conn.execute(
                f"SELECT status, COUNT(*) FROM api_request_log{where} GROUP BY status",
                params
            )
            for status, count in cursor.fetchall():
                by_status[status] = count
        finally:
            conn.close()

        total = row[0] or 0
        return {
            "total_requests": total,
            "by_status": by_status,
            "success_rate": (by_status[LogStatus.SUCCESS.value] / total) if total else 0.0,
            "avg_duration_ms": float(row[1] or 0),
            "total_tokens": row[2] or 0,
            "total_retries": row[3] or 0
        }


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the api_request_log table if it doesn't exist.

    This creates an append-only ledger with one row per executor call.
    No UPDATE or DELETE operations should ever be performed on this table.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS api_request_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                operation TEXT,
                prompt_hash TEXT NOT NULL,
                file_ids TEXT NOT NULL DEFAULT '[]',
                token_count INTEGER NOT NULL DEFAULT 0,
                duration_ms INTEGER NOT NULL,
                status TEXT NOT NULL,
                error_message TEXT,
                retry_count INTEGER NOT NULL DEFAULT 0,
                user_id TEXT
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_request_log(entry: RequestLogEntry, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single request log entry into the append-only ledger.

    Args:
        entry: The entry to record
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO api_request_log
            (created_at, operation, prompt_hash, file_ids, token_count,
             duration_ms, status, error_message, retry_count, user_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.created_at.isoformat(),
            entry.operation,
            entry.prompt_hash,
            json.dumps(list(entry.file_ids)),
            entry.token_count,
            entry.duration_ms,
            entry.status.value,
            entry.error_message,
            entry.retry_count,
            entry.user_id
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_recent_request_logs(
    status: Optional[LogStatus] = None,
    user_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[RequestLogEntry]:
    """Fetch recent request log entries, newest first.

    Args:
        status: Optional filter for a final outcome
        user_id: Optional filter for the acting principal
        operation: Optional filter for the operation name
        limit: Maximum number of entries to return
        db_path: Path to SQLite database file

    Returns:
        List of entries ordered by creation time (newest first)
    """
    return RequestLogRepository(db_path).get_recent_logs(
        status=status,
        user_id=user_id,
        operation=operation,
        limit=limit
    )
