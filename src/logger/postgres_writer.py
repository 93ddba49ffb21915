"""Batched PostgreSQL writer for log records."""

import asyncio
import contextlib
import json
import sys
import threading
from typing import Any

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as Connection

from src.logger.types import LogEntry

INSERT_LOGS_SQL = """
    INSERT INTO logs (
        timestamp, service_name, instance_id, node_name, environment,
        level, category, request_id,
        function_name, file_path, line_number,
        message, error_message, stack_trace, context,
        duration_ms, ingestion_time
    ) VALUES %s
"""


class PostgresWriter:
    """Buffers log records and flushes them to the logs table in batches."""

    def __init__(
        self,
        dsn: str,
        batch_size: int = 100,
        flush_interval: float = 5.0,
    ) -> None:
        """
        Initialize PostgresWriter.

        Args:
            dsn: PostgreSQL connection string
            batch_size: Buffer size that triggers an immediate flush
            flush_interval: Seconds between background flushes
        """
        self.dsn = dsn
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.buffer: list[LogEntry] = []
        self._lock = asyncio.Lock()
        self._buffer_lock = threading.Lock()
        self._conn: Connection | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._closed = False

    async def connect(self) -> None:
        """Open the dedicated log connection and start the background flush."""
        try:
            self._conn = psycopg2.connect(self.dsn)
            self._conn.set_session(autocommit=False)
        except psycopg2.Error as e:
            print(
                f"[LOGGER ERROR] Failed to connect to PostgreSQL: {e}",
                file=sys.stderr,
            )
            raise
        self._flush_task = asyncio.create_task(self._background_flush())

    async def write(self, entry: LogEntry) -> None:
        if self._closed:
            return

        async with self._lock:
            with self._buffer_lock:
                self.buffer.append(entry)
                full = len(self.buffer) >= self.batch_size
            if full:
                self._flush_buffer()

    def write_nowait(self, entry: LogEntry) -> None:
        """Buffer a record without flushing; used outside the event loop."""
        if self._closed:
            return
        with self._buffer_lock:
            self.buffer.append(entry)

    async def flush(self) -> None:
        """Write everything buffered so far."""
        async with self._lock:
            self._flush_buffer()

    def _flush_buffer(self) -> None:
        """Must be called with the lock held."""
        # Records buffered from other threads while this batch is written
        # stay in the new buffer for the next flush.
        with self._buffer_lock:
            batch, self.buffer = self.buffer, []
        if not batch:
            return
        if not self._conn:
            self._fallback_to_stderr(batch)
            return

        rows = [self._to_row(entry) for entry in batch]
        try:
            with self._conn.cursor() as cursor:
                psycopg2.extras.execute_values(
                    cursor,
                    INSERT_LOGS_SQL,
                    rows,
                    page_size=self.batch_size,
                )
            self._conn.commit()
        except psycopg2.Error as e:
            print(
                f"[LOGGER ERROR] Failed to insert logs into PostgreSQL: {e}",
                file=sys.stderr,
            )
            if not self._conn.closed:
                self._conn.rollback()
            self._fallback_to_stderr(batch)

    @staticmethod
    def _to_row(entry: LogEntry) -> tuple[Any, ...]:
        return (
            entry.timestamp,
            entry.service_name,
            entry.instance_id,
            entry.node_name,
            entry.environment,
            entry.level.value,
            entry.category.value if entry.category else None,
            entry.request_id,
            entry.function_name,
            entry.file_path,
            entry.line_number,
            entry.message,
            entry.error_message,
            entry.stack_trace,
            psycopg2.extras.Json(entry.context, dumps=_dumps) if entry.context else None,
            entry.duration_ms,
            entry.ingestion_time,
        )

    @staticmethod
    def _fallback_to_stderr(batch: list[LogEntry]) -> None:
        """Emit records as JSON lines when PostgreSQL is unavailable."""
        for entry in batch:
            data: dict[str, Any] = {
                "timestamp": entry.timestamp.isoformat(),
                "level": entry.level.value,
                "category": entry.category.value if entry.category else None,
                "message": entry.message,
                "service_name": entry.service_name,
                "environment": entry.environment,
            }
            if entry.error_message:
                data["error"] = entry.error_message
            if entry.context:
                data["context"] = entry.context
            print(_dumps(data), file=sys.stderr)

    async def _background_flush(self) -> None:
        while not self._closed:
            try:
                await asyncio.sleep(self.flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break

    async def close(self) -> None:
        """Stop the background flush, write the remaining records, disconnect."""
        # Let write tasks already scheduled on the loop reach the buffer
        await asyncio.sleep(0)
        self._closed = True

        if self._flush_task:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task

        await self.flush()

        if self._conn:
            self._conn.close()
            self._conn = None


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)
