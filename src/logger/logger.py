"""Structured logger used across the template store."""

import asyncio
import inspect
import json
import os
import socket
import sys
import traceback
from pathlib import Path
from typing import Any

from src.logger.postgres_writer import PostgresWriter
from src.logger.types import Category, Field, Level, LogEntry, utcnow


class Logger:
    """Logger for structured records, optionally persisted to PostgreSQL."""

    def __init__(
        self,
        service_name: str,
        environment: str,
        writer: PostgresWriter | None = None,
        min_level: Level = Level.INFO,
    ) -> None:
        """
        Initialize Logger.

        Args:
            service_name: Service name stamped on every record
            environment: Deployment environment (dev, stage, prod)
            writer: PostgresWriter for persisted records; stdout when None
            min_level: Records below this level are dropped
        """
        self.service_name = service_name
        self.environment = environment
        self.writer = writer
        self.min_level = min_level
        self.instance_id = self._get_instance_id()
        self.node_name = os.getenv("NODE_NAME")

        self._fields: dict[str, Any] = {}
        self._category: Category | None = None
        self._request_id: str | None = None

    def trace(self, msg: str, *fields: Field) -> None:
        self._log(Level.TRACE, msg, None, *fields)

    def debug(self, msg: str, *fields: Field) -> None:
        self._log(Level.DEBUG, msg, None, *fields)

    def info(self, msg: str, *fields: Field) -> None:
        self._log(Level.INFO, msg, None, *fields)

    def warn(self, msg: str, *fields: Field) -> None:
        self._log(Level.WARN, msg, None, *fields)

    def error(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        self._log(Level.ERROR, msg, err, *fields)

    def fatal(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log fatal level message and exit."""
        self._log(Level.FATAL, msg, err, *fields)
        raise SystemExit(1)

    def panic(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log panic level message and raise."""
        self._log(Level.PANIC, msg, err, *fields)
        raise RuntimeError(msg)

    def is_enabled(self, level: Level) -> bool:
        return level.severity >= self.min_level.severity

    def _log(
        self,
        level: Level,
        msg: str,
        err: Exception | None,
        *fields: Field,
    ) -> None:
        if not self.is_enabled(level):
            return

        # Two frames up: _log <- info/warn/... <- caller
        frame = inspect.currentframe()
        caller_frame = frame.f_back.f_back if frame and frame.f_back else None

        function_name = None
        file_path = None
        line_number = None
        if caller_frame:
            function_name = caller_frame.f_code.co_name
            file_path = self._clean_file_path(caller_frame.f_code.co_filename)
            line_number = caller_frame.f_lineno

        context: dict[str, Any] = dict(self._fields)
        record_category = self._category
        for item in fields:
            if item.key == "_category":
                if isinstance(item.value, Category):
                    record_category = item.value
                continue
            context[item.key] = item.value

        duration = context.pop("duration_ms", None)

        entry = LogEntry(
            timestamp=utcnow(),
            service_name=self.service_name,
            instance_id=self.instance_id,
            node_name=self.node_name,
            environment=self.environment,
            level=level,
            category=record_category,
            request_id=self._request_id,
            function_name=function_name,
            file_path=file_path,
            line_number=line_number,
            message=msg,
            context=context or None,
            duration_ms=int(duration) if duration is not None else None,
        )

        if err:
            entry.error_message = str(err)
            if level in (Level.ERROR, Level.FATAL, Level.PANIC):
                entry.stack_trace = "".join(
                    traceback.format_exception(type(err), err, err.__traceback__)
                )

        if self.writer:
            self._dispatch(self.writer, entry)
        else:
            self._print(entry)

    def _dispatch(self, writer: PostgresWriter, entry: LogEntry) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        try:
            if loop is not None:
                loop.create_task(writer.write(entry))
            else:
                # Called from a plain thread: buffer synchronously
                writer.write_nowait(entry)
        except Exception as write_err:
            print(f"[LOGGER ERROR] Failed to write log: {write_err}", file=sys.stderr)
            self._print(entry)

    @staticmethod
    def _print(entry: LogEntry) -> None:
        category_name = entry.category.value if entry.category else "-"
        line = f"[{entry.level.value}] {category_name}: {entry.message}"
        if entry.context:
            line += " " + json.dumps(entry.context, default=str, ensure_ascii=False)
        if entry.error_message:
            line += f" error={entry.error_message}"
        print(line)

    def with_category(self, category: Category) -> "Logger":
        """Return a child logger bound to ``category``."""
        new_logger = self._copy()
        new_logger._category = category
        return new_logger

    def with_request_id(self, request_id: str) -> "Logger":
        new_logger = self._copy()
        new_logger._request_id = request_id
        return new_logger

    def with_fields(self, *fields: Field) -> "Logger":
        new_logger = self._copy()
        for item in fields:
            new_logger._fields[item.key] = item.value
        return new_logger

    def _copy(self) -> "Logger":
        new_logger = Logger(self.service_name, self.environment, self.writer, self.min_level)
        new_logger.instance_id = self.instance_id
        new_logger.node_name = self.node_name
        new_logger._fields = dict(self._fields)
        new_logger._category = self._category
        new_logger._request_id = self._request_id
        return new_logger

    @staticmethod
    def _get_instance_id() -> str:
        """Container hostname, or the machine hostname for local runs."""
        return os.getenv("HOSTNAME") or os.getenv("CONTAINER_ID") or socket.gethostname()

    @staticmethod
    def _clean_file_path(file_path: str) -> str:
        """Strip the absolute prefix, keeping the path from ``src/`` down."""
        parts = Path(file_path).parts
        if "src" in parts:
            idx = parts.index("src")
            return str(Path(*parts[idx:]))
        return Path(file_path).name


_global_logger: Logger | None = None


def get_logger() -> Logger:
    """Return the global logger instance."""
    if _global_logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _global_logger


def init_logger(
    service_name: str,
    environment: str,
    writer: PostgresWriter | None = None,
    level: str | Level | None = None,
) -> Logger:
    """
    Initialize the global logger.

    Args:
        service_name: Service name
        environment: Deployment environment (dev, stage, prod)
        writer: PostgresWriter for persisted records
        level: Minimum level, as a Level or a LOG_LEVEL string

    Returns:
        Logger instance
    """
    global _global_logger
    min_level = level if isinstance(level, Level) else Level.parse(level)
    _global_logger = Logger(service_name, environment, writer, min_level)
    return _global_logger
