"""Types and constants for structured logging."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Level(str, Enum):
    """Log level, ordered from most to least verbose."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"
    PANIC = "panic"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def parse(cls, value: str | None, default: "Level | None" = None) -> "Level":
        """Parse a LOG_LEVEL value; ``warning`` is accepted as ``warn``."""
        fallback = default or cls.INFO
        if not value:
            return fallback
        normalized = value.strip().lower()
        if normalized == "warning":
            normalized = "warn"
        try:
            return cls(normalized)
        except ValueError:
            return fallback


_SEVERITY = {level: idx for idx, level in enumerate(Level)}


class Category(str, Enum):
    """Event category used to group log records."""

    BOOTSTRAP = "bootstrap"  # Service startup and shutdown
    DATABASE = "database"  # SQL operations
    TEMPLATES = "templates"  # Template store operations
    CONFIG = "config"  # Config key-value operations
    CACHE = "cache"  # Template read-through cache
    SEEDING = "seeding"  # First-boot config seeding
    MIGRATION = "migration"  # Legacy templates.json import


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LogEntry:
    """A single log record as stored in the logs table."""

    timestamp: datetime
    service_name: str
    instance_id: str
    environment: str
    level: Level
    message: str
    ingestion_time: datetime = field(default_factory=utcnow)
    node_name: str | None = None
    category: Category | None = None
    request_id: str | None = None
    function_name: str | None = None
    file_path: str | None = None
    line_number: int | None = None
    error_message: str | None = None
    stack_trace: str | None = None
    context: dict[str, Any] | None = None
    duration_ms: int | None = None


@dataclass
class Field:
    """Structured key/value attached to a log record."""

    key: str
    value: Any


def category(cat: Category) -> Field:
    """Override the logger category for a single record."""
    return Field(key="_category", value=cat)


def param(key: str, value: Any) -> Field:
    return Field(key=key, value=value)


def duration_ms(value: int) -> Field:
    return Field(key="duration_ms", value=value)


def error(err: Exception) -> Field:
    return Field(key="error", value=str(err))
