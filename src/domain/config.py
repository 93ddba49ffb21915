"""Configuration domain models."""

from dataclasses import dataclass


@dataclass
class ConfigEntry:
    """Single configuration entry (e.g. the system prompt text)."""

    key: str
    value: str | None = None
