"""Settings module for the Skyling template store."""

import os
from pathlib import Path

from src.database.postgres import PostgresConfig


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class BootstrapConfig:
    """Locations of the first-boot seed sources."""

    def __init__(self) -> None:
        self.seed_dir = Path(os.getenv("SEED_DIR", "rags"))
        self.legacy_templates_file = Path(os.getenv("LEGACY_TEMPLATES_FILE", "templates.json"))


class Settings:
    """Application settings."""

    def __init__(self) -> None:
        # Service info
        self.environment = os.getenv("ENVIRONMENT", "dev")
        self.service_name = os.getenv("SERVICE_NAME", "skyling")
        self.service_version = os.getenv("SERVICE_VERSION", "0.1.0")
        self.log_level = os.getenv("LOG_LEVEL", "info")

        # Persist logs to the logs table instead of stdout
        self.log_to_postgres = _env_bool("LOG_TO_POSTGRES", self.environment != "dev")

        # PostgreSQL
        self.postgres = PostgresConfig()

        # Seed files and legacy templates.json
        self.bootstrap = BootstrapConfig()

        self.template_cache_enabled = _env_bool("TEMPLATE_CACHE_ENABLED", True)
