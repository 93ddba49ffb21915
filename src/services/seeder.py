"""First-boot config seeding and legacy template migration."""

import json
from pathlib import Path

from src.domain.config import ConfigEntry
from src.domain.template import Template
from src.logger.logger import get_logger
from src.logger.types import Category, param
from src.repository.config_repository import ConfigRepository
from src.repository.template_repository import TemplateRepository

# Seed file name -> config key
SEED_FILES: dict[str, str] = {
    "estructura.txt": "structure",
    "output.txt": "output",
    "limitaciones.txt": "limitations",
    "systemprompt.txt": "systemPrompt",
    "conocimiento_unico_sections.txt": "knowledge",
}

KNOWLEDGE_PDF = "conocimiento_unico_sections.pdf"


class ConfigSeeder:
    """Populates the config table from static text files when it is empty."""

    def __init__(self, config_repository: ConfigRepository, seed_dir: Path) -> None:
        self.config = config_repository
        self.seed_dir = seed_dir
        self.logger = get_logger().with_category(Category.SEEDING)

    def seed_if_empty(self) -> int:
        """
        Seed config entries unless at least one entry already exists.

        Returns:
            Number of inserted entries
        """
        if self.config.count() > 0:
            self.logger.debug("Config already populated, skipping seed")
            return 0

        self.logger.info("Seeding configuration from files", param("seed_dir", str(self.seed_dir)))
        values = self.load_seed_values()
        entries = [ConfigEntry(key=key, value=value) for key, value in values.items() if value]
        inserted = self.config.insert_many(entries)

        self.logger.info(
            "Seeding complete",
            param("inserted", inserted),
            param("keys", [entry.key for entry in entries]),
        )
        return inserted

    def load_seed_values(self) -> dict[str, str]:
        """Read every seed file; missing or unreadable files yield ``""``."""
        values = {key: self._read(self.seed_dir / file_name) for file_name, key in SEED_FILES.items()}

        if not values["knowledge"] and (self.seed_dir / KNOWLEDGE_PDF).exists():
            self.logger.warn(
                "Knowledge base only available as PDF, text extraction is not supported",
                param("file", KNOWLEDGE_PDF),
            )
        return values

    def _read(self, path: Path) -> str:
        if not path.is_file():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self.logger.warn(f"Error reading {path.name}", param("path", str(path)), param("error", str(e)))
            return ""


class TemplateMigrator:
    """Imports templates from the legacy JSON file when the table is empty."""

    def __init__(self, template_repository: TemplateRepository, legacy_file: Path) -> None:
        self.templates = template_repository
        self.legacy_file = legacy_file
        self.logger = get_logger().with_category(Category.MIGRATION)

    def migrate_if_empty(self) -> int:
        """
        Insert legacy templates unless at least one template already exists.

        Returns:
            Number of inserted templates
        """
        if not self.legacy_file.is_file():
            return 0
        if self.templates.count() > 0:
            self.logger.debug("Templates already present, skipping migration")
            return 0

        items = self._load()
        if not items:
            return 0

        self.logger.info(
            f"Migrating {len(items)} templates from JSON to DB",
            param("file", str(self.legacy_file)),
        )
        inserted = 0
        for item in items:
            template = Template.from_legacy(item)
            if template is None:
                self.logger.warn("Skipping legacy template without name", param("item", item))
                continue
            if self.templates.insert_if_absent(template):
                inserted += 1

        self.logger.info("Template migration complete", param("inserted", inserted))
        return inserted

    def _load(self) -> list[object]:
        try:
            parsed = json.loads(self.legacy_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.logger.warn("Template migration error", param("error", str(e)))
            return []
        if not isinstance(parsed, list):
            self.logger.warn("Legacy templates file is not a JSON array")
            return []
        return parsed
