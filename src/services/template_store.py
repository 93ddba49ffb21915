"""Template store facade used by the request-handling layer."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

from src.domain.config import ConfigEntry
from src.domain.template import Template
from src.logger.logger import get_logger
from src.logger.types import Category, category, duration_ms, param
from src.repository.config_repository import ConfigRepository
from src.repository.template_repository import TemplateRepository


class TemplateCache:
    """
    Read-through cache of templates keyed by name.

    The cache holds a complete snapshot of the templates table or nothing.
    Every mutation bumps a generation counter when it starts and when it
    ends. A list fetched by a reader is stored only if the generation did
    not move while it was being read and no mutation was in flight, so a
    slow reader can never overwrite the result of a newer write. A mutation
    stores the list it returns only if no other mutation overlapped it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_name: dict[str, Template] | None = None
        self._ordered: list[Template] = []
        self._generation = 0
        self._writers = 0

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._by_name is not None

    def begin_read(self) -> int | None:
        """Generation to pass to fill(), or None while a mutation is running."""
        with self._lock:
            if self._writers:
                return None
            return self._generation

    def fill(self, templates: list[Template], generation: int | None) -> bool:
        snapshot = [t.snapshot() for t in templates]
        with self._lock:
            if generation != self._generation or self._writers:
                return False
            self._store(snapshot)
            return True

    def begin_write(self) -> int:
        with self._lock:
            self._generation += 1
            self._writers += 1
            self._clear()
            return self._generation

    def end_write(self, generation: int, templates: list[Template] | None) -> bool:
        """Finish a mutation; templates is None when it failed."""
        snapshot = [t.snapshot() for t in templates] if templates is not None else None
        with self._lock:
            self._writers -= 1
            stored = (
                snapshot is not None
                and generation == self._generation
                and not self._writers
            )
            if stored:
                self._store(snapshot)
            else:
                self._clear()
            self._generation += 1
            return stored

    def list(self) -> list[Template] | None:
        with self._lock:
            if self._by_name is None:
                return None
            return [t.snapshot() for t in self._ordered]

    def get(self, name: str) -> tuple[bool, Template | None]:
        """Return (hit, template); a hit with None means the name is absent."""
        with self._lock:
            if self._by_name is None:
                return False, None
            template = self._by_name.get(name)
            return True, template.snapshot() if template else None

    def _store(self, snapshot: list[Template]) -> None:
        self._ordered = snapshot
        self._by_name = {t.name: t for t in snapshot}

    def _clear(self) -> None:
        self._by_name = None
        self._ordered = []


class TemplateStore:
    """
    Entry point for template and config operations.

    Maps the boundary calls (fetch-all-templates, create-or-replace-template,
    rename-template, delete-template, fetch-all-config, set-config-entry)
    onto the repositories. Errors from the repositories propagate unchanged.
    """

    def __init__(
        self,
        templates: TemplateRepository,
        config: ConfigRepository,
        cache_enabled: bool = True,
    ) -> None:
        self.templates = templates
        self.config = config
        self.cache = TemplateCache() if cache_enabled else None
        self.logger = get_logger().with_category(Category.TEMPLATES)

    def list_templates(self) -> list[Template]:
        """All templates, most recently created first."""
        generation = None
        if self.cache is not None:
            cached = self.cache.list()
            if cached is not None:
                self.logger.trace("Template list served from cache", category(Category.CACHE))
                return cached
            generation = self.cache.begin_read()

        started = time.monotonic()
        templates = self.templates.list_all()
        if self.cache is not None:
            self._log_refresh(self.cache.fill(templates, generation), templates)
        self.logger.debug(
            "Templates loaded",
            param("count", len(templates)),
            duration_ms(int((time.monotonic() - started) * 1000)),
        )
        return templates

    def get_template(self, name: str) -> Template | None:
        """Template by name, or None when absent."""
        if self.cache is not None:
            if not self.cache.loaded:
                self.list_templates()
            hit, template = self.cache.get(name)
            if hit:
                return template
        return self.templates.get_by_name(name)

    def upsert_template(self, name: str, data: dict[str, Any]) -> list[Template]:
        """Create or replace a template; returns the updated list."""
        return self._mutate(lambda: self.templates.upsert(name, data))

    def rename_template(
        self,
        old_name: str,
        new_name: str | None,
        data: dict[str, Any],
    ) -> list[Template]:
        """Rename a template and replace its data; returns the updated list."""
        return self._mutate(lambda: self.templates.rename(old_name, new_name, data))

    def delete_template(self, name: str) -> list[Template]:
        """Delete a template if present; returns the updated list."""
        return self._mutate(lambda: self.templates.delete(name))

    def get_config(self) -> dict[str, str | None]:
        """Every stored config entry as ``{key: value}``."""
        return self.config.get_all()

    def set_config(self, key: str, value: str | None) -> ConfigEntry:
        """Create or replace one config entry."""
        return self.config.set(key, value)

    def _mutate(self, operation: Callable[[], list[Template]]) -> list[Template]:
        if self.cache is None:
            return operation()

        generation = self.cache.begin_write()
        templates: list[Template] | None = None
        try:
            templates = operation()
        finally:
            stored = self.cache.end_write(generation, templates)
            if templates is not None:
                self._log_refresh(stored, templates)
        return templates

    def _log_refresh(self, stored: bool, templates: list[Template]) -> None:
        if stored:
            self.logger.trace(
                "Template cache refilled",
                category(Category.CACHE),
                param("count", len(templates)),
            )
        else:
            self.logger.trace("Template cache not refilled, a write overlapped", category(Category.CACHE))
