"""Shared fixtures: logger setup, mocked PostgreSQL, in-memory repositories."""

import copy
import itertools
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import psycopg2
import pytest

from src.domain.config import ConfigEntry
from src.domain.errors import NameCollision, NotFound, ValidationError
from src.domain.template import Template
from src.logger.logger import init_logger


@pytest.fixture(autouse=True)
def logger():
    """Repositories and services fetch the global logger at construction."""
    return init_logger("skyling-test", "test", level="debug")


class FakePostgres:
    """Stands in for PostgresClient; hands out one mocked connection."""

    def __init__(self) -> None:
        self.conn = MagicMock(name="connection")
        self.conn.closed = 0
        self.cursor = MagicMock(name="cursor")
        self.cursor.fetchall.return_value = []
        self.conn.cursor.return_value.__enter__.return_value = self.cursor
        self.conn.cursor.return_value.__exit__.return_value = False
        self.checked_out = 0

    def get_connection(self) -> MagicMock:
        self.checked_out += 1
        return self.conn

    def put_connection(self, conn: MagicMock) -> None:
        assert conn is self.conn
        self.checked_out -= 1

    def drop_connection(self) -> None:
        """Make the next statement fail the way a server-side disconnect does."""

        def lost(*args: Any, **kwargs: Any) -> None:
            self.conn.closed = 2
            raise psycopg2.OperationalError("server closed the connection unexpectedly")

        def closed_rollback() -> None:
            if self.conn.closed:
                raise psycopg2.InterfaceError("connection already closed")

        self.cursor.execute.side_effect = lost
        self.conn.rollback.side_effect = closed_rollback

    def executed_sql(self) -> list[str]:
        return [" ".join(c.args[0].split()) for c in self.cursor.execute.call_args_list]


@pytest.fixture
def fake_postgres() -> FakePostgres:
    return FakePostgres()


def template_row(name: str, data: Any, id: int = 1, created_at: datetime | None = None) -> dict:
    return {
        "id": id,
        "name": name,
        "data": data,
        "created_at": created_at or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    }


class InMemoryTemplateRepository:
    """TemplateRepository semantics over a dict, with call counting."""

    def __init__(self) -> None:
        self.rows: dict[str, Template] = {}
        self.calls: Counter[str] = Counter()
        self._ids = itertools.count(1)
        self._ticks = itertools.count()
        self._epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _ordered(self) -> list[Template]:
        ordered = sorted(self.rows.values(), key=lambda t: (t.created_at, t.id), reverse=True)
        return [t.snapshot() for t in ordered]

    def list_all(self) -> list[Template]:
        self.calls["list_all"] += 1
        return self._ordered()

    def get_by_name(self, name: str) -> Template | None:
        self.calls["get_by_name"] += 1
        template = self.rows.get(name)
        return template.snapshot() if template else None

    def upsert(self, name: str, data: dict[str, Any]) -> list[Template]:
        self.calls["upsert"] += 1
        if not name:
            raise ValidationError("Name is required")
        if name in self.rows:
            self.rows[name].data = copy.deepcopy(data)
        else:
            self.rows[name] = Template(
                name=name,
                data=copy.deepcopy(data),
                created_at=self._epoch + timedelta(seconds=next(self._ticks)),
                id=next(self._ids),
            )
        return self._ordered()

    def rename(self, old_name: str, new_name: str | None, data: dict[str, Any]) -> list[Template]:
        self.calls["rename"] += 1
        if not old_name:
            raise ValidationError("Template name is required")
        if old_name not in self.rows:
            raise NotFound(old_name)
        final_name = new_name or old_name
        if final_name != old_name and final_name in self.rows:
            raise NameCollision(final_name)
        template = self.rows.pop(old_name)
        template.name = final_name
        template.data = copy.deepcopy(data)
        self.rows[final_name] = template
        return self._ordered()

    def delete(self, name: str) -> list[Template]:
        self.calls["delete"] += 1
        self.rows.pop(name, None)
        return self._ordered()

    def count(self) -> int:
        return len(self.rows)

    def insert_if_absent(self, template: Template) -> bool:
        if template.name in self.rows:
            return False
        self.upsert(template.name, template.data)
        return True


class InMemoryConfigRepository:
    def __init__(self) -> None:
        self.values: dict[str, str | None] = {}

    def get_all(self) -> dict[str, str | None]:
        return dict(self.values)

    def set(self, key: str, value: str | None) -> ConfigEntry:
        if not key:
            raise ValidationError("Key is required")
        self.values[key] = value
        return ConfigEntry(key=key, value=value)

    def count(self) -> int:
        return len(self.values)

    def insert_many(self, entries) -> int:
        inserted = 0
        for entry in entries:
            if entry.key not in self.values:
                self.values[entry.key] = entry.value
                inserted += 1
        return inserted


@pytest.fixture
def template_repo() -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository()


@pytest.fixture
def config_repo() -> InMemoryConfigRepository:
    return InMemoryConfigRepository()
