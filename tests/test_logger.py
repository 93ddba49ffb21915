"""Structured logger behaviour without a PostgreSQL writer."""

import asyncio
import json
import threading
from unittest.mock import MagicMock

import psycopg2
import psycopg2.extras
import pytest

from src.logger.logger import Logger, get_logger, init_logger
from src.logger.postgres_writer import PostgresWriter
from src.logger.types import Category, Level, category, duration_ms, param


def test_level_parse():
    assert Level.parse("WARNING") is Level.WARN
    assert Level.parse("debug") is Level.DEBUG
    assert Level.parse("nonsense") is Level.INFO
    assert Level.parse(None, default=Level.ERROR) is Level.ERROR


def test_levels_below_minimum_are_dropped(capsys):
    logger = Logger("svc", "test", min_level=Level.WARN)

    logger.info("quiet")
    logger.warn("loud")

    out = capsys.readouterr().out
    assert "quiet" not in out
    assert "[warn] -: loud" in out


def test_category_and_fields_are_printed(capsys):
    logger = Logger("svc", "test").with_category(Category.TEMPLATES)

    logger.info("Template saved", param("name", "Landing A"))

    line = capsys.readouterr().out.strip()
    prefix, payload = line.split(": Template saved ")
    assert prefix == "[info] templates"
    assert json.loads(payload) == {"name": "Landing A"}


def test_per_record_category_override(capsys):
    logger = Logger("svc", "test").with_category(Category.DATABASE)

    logger.info("hit", category(Category.CACHE))

    assert capsys.readouterr().out.startswith("[info] cache: hit")


def test_with_fields_and_request_id_do_not_leak_to_parent():
    parent = Logger("svc", "test")
    child = parent.with_fields(param("template", "A")).with_request_id("req-1")

    assert child._fields == {"template": "A"}
    assert child._request_id == "req-1"
    assert parent._fields == {}
    assert parent._request_id is None


def test_error_records_carry_error_message(capsys):
    logger = Logger("svc", "test")

    logger.error("boom", ValueError("bad input"))

    assert "error=bad input" in capsys.readouterr().out


def test_get_logger_returns_initialized_instance():
    logger = init_logger("svc", "test", level="error")

    assert get_logger() is logger
    assert logger.min_level is Level.ERROR


def test_writer_receives_entries_inside_event_loop():
    writer = PostgresWriter(dsn="postgresql://unused", batch_size=10)
    logger = Logger("svc", "test", writer=writer)

    async def scenario():
        logger.info("first", duration_ms(12))
        await asyncio.sleep(0)

    asyncio.run(scenario())

    (entry,) = writer.buffer
    assert entry.message == "first"
    assert entry.duration_ms == 12
    assert entry.context is None


def test_writer_buffers_outside_event_loop():
    writer = PostgresWriter(dsn="postgresql://unused")
    logger = Logger("svc", "test", writer=writer)

    logger.warn("sync", param("key", "value"))

    assert [e.message for e in writer.buffer] == ["sync"]


def test_writer_without_connection_falls_back_to_stderr(capsys):
    writer = PostgresWriter(dsn="postgresql://unused")
    logger = Logger("svc", "test", writer=writer)
    logger.info("buffered", param("k", 1))

    asyncio.run(writer.close())

    err = capsys.readouterr().err.strip()
    assert json.loads(err)["message"] == "buffered"
    assert writer.buffer == []


def test_fatal_exits():
    with pytest.raises(SystemExit):
        Logger("svc", "test").fatal("stop")


def test_entry_buffered_during_flush_is_kept(monkeypatch):
    writer = PostgresWriter(dsn="postgresql://unused")
    writer._conn = MagicMock()
    writer._conn.closed = 0
    logger = Logger("svc", "test", writer=writer)
    logger.info("first")
    written = []

    def insert(cursor, sql, rows, page_size):
        written.extend(rows)
        _log_from_thread(logger, "second")

    monkeypatch.setattr(psycopg2.extras, "execute_values", insert)

    asyncio.run(writer.flush())

    assert [row[11] for row in written] == ["first"]
    assert [e.message for e in writer.buffer] == ["second"]
    writer._conn.commit.assert_called_once()


def test_failed_flush_falls_back_only_for_its_batch(monkeypatch, capsys):
    writer = PostgresWriter(dsn="postgresql://unused")
    writer._conn = MagicMock()
    writer._conn.closed = 0
    logger = Logger("svc", "test", writer=writer)
    logger.info("first")

    def insert(cursor, sql, rows, page_size):
        _log_from_thread(logger, "second")
        raise psycopg2.OperationalError("down")

    monkeypatch.setattr(psycopg2.extras, "execute_values", insert)

    asyncio.run(writer.flush())

    lines = [json.loads(line) for line in capsys.readouterr().err.splitlines() if line.startswith("{")]
    assert [line["message"] for line in lines] == ["first"]
    assert [e.message for e in writer.buffer] == ["second"]
    writer._conn.rollback.assert_called_once()


def _log_from_thread(logger, message):
    worker = threading.Thread(target=logger.info, args=(message,))
    worker.start()
    worker.join()
