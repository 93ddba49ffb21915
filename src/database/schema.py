"""Idempotent DDL for the template store relations."""

import psycopg2

from src.database.postgres import PostgresClient
from src.domain.errors import StoreUnavailable

CONFIG_TABLE = "web_skyling_config"
TEMPLATES_TABLE = "web_skyling_templates"
LOGS_TABLE = "logs"

SCHEMA_STATEMENTS: tuple[str, ...] = (
    f"""
    CREATE TABLE IF NOT EXISTS {CONFIG_TABLE} (
        key TEXT PRIMARY KEY,
        value TEXT
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TEMPLATES_TABLE} (
        id SERIAL PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        data JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    f"""
    CREATE INDEX IF NOT EXISTS {TEMPLATES_TABLE}_created_at_idx
        ON {TEMPLATES_TABLE} (created_at DESC, id DESC)
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {LOGS_TABLE} (
        id BIGSERIAL PRIMARY KEY,
        timestamp TIMESTAMPTZ NOT NULL,
        service_name TEXT NOT NULL,
        instance_id TEXT NOT NULL,
        node_name TEXT,
        environment TEXT NOT NULL,
        level TEXT NOT NULL,
        category TEXT,
        request_id TEXT,
        function_name TEXT,
        file_path TEXT,
        line_number INTEGER,
        message TEXT NOT NULL,
        error_message TEXT,
        stack_trace TEXT,
        context JSONB,
        duration_ms INTEGER,
        ingestion_time TIMESTAMPTZ NOT NULL
    )
    """,
)


def init_schema(postgres_client: PostgresClient) -> None:
    """
    Create the config, templates and logs tables if they do not exist.

    Args:
        postgres_client: Connected PostgreSQL client

    Raises:
        StoreUnavailable: if the DDL cannot be applied
    """
    try:
        with postgres_client.transaction() as conn, conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
    except psycopg2.Error as e:
        raise StoreUnavailable(f"Failed to initialize schema: {e}") from e
