"""Configuration repository for PostgreSQL."""

from collections.abc import Iterable

import psycopg2
from psycopg2.extras import RealDictCursor

from src.database.postgres import PostgresClient, rollback
from src.database.schema import CONFIG_TABLE
from src.domain.config import ConfigEntry
from src.domain.errors import StoreUnavailable, ValidationError
from src.logger.logger import get_logger
from src.logger.types import Category, param


class ConfigRepository:
    """Repository for the global key-value configuration in PostgreSQL."""

    def __init__(self, postgres_client: PostgresClient) -> None:
        """
        Initialize ConfigRepository.

        Args:
            postgres_client: PostgreSQL client instance
        """
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.DATABASE)

    def get_all(self) -> dict[str, str | None]:
        """
        Get every configuration entry as a mapping.

        Missing keys are simply absent; no defaults are substituted.

        Returns:
            Mapping of key to value
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(f"SELECT key, value FROM {CONFIG_TABLE} ORDER BY key")
                rows = cur.fetchall()
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to fetch config", e)
            raise StoreUnavailable("Database error fetching defaults") from e
        finally:
            self.postgres.put_connection(conn)

        return {row["key"]: row["value"] for row in rows}

    def set(self, key: str, value: str | None) -> ConfigEntry:
        """
        Create or fully replace a configuration value.

        Args:
            key: Configuration key, must be non-empty
            value: New value; empty string and None are allowed

        Returns:
            The stored ConfigEntry

        Raises:
            ValidationError: if key is empty
            StoreUnavailable: on database failure
        """
        if not key:
            self.logger.warn("Rejected config update without key")
            raise ValidationError("Key is required")

        conn = self.postgres.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {CONFIG_TABLE} (key, value)
                    VALUES (%s, %s)
                    ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
                    """,
                    (key, value),
                )
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to update config", e, param("key", key))
            raise StoreUnavailable("Database error updating config", key=key) from e
        finally:
            self.postgres.put_connection(conn)

        self.logger.info(
            "Config updated",
            param("key", key),
            param("value_length", len(value or "")),
        )
        return ConfigEntry(key=key, value=value)

    def count(self) -> int:
        """Number of stored configuration entries."""
        conn = self.postgres.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) FROM {CONFIG_TABLE}")
                (total,) = cur.fetchone()
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to count config entries", e)
            raise StoreUnavailable("Database error counting config") from e
        finally:
            self.postgres.put_connection(conn)
        return int(total)

    def insert_many(self, entries: Iterable[ConfigEntry]) -> int:
        """
        Insert entries whose key is not stored yet, in one transaction.

        Existing keys are left untouched.

        Args:
            entries: Entries to insert

        Returns:
            Number of rows actually inserted
        """
        inserted = 0
        conn = self.postgres.get_connection()
        try:
            with conn.cursor() as cur:
                for entry in entries:
                    if not entry.key:
                        raise ValidationError("Key is required")
                    cur.execute(
                        f"""
                        INSERT INTO {CONFIG_TABLE} (key, value)
                        VALUES (%s, %s)
                        ON CONFLICT (key) DO NOTHING
                        """,
                        (entry.key, entry.value),
                    )
                    inserted += cur.rowcount
            conn.commit()
        except ValidationError:
            rollback(conn)
            raise
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to insert config entries", e)
            raise StoreUnavailable("Database error inserting config") from e
        finally:
            self.postgres.put_connection(conn)
        return inserted
