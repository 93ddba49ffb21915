"""Template repository for PostgreSQL."""

import json
from typing import Any

import psycopg2
import psycopg2.errors
from psycopg2.extras import Json, RealDictCursor

from src.database.postgres import PostgresClient, rollback
from src.database.schema import TEMPLATES_TABLE
from src.domain.errors import NameCollision, NotFound, StoreUnavailable, ValidationError
from src.domain.template import Template
from src.logger.logger import get_logger
from src.logger.types import Category, param

SELECT_ALL_SQL = f"""
    SELECT id, name, data, created_at
    FROM {TEMPLATES_TABLE}
    ORDER BY created_at DESC, id DESC
"""


class TemplateRepository:
    """
    Repository for Template CRUD operations in PostgreSQL.

    Every mutating method runs in a single transaction and returns the full
    list of templates as seen by that transaction after the change.
    """

    def __init__(self, postgres_client: PostgresClient) -> None:
        """
        Initialize TemplateRepository.

        Args:
            postgres_client: PostgreSQL client instance
        """
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.DATABASE)

    def list_all(self) -> list[Template]:
        """
        Get all templates, most recently created first.

        Returns:
            List of templates
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                templates = self._select_all(cur)
            conn.commit()
            return templates
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to fetch templates", e)
            raise StoreUnavailable("Database error fetching templates") from e
        finally:
            self.postgres.put_connection(conn)

    def get_by_name(self, name: str) -> Template | None:
        """
        Get template by name.

        Args:
            name: Template name

        Returns:
            Template if found, None otherwise
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT id, name, data, created_at
                    FROM {TEMPLATES_TABLE}
                    WHERE name = %s
                    """,
                    (name,),
                )
                row = cur.fetchone()
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to fetch template", e, param("name", name))
            raise StoreUnavailable("Database error fetching template", name=name) from e
        finally:
            self.postgres.put_connection(conn)

        return self._row_to_template(row) if row else None

    def upsert(self, name: str, data: dict[str, Any]) -> list[Template]:
        """
        Create a template or replace the data of the existing one.

        Uses ON CONFLICT (name) DO UPDATE; ``created_at`` and ``name`` of an
        existing row are never touched.

        Args:
            name: Template name, must be non-empty
            data: Template payload, stored as JSONB

        Returns:
            Full list of templates after the change

        Raises:
            ValidationError: if name is empty
            StoreUnavailable: on database failure
        """
        if not name:
            self.logger.warn("Rejected template save without name")
            raise ValidationError("Name is required")

        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    INSERT INTO {TEMPLATES_TABLE} (name, data)
                    VALUES (%s, %s)
                    ON CONFLICT (name) DO UPDATE SET data = EXCLUDED.data
                    """,
                    (name, Json(data)),
                )
                templates = self._select_all(cur)
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to save template", e, param("name", name))
            raise StoreUnavailable("Database error saving template", name=name) from e
        finally:
            self.postgres.put_connection(conn)

        self.logger.info("Template saved", param("name", name))
        return templates

    def rename(
        self,
        old_name: str,
        new_name: str | None,
        data: dict[str, Any],
    ) -> list[Template]:
        """
        Rename a template and replace its data atomically.

        The source row is locked with FOR UPDATE for the duration of the
        transaction. The collision pre-check is an early exit only: the UNIQUE
        constraint on ``name`` rejects a concurrent rename to the same target,
        and that violation is reported as NameCollision.

        Args:
            old_name: Current template name
            new_name: Target name; empty or None keeps ``old_name``
            data: New template payload

        Returns:
            Full list of templates after the change

        Raises:
            ValidationError: if old_name is empty
            NotFound: if no template is named old_name
            NameCollision: if new_name is taken by another template
            StoreUnavailable: on database failure
        """
        if not old_name:
            raise ValidationError("Template name is required")

        final_name = new_name or old_name

        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT id FROM {TEMPLATES_TABLE} WHERE name = %s FOR UPDATE",
                    (old_name,),
                )
                if cur.fetchone() is None:
                    raise NotFound(old_name)

                if final_name != old_name:
                    cur.execute(
                        f"SELECT id FROM {TEMPLATES_TABLE} WHERE name = %s",
                        (final_name,),
                    )
                    if cur.fetchone() is not None:
                        raise NameCollision(final_name)

                cur.execute(
                    f"""
                    UPDATE {TEMPLATES_TABLE}
                    SET name = %s, data = %s
                    WHERE name = %s
                    """,
                    (final_name, Json(data), old_name),
                )
                templates = self._select_all(cur)
            conn.commit()
        except (NotFound, NameCollision) as e:
            rollback(conn)
            self.logger.warn(
                e.message,
                param("old_name", old_name),
                param("new_name", final_name),
            )
            raise
        except psycopg2.errors.UniqueViolation as e:
            rollback(conn)
            self.logger.warn(
                "Concurrent rename lost the race for the target name",
                param("old_name", old_name),
                param("new_name", final_name),
            )
            raise NameCollision(final_name) from e
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error(
                "Failed to rename template",
                e,
                param("old_name", old_name),
                param("new_name", final_name),
            )
            raise StoreUnavailable("Database error renaming template", name=old_name) from e
        finally:
            self.postgres.put_connection(conn)

        self.logger.info(
            "Template renamed",
            param("old_name", old_name),
            param("new_name", final_name),
        )
        return templates

    def delete(self, name: str) -> list[Template]:
        """
        Delete template by name; deleting a missing name is a no-op.

        Args:
            name: Template name

        Returns:
            Full list of templates after the change
        """
        conn = self.postgres.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(f"DELETE FROM {TEMPLATES_TABLE} WHERE name = %s", (name,))
                deleted = cur.rowcount
                templates = self._select_all(cur)
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to delete template", e, param("name", name))
            raise StoreUnavailable("Database error deleting template", name=name) from e
        finally:
            self.postgres.put_connection(conn)

        self.logger.info("Template deleted", param("name", name), param("deleted", deleted))
        return templates

    def count(self) -> int:
        """Number of stored templates."""
        conn = self.postgres.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) FROM {TEMPLATES_TABLE}")
                (total,) = cur.fetchone()
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to count templates", e)
            raise StoreUnavailable("Database error counting templates") from e
        finally:
            self.postgres.put_connection(conn)
        return int(total)

    def insert_if_absent(self, template: Template) -> bool:
        """
        Insert a template unless its name is already taken.

        Args:
            template: Template to insert (``created_at`` is assigned by the DB)

        Returns:
            True if a row was inserted
        """
        if not template.name:
            raise ValidationError("Name is required")

        conn = self.postgres.get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {TEMPLATES_TABLE} (name, data)
                    VALUES (%s, %s)
                    ON CONFLICT (name) DO NOTHING
                    """,
                    (template.name, Json(template.data)),
                )
                inserted = cur.rowcount == 1
            conn.commit()
        except psycopg2.Error as e:
            rollback(conn)
            self.logger.error("Failed to insert template", e, param("name", template.name))
            raise StoreUnavailable("Database error inserting template", name=template.name) from e
        finally:
            self.postgres.put_connection(conn)
        return inserted

    def _select_all(self, cur: Any) -> list[Template]:
        cur.execute(SELECT_ALL_SQL)
        return [self._row_to_template(row) for row in cur.fetchall()]

    def _row_to_template(self, row: dict[str, Any]) -> Template:
        """Convert database row to Template domain object."""
        data = row["data"]
        if isinstance(data, str):
            data = json.loads(data)

        return Template(
            id=row["id"],
            name=row["name"],
            data=data if data is not None else {},
            created_at=row["created_at"],
        )
