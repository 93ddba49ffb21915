"""PostgreSQL client for the Skyling template store."""

import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extensions import connection as Connection
from psycopg2.pool import PoolError, ThreadedConnectionPool

from src.domain.errors import StoreUnavailable


class PostgresConfig:
    """PostgreSQL connection configuration."""

    def __init__(
        self,
        url: str | None = None,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        sslmode: str | None = None,
        min_conn: int | None = None,
        max_conn: int | None = None,
        connect_timeout: int | None = None,
    ) -> None:
        self.url = url or os.getenv("DATABASE_URL") or None
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "skyling")
        self.user = user or os.getenv("DB_USER", "skyling")
        self.password = password or self._read_password()
        self.sslmode = sslmode or os.getenv("DB_SSLMODE") or self._default_sslmode()
        self.min_conn = min_conn or int(os.getenv("DB_POOL_MIN", "1"))
        self.max_conn = max_conn or int(os.getenv("DB_POOL_MAX", "10"))
        self.connect_timeout = connect_timeout or int(os.getenv("DB_CONNECT_TIMEOUT", "10"))

    @staticmethod
    def _read_password() -> str:
        """Read password from Docker secret or env."""
        secret_file = "/run/secrets/db_password"
        if os.path.exists(secret_file):
            with open(secret_file) as f:
                return f.read().strip()
        return os.getenv("DB_PASSWORD", "skyling")

    @staticmethod
    def _default_sslmode() -> str:
        # Managed production databases only accept TLS connections
        return "require" if os.getenv("ENVIRONMENT", "dev") == "prod" else "prefer"

    @property
    def dsn(self) -> str:
        """Get PostgreSQL DSN (libpq URI when DATABASE_URL is set)."""
        if self.url:
            return self.url
        return (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.user} "
            f"password={self.password} "
            f"sslmode={self.sslmode} "
            f"connect_timeout={self.connect_timeout}"
        )

    @property
    def safe_target(self) -> str:
        """Connection target without credentials, for logs."""
        if self.url:
            target = self.url.split("?", 1)[0].split("://", 1)[-1]
            return target.rsplit("@", 1)[-1]
        return f"{self.host}:{self.port}/{self.database}"


class PostgresClient:
    """PostgreSQL client with connection pooling."""

    def __init__(self, config: PostgresConfig | Any) -> None:
        """
        Initialize PostgreSQL client.

        Args:
            config: PostgresConfig or config dict
        """
        if isinstance(config, dict):
            self.config = PostgresConfig(**config)
        elif config is None:
            self.config = PostgresConfig()
        else:
            self.config = config

        self.pool: ThreadedConnectionPool | None = None

    async def connect(self) -> None:
        """Connect to database and create connection pool."""
        try:
            self.pool = ThreadedConnectionPool(
                minconn=self.config.min_conn,
                maxconn=self.config.max_conn,
                dsn=self.config.dsn,
            )
        except psycopg2.Error as e:
            raise StoreUnavailable(
                f"Failed to create connection pool: {e}",
                target=self.config.safe_target,
            ) from e

    async def close(self) -> None:
        """Close database connection pool."""
        if self.pool:
            self.pool.closeall()
            self.pool = None

    def get_connection(self) -> Connection:
        """Get connection from pool."""
        if not self.pool:
            raise RuntimeError("Connection pool not initialized. Call connect() first.")
        try:
            return self.pool.getconn()  # type: ignore[no-any-return]
        except (PoolError, psycopg2.Error) as e:
            raise StoreUnavailable(f"Failed to get connection: {e}") from e

    def put_connection(self, conn: Connection) -> None:
        """Return connection to pool."""
        if self.pool:
            # Broken connections are discarded instead of being reused
            self.pool.putconn(conn, close=bool(conn.closed))

    @contextmanager
    def transaction(self) -> Generator[Connection, None, None]:
        """
        Check out a connection and run one transaction on it.

        Commits when the block exits normally, rolls back on any exception
        and always returns the connection to the pool.
        """
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except BaseException:
            rollback(conn)
            raise
        finally:
            self.put_connection(conn)


def rollback(conn: Connection) -> None:
    """Roll back the open transaction unless the server already dropped the connection."""
    if not conn.closed:
        conn.rollback()
