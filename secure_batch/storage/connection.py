"""
PostgreSQL connection pool shared by the record, audit and rate-limit stores.

Built on psycopg 3 and psycopg_pool. Rows come back as dictionaries.
"""
import os
import time
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from secure_batch.observability.logger import get_logger

logger = get_logger(__name__)


class DatabaseConnectionPool:
    """
    Pooled PostgreSQL connections for the engine's storage adapters.

    Args:
        host: Database host (defaults to env var DB_HOST)
        port: Database port (defaults to env var DB_PORT)
        database: Database name (defaults to env var DB_NAME)
        user: Database user (defaults to env var DB_USER)
        password: Database password (defaults to env var DB_PASSWORD)
        min_size: Minimum pool size
        max_size: Maximum pool size; keep it at or above max_concurrency
        timeout: Connection timeout in seconds
        conninfo: Full libpq connection string; overrides the individual parts
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 8,
        timeout: float = 30.0,
        conninfo: str | None = None,
    ) -> None:
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout

        if conninfo:
            self.conninfo = conninfo
        else:
            self.host = host or os.getenv("DB_HOST", "localhost")
            self.port = port or int(os.getenv("DB_PORT", "5432"))
            self.database = database or os.getenv("DB_NAME", "secure_batch")
            self.user = user or os.getenv("DB_USER", "secure_batch")
            self.password = password or os.getenv("DB_PASSWORD")

            if not self.password:
                raise ValueError(
                    "Database password must be provided. "
                    "Set DB_PASSWORD environment variable or pass to constructor."
                )

            self.conninfo = (
                f"host={self.host} "
                f"port={self.port} "
                f"dbname={self.database} "
                f"user={self.user} "
                f"password={self.password} "
                f"connect_timeout={int(self.timeout)}"
            )

        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the pool, retrying while the server is not reachable yet.

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        self._pool = ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

        for attempt in range(1, max_retries + 1):
            try:
                self._pool.open(wait=True, timeout=self.timeout)
                logger.info("Database pool opened", extra={"attempt": attempt, "max_size": self.max_size})
                return
            except (OperationalError, TimeoutError) as e:
                logger.warning(
                    "Database connection attempt failed",
                    extra={"attempt": attempt, "max_retries": max_retries, "error": str(e)}
                )
                if attempt < max_retries:
                    time.sleep(retry_delay)
                else:
                    self._pool.close()
                    self._pool = None
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self):
        """
        Borrow a connection; it is returned to the pool on exit.

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    def execute_query(self, query: str, params: tuple | dict | None = None) -> list[dict]:
        """Run a SELECT and return every row."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()

    def execute_returning(self, command: str, params: tuple | dict | None = None) -> dict | None:
        """Run a write with a RETURNING clause and commit; returns the first row."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(command, params)
                row = cur.fetchone()
            conn.commit()
            return row

    def execute_command(self, command: str, params: tuple | dict | None = None) -> int:
        """Run an INSERT/UPDATE/DELETE and commit; returns rows affected."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(command, params)
                rowcount = cur.rowcount
            conn.commit()
            return rowcount

    def execute_script(self, sql: str) -> None:
        """Run a multi-statement DDL script (schema bootstrap)."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
            conn.commit()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
