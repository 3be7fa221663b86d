"""
PostgreSQL access for the credential store and the security event log.

One ThreadedConnectionPool per client. Each call borrows a connection,
runs a single statement in its own transaction and hands the connection
back; a failed statement is rolled back first so the pool never holds a
connection stuck in an aborted transaction.

UUID and JSONB adapters are registered process-wide on first use, so ids
go in and come out as uuid.UUID and jsonb columns come out as dicts.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

Params = Sequence[Any] | dict[str, Any] | None

_adapters_registered = False
_adapters_lock = threading.Lock()


def _register_adapters() -> None:
    global _adapters_registered
    with _adapters_lock:
        if not _adapters_registered:
            psycopg2.extras.register_uuid()
            psycopg2.extras.register_default_jsonb(globally=True)
            _adapters_registered = True


class PostgresClient:
    """
    Thin pooled wrapper returning rows as plain dicts.

    Usage:
        db = PostgresClient(database_url)
        row = db.execute_single("SELECT * FROM users WHERE lower(email) = %s", (email,))
    """

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        """
        Open the pool immediately (fail-fast).

        Raises:
            psycopg2.OperationalError: If the database is unreachable
        """
        _register_adapters()
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=min_connections,
            maxconn=max_connections,
            dsn=database_url,
            connect_timeout=30,
        )
        logger.info(f"PostgreSQL pool opened ({min_connections}-{max_connections} connections)")

    @contextmanager
    def cursor(self, dict_rows: bool = True) -> Iterator[Any]:
        """Cursor inside a single committed-or-rolled-back transaction."""
        if self._pool is None:
            raise RuntimeError("PostgresClient is closed")

        conn = self._pool.getconn()
        cursor_factory = psycopg2.extras.RealDictCursor if dict_rows else None
        try:
            with conn.cursor(cursor_factory=cursor_factory) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def ping(self) -> bool:
        """Health check. Raises psycopg2.OperationalError if unreachable."""
        return self.execute_scalar("SELECT 1") == 1

    def execute(self, query: str, params: Params = None) -> list[dict[str, Any]]:
        """All rows as dicts. Empty list for statements without a result set."""
        with self.cursor() as cur:
            cur.execute(query, params)
            if cur.description is None:
                return []
            return [dict(row) for row in cur.fetchall()]

    def execute_single(self, query: str, params: Params = None) -> dict[str, Any] | None:
        """First row or None."""
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_scalar(self, query: str, params: Params = None) -> Any:
        """First column of the first row, or None."""
        with self.cursor(dict_rows=False) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
            return row[0] if row else None

    def execute_returning(self, query: str, params: Params = None) -> list[dict[str, Any]]:
        """INSERT/UPDATE/DELETE ... RETURNING; the affected rows as dicts."""
        return self.execute(query, params)

    def close(self) -> None:
        """Close every pooled connection. Safe to call twice."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("PostgreSQL pool closed")
