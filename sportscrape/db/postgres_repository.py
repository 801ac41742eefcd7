#!/usr/bin/env python3
"""
PostgreSQL repository with connection pooling.

Uses psycopg2 with ThreadedConnectionPool; every cursor() borrows a pooled
connection, commits or rolls back, and hands it back.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator

import psycopg2
from psycopg2 import pool

from ..errors import StorageUnavailable
from .repository import SqlRepository
from .schema import ddl_statements

logger = logging.getLogger(__name__)

# Session-level guards applied to every new pooled connection
_PG_SESSION_SETTINGS = [
    ("lock_timeout", "'5s'"),
    ("statement_timeout", "'60s'"),
    ("idle_in_transaction_session_timeout", "'60s'"),
]


class PostgresRepository(SqlRepository):
    """
    Usage:
        repo = PostgresRepository("postgresql://user:pw@localhost/sports")
        with repo.cursor() as cur:
            cur.execute("SELECT 1")
    """

    PLACEHOLDER = "%s"
    DRIVER_ERRORS = (psycopg2.Error,)

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 10,
                 clock: Callable[[], float] = time.time):
        super().__init__(clock)
        try:
            self._pool = pool.ThreadedConnectionPool(minconn=minconn, maxconn=maxconn, dsn=dsn)
        except psycopg2.Error as e:
            raise StorageUnavailable("connect", e) from e
        self._configured = set()
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self._guard("ensure_schema"), self.cursor() as cur:
            for statement in ddl_statements("postgres"):
                cur.execute(statement)

    def _apply_session_settings(self, conn: Any) -> None:
        if id(conn) in self._configured:
            return
        with conn.cursor() as cur:
            for setting, value in _PG_SESSION_SETTINGS:
                cur.execute(f"SET {setting} = {value}")
        conn.commit()
        self._configured.add(id(conn))

    @contextmanager
    def cursor(self) -> Iterator[Any]:
        """Context manager that yields a cursor with auto-commit/rollback."""
        conn = self._pool.getconn()
        try:
            self._apply_session_settings(conn)
            cur = conn.cursor()
            try:
                yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()
        finally:
            self._pool.putconn(conn)

    def close(self) -> None:
        self._pool.closeall()
        logger.info("PostgreSQL pool closed")
