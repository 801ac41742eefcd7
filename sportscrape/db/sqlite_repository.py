"""
SQLite repository for tests and single-host runs.

One shared connection guarded by a lock; ":memory:" is supported.
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Union

from ..errors import StorageUnavailable
from .repository import SqlRepository
from .schema import ddl_statements

logger = logging.getLogger(__name__)


class SqliteRepository(SqlRepository):
    """
    Usage:
        repo = SqliteRepository(":memory:")
        team_id = repo.insert_team("Arsenal")
    """

    PLACEHOLDER = "?"
    DRIVER_ERRORS = (sqlite3.Error,)

    def __init__(self, path: Union[str, Path] = ":memory:", clock: Callable[[], float] = time.time):
        super().__init__(clock)
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self.path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as e:
            raise StorageUnavailable("connect", e) from e
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self._guard("ensure_schema"), self.cursor() as cur:
            for statement in ddl_statements("sqlite"):
                cur.execute(statement)
        logger.debug(f"SQLite schema ready at {self.path}")

    @contextmanager
    def cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager that yields a cursor with auto-commit/rollback."""
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
