"""Storage - repository interfaces and SQLite / PostgreSQL implementations"""

from .repository import (
    EventRepository,
    OddsHistoryEntry,
    ScoreHistoryEntry,
    SqlRepository,
    Team,
    TeamRepository,
)
from .sqlite_repository import SqliteRepository


def open_repository(database_url: str) -> SqlRepository:
    """
    Open the repository named by DATABASE_URL.

    postgres:// and postgresql:// DSNs use the pooled PostgreSQL repository;
    anything else is treated as a SQLite path (":memory:" included).
    """
    if database_url.startswith(("postgres://", "postgresql://")):
        from .postgres_repository import PostgresRepository
        return PostgresRepository(database_url)
    if database_url.startswith("sqlite:///"):
        database_url = database_url[len("sqlite:///"):]
    return SqliteRepository(database_url)


__all__ = [
    'EventRepository',
    'OddsHistoryEntry',
    'ScoreHistoryEntry',
    'SqlRepository',
    'SqliteRepository',
    'Team',
    'TeamRepository',
    'open_repository',
]
