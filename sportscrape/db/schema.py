"""
Table definitions for team resolution and the odds/score audit trail.

Timestamps are stored as epoch seconds so the same statements work on
SQLite and PostgreSQL; only the surrogate-key column type differs.
"""

from typing import List

_ID_COLUMN = {
    "sqlite": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "postgres": "BIGSERIAL PRIMARY KEY",
}

_FLOAT = {
    "sqlite": "REAL",
    "postgres": "DOUBLE PRECISION",
}

_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS teams (
        id {id},
        canonical_name TEXT NOT NULL,
        created_at {float} NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS team_aliases (
        id {id},
        team_id BIGINT NOT NULL REFERENCES teams(id),
        alias TEXT NOT NULL,
        source TEXT NOT NULL,
        created_at {float} NOT NULL,
        UNIQUE (team_id, alias, source)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS event_flags (
        event_id TEXT PRIMARY KEY,
        reason TEXT NOT NULL,
        flagged_at {float} NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS odds_history (
        id {id},
        event_id TEXT NOT NULL,
        market_type TEXT NOT NULL,
        outcome_name TEXT NOT NULL,
        previous_odds {float},
        new_odds {float} NOT NULL,
        change_percent TEXT,
        source TEXT NOT NULL,
        is_flagged INTEGER NOT NULL DEFAULT 0,
        recorded_at {float} NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS score_history (
        id {id},
        event_id TEXT NOT NULL,
        home_score INTEGER,
        away_score INTEGER,
        period TEXT,
        minute INTEGER,
        source TEXT NOT NULL,
        is_valid INTEGER NOT NULL DEFAULT 1,
        recorded_at {float} NOT NULL
    )
    """,
]

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_team_aliases_lookup ON team_aliases (alias, source)",
    "CREATE INDEX IF NOT EXISTS idx_teams_lower_name ON teams (LOWER(canonical_name))",
    "CREATE INDEX IF NOT EXISTS idx_odds_history_event ON odds_history (event_id, recorded_at)",
    "CREATE INDEX IF NOT EXISTS idx_score_history_event ON score_history (event_id, recorded_at)",
]


def ddl_statements(dialect: str) -> List[str]:
    """CREATE statements for "sqlite" or "postgres"."""
    if dialect not in _ID_COLUMN:
        raise ValueError(f"Unsupported dialect {dialect!r}; expected one of {sorted(_ID_COLUMN)}")
    tables = [t.format(id=_ID_COLUMN[dialect], float=_FLOAT[dialect]).strip() for t in _TABLES]
    return tables + list(_INDEXES)
