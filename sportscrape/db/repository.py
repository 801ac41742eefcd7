"""
Narrow repository interfaces for team resolution and the audit trail.

The core only ever needs these operations; concrete storage engines
implement them on top of SqlRepository. Every driver error is wrapped in
StorageUnavailable and propagates to the caller.
"""

import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)


@dataclass
class Team:
    id: int
    canonical_name: str


@dataclass
class OddsHistoryEntry:
    event_id: str
    market_type: str
    outcome_name: str
    previous_odds: Optional[float]
    new_odds: float
    change_percent: Optional[str]
    source: str
    is_flagged: bool
    recorded_at: Optional[float] = None


@dataclass
class ScoreHistoryEntry:
    event_id: str
    home_score: Optional[int]
    away_score: Optional[int]
    period: Optional[str]
    minute: Optional[int]
    source: str
    is_valid: bool = True
    recorded_at: Optional[float] = None


class TeamRepository(ABC):
    """Team and alias storage used by the team resolver."""

    @abstractmethod
    def find_team_by_alias(self, alias: str, source: str) -> Optional[int]:
        """Exact (alias, source) lookup."""

    @abstractmethod
    def find_team_by_name(self, name: str) -> Optional[int]:
        """Case-insensitive exact match on canonical name."""

    @abstractmethod
    def list_teams(self) -> List[Team]:
        ...

    @abstractmethod
    def insert_team(self, canonical_name: str) -> int:
        ...

    @abstractmethod
    def insert_alias(self, team_id: int, alias: str, source: str) -> bool:
        """Idempotent insert; returns False when the alias already existed."""

    @abstractmethod
    def reassign_aliases(self, target_team_id: int, source_team_id: int) -> int:
        """Move every alias of source_team_id onto target_team_id."""


class EventRepository(ABC):
    """Event flags and the append-only odds/score history."""

    @abstractmethod
    def flag_event(self, event_id: str, reason: str) -> bool:
        """Idempotent flag; returns False when the same reason was already stored."""

    @abstractmethod
    def get_event_flag(self, event_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def record_odds_history(self, entry: OddsHistoryEntry) -> None:
        ...

    @abstractmethod
    def list_odds_history(self, event_id: str) -> List[OddsHistoryEntry]:
        ...

    @abstractmethod
    def record_score(self, entry: ScoreHistoryEntry) -> None:
        ...

    @abstractmethod
    def get_recent_scores(self, event_id: str, limit: int = 10) -> List[ScoreHistoryEntry]:
        """Newest first."""

    def get_latest_score(self, event_id: str) -> Optional[ScoreHistoryEntry]:
        recent = self.get_recent_scores(event_id, limit=1)
        return recent[0] if recent else None

    @abstractmethod
    def get_latest_valid_score(self, event_id: str) -> Optional[ScoreHistoryEntry]:
        """Newest valid entry carrying both scores, however far back."""


class SqlRepository(TeamRepository, EventRepository):
    """
    Shared SQL for DB-API drivers.

    Subclasses MUST provide:
        PLACEHOLDER = "?"              # driver paramstyle marker
        DRIVER_ERRORS = (sqlite3.Error,)
        cursor()                       # context manager with commit/rollback
    """

    PLACEHOLDER: str = "?"
    DRIVER_ERRORS: Tuple[type, ...] = ()

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    # ── Helpers ──────────────────────────────────────────────

    @abstractmethod
    def cursor(self) -> Iterator:
        """Context manager yielding a DB-API cursor; commits on success, rolls back on error."""

    def close(self) -> None:
        pass

    def _sql(self, statement: str) -> str:
        if self.PLACEHOLDER == "?":
            return statement
        return statement.replace("?", self.PLACEHOLDER)

    @contextmanager
    def _guard(self, operation: str):
        try:
            yield
        except self.DRIVER_ERRORS as e:
            logger.error(f"Storage failure during {operation}: {e}")
            raise StorageUnavailable(operation, e) from e

    def _execute(self, operation: str, statement: str, params: tuple = ()):
        with self._guard(operation), self.cursor() as cur:
            cur.execute(self._sql(statement), params)
            return cur.rowcount

    def _fetchall(self, operation: str, statement: str, params: tuple = ()) -> list:
        with self._guard(operation), self.cursor() as cur:
            cur.execute(self._sql(statement), params)
            return cur.fetchall()

    def _fetchone(self, operation: str, statement: str, params: tuple = ()):
        with self._guard(operation), self.cursor() as cur:
            cur.execute(self._sql(statement), params)
            return cur.fetchone()

    # ── Teams ────────────────────────────────────────────────

    def find_team_by_alias(self, alias: str, source: str) -> Optional[int]:
        row = self._fetchone(
            "find_team_by_alias",
            "SELECT team_id FROM team_aliases WHERE alias = ? AND source = ? ORDER BY id LIMIT 1",
            (alias, source),
        )
        return row[0] if row else None

    def find_team_by_name(self, name: str) -> Optional[int]:
        row = self._fetchone(
            "find_team_by_name",
            "SELECT id FROM teams WHERE LOWER(canonical_name) = LOWER(?) ORDER BY id LIMIT 1",
            (name,),
        )
        return row[0] if row else None

    def list_teams(self) -> List[Team]:
        rows = self._fetchall("list_teams", "SELECT id, canonical_name FROM teams ORDER BY id")
        return [Team(id=row[0], canonical_name=row[1]) for row in rows]

    def insert_team(self, canonical_name: str) -> int:
        rows = self._fetchall(
            "insert_team",
            "INSERT INTO teams (canonical_name, created_at) VALUES (?, ?) RETURNING id",
            (canonical_name, self._clock()),
        )
        return rows[0][0]

    def insert_alias(self, team_id: int, alias: str, source: str) -> bool:
        inserted = self._execute(
            "insert_alias",
            "INSERT INTO team_aliases (team_id, alias, source, created_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (team_id, alias, source) DO NOTHING",
            (team_id, alias, source, self._clock()),
        )
        return inserted == 1

    def reassign_aliases(self, target_team_id: int, source_team_id: int) -> int:
        with self._guard("reassign_aliases"), self.cursor() as cur:
            # Drop aliases the target already owns so the unique key holds
            cur.execute(self._sql(
                "DELETE FROM team_aliases WHERE team_id = ? AND EXISTS ("
                "SELECT 1 FROM team_aliases t WHERE t.team_id = ? "
                "AND t.alias = team_aliases.alias AND t.source = team_aliases.source)"
            ), (source_team_id, target_team_id))
            duplicates = cur.rowcount
            cur.execute(
                self._sql("UPDATE team_aliases SET team_id = ? WHERE team_id = ?"),
                (target_team_id, source_team_id),
            )
            moved = cur.rowcount
        logger.info(
            f"Reassigned {moved} alias(es) from team {source_team_id} to {target_team_id} "
            f"({duplicates} duplicate(s) dropped)"
        )
        return moved

    # ── Events ───────────────────────────────────────────────

    def flag_event(self, event_id: str, reason: str) -> bool:
        changed = self._execute(
            "flag_event",
            "INSERT INTO event_flags (event_id, reason, flagged_at) VALUES (?, ?, ?) "
            "ON CONFLICT (event_id) DO UPDATE SET reason = excluded.reason, flagged_at = excluded.flagged_at "
            "WHERE event_flags.reason <> excluded.reason",
            (str(event_id), reason, self._clock()),
        )
        return changed == 1

    def get_event_flag(self, event_id: str) -> Optional[str]:
        row = self._fetchone("get_event_flag", "SELECT reason FROM event_flags WHERE event_id = ?", (str(event_id),))
        return row[0] if row else None

    def record_odds_history(self, entry: OddsHistoryEntry) -> None:
        self._execute(
            "record_odds_history",
            "INSERT INTO odds_history (event_id, market_type, outcome_name, previous_odds, new_odds, "
            "change_percent, source, is_flagged, recorded_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(entry.event_id), entry.market_type, entry.outcome_name, entry.previous_odds,
                entry.new_odds, entry.change_percent, entry.source, 1 if entry.is_flagged else 0,
                entry.recorded_at if entry.recorded_at is not None else self._clock(),
            ),
        )

    def list_odds_history(self, event_id: str) -> List[OddsHistoryEntry]:
        rows = self._fetchall(
            "list_odds_history",
            "SELECT event_id, market_type, outcome_name, previous_odds, new_odds, change_percent, "
            "source, is_flagged, recorded_at FROM odds_history WHERE event_id = ? ORDER BY id",
            (str(event_id),),
        )
        return [
            OddsHistoryEntry(row[0], row[1], row[2], row[3], row[4], row[5], row[6], bool(row[7]), row[8])
            for row in rows
        ]

    def record_score(self, entry: ScoreHistoryEntry) -> None:
        self._execute(
            "record_score",
            "INSERT INTO score_history (event_id, home_score, away_score, period, minute, source, "
            "is_valid, recorded_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(entry.event_id), entry.home_score, entry.away_score, entry.period, entry.minute,
                entry.source, 1 if entry.is_valid else 0,
                entry.recorded_at if entry.recorded_at is not None else self._clock(),
            ),
        )

    def get_recent_scores(self, event_id: str, limit: int = 10) -> List[ScoreHistoryEntry]:
        rows = self._fetchall(
            "get_recent_scores",
            "SELECT event_id, home_score, away_score, period, minute, source, is_valid, recorded_at "
            "FROM score_history WHERE event_id = ? ORDER BY recorded_at DESC, id DESC LIMIT ?",
            (str(event_id), limit),
        )
        return [
            ScoreHistoryEntry(row[0], row[1], row[2], row[3], row[4], row[5], bool(row[6]), row[7])
            for row in rows
        ]

    def get_latest_valid_score(self, event_id: str) -> Optional[ScoreHistoryEntry]:
        row = self._fetchone(
            "get_latest_valid_score",
            "SELECT event_id, home_score, away_score, period, minute, source, is_valid, recorded_at "
            "FROM score_history WHERE event_id = ? AND is_valid = 1 "
            "AND home_score IS NOT NULL AND away_score IS NOT NULL "
            "ORDER BY recorded_at DESC, id DESC LIMIT 1",
            (str(event_id),),
        )
        if row is None:
            return None
        return ScoreHistoryEntry(row[0], row[1], row[2], row[3], row[4], row[5], bool(row[6]), row[7])
