#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Team Resolver

Maps raw team names from any source onto one stable team id.

Flow for find_or_create_team(name, source):
1. Exact (alias, source) match, cache then storage -> return
2. Case-insensitive match on the normalized canonical name -> learn alias
3. Fuzzy match (>= 0.85) against the cached team list -> learn alias
4. No match -> create the team (normalized name) plus an alias for the raw name

Caches are advisory; the (team_id, alias, source) unique key in storage is
what prevents duplicate aliases.

Usage:
    resolver = TeamResolver(repository)
    home_id = resolver.find_or_create_team("Arsenal FC", "flashscore")
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..db.repository import Team, TeamRepository
from .normalizer import combined_similarity, normalize_team_name

logger = logging.getLogger(__name__)

ALIAS_CACHE_MAX_SIZE = 1000
TEAM_CACHE_TTL_SECONDS = 5 * 60
FUZZY_MATCH_THRESHOLD = 0.85
MANUAL_SOURCE = "manual"


@dataclass
class FuzzyMatch:
    team_id: int
    similarity: float


class TeamResolver:
    """Team lookup/creation with a bounded alias cache and a TTL'd team list."""

    def __init__(
        self,
        repository: TeamRepository,
        clock: Callable[[], float] = time.time,
        alias_cache_size: int = ALIAS_CACHE_MAX_SIZE,
        team_cache_ttl: float = TEAM_CACHE_TTL_SECONDS,
        fuzzy_threshold: float = FUZZY_MATCH_THRESHOLD,
    ):
        self.repository = repository
        self._clock = clock
        self.alias_cache_size = alias_cache_size
        self.team_cache_ttl = team_cache_ttl
        self.fuzzy_threshold = fuzzy_threshold

        self._lock = threading.RLock()
        self._alias_cache: "OrderedDict[str, Optional[int]]" = OrderedDict()
        self._teams: List[Team] = []
        self._teams_refreshed_at = 0.0

    # ── Caches ───────────────────────────────────────────────

    @staticmethod
    def _alias_key(alias: str, source: str) -> str:
        return f"{alias.lower()}:{source}"

    def _cache_alias(self, alias: str, source: str, team_id: Optional[int]) -> None:
        key = self._alias_key(alias, source)
        if key not in self._alias_cache and len(self._alias_cache) >= self.alias_cache_size:
            self._alias_cache.popitem(last=False)
        self._alias_cache[key] = team_id

    def invalidate_caches(self) -> None:
        with self._lock:
            self._alias_cache.clear()
            self._teams = []
            self._teams_refreshed_at = 0.0

    def _cached_teams(self) -> List[Team]:
        now = self._clock()
        if not self._teams or now - self._teams_refreshed_at > self.team_cache_ttl:
            self._teams = self.repository.list_teams()
            self._teams_refreshed_at = now
        return self._teams

    # ── Lookups ──────────────────────────────────────────────

    def find_team_by_alias(self, alias: str, source: str) -> Optional[int]:
        """Exact alias lookup. Misses are cached too."""
        with self._lock:
            key = self._alias_key(alias, source)
            if key in self._alias_cache:
                return self._alias_cache[key]

            team_id = self.repository.find_team_by_alias(alias, source)
            self._cache_alias(alias, source, team_id)
            return team_id

    def fuzzy_match_team(self, name: str, threshold: Optional[float] = None) -> Optional[FuzzyMatch]:
        threshold = self.fuzzy_threshold if threshold is None else threshold
        normalized = normalize_team_name(name)

        best: Optional[FuzzyMatch] = None
        with self._lock:
            teams = self._cached_teams()
        for team in teams:
            similarity = combined_similarity(normalized, team.canonical_name)
            if similarity >= threshold and (best is None or similarity > best.similarity):
                best = FuzzyMatch(team.id, similarity)
        return best

    def _learn_alias(self, team_id: int, alias: str, source: str) -> None:
        if self.repository.insert_alias(team_id, alias, source):
            logger.info(f"Learned alias '{alias}' ({source}) for team {team_id}")
        self._cache_alias(alias, source, team_id)

    # ── Resolution ───────────────────────────────────────────

    def find_or_create_team(self, name: str, source: str) -> int:
        """
        Resolve a raw team name to a team id, creating the team when nothing matches.

        Raises:
            ValueError: blank name
            StorageUnavailable: storage failure
        """
        if not name or not name.strip():
            raise ValueError("Team name must not be blank")

        with self._lock:
            existing = self.find_team_by_alias(name, source)
            if existing is not None:
                return existing

            normalized = normalize_team_name(name)

            exact = self.repository.find_team_by_name(normalized)
            if exact is not None:
                self._learn_alias(exact, name, source)
                return exact

            match = self.fuzzy_match_team(name)
            if match is not None:
                logger.info(f"Fuzzy matched '{name}' to team {match.team_id} ({match.similarity:.2f})")
                self._learn_alias(match.team_id, name, source)
                return match.team_id

            team_id = self.repository.insert_team(normalized or name.strip())
            self.repository.insert_alias(team_id, name, source)
            self.invalidate_caches()
            self._cache_alias(name, source, team_id)
            logger.info(f"Created team {team_id} '{normalized}' from {source} name '{name}'")
            return team_id

    def bulk_find_or_create_teams(self, names: Iterable[Tuple[str, str]]) -> Dict[str, int]:
        """
        Resolve (name, source) pairs; cache hits first, then one by one.

        Returns:
            Dict of raw name -> team id
        """
        pending = list(names)
        results: Dict[str, int] = {}

        with self._lock:
            for name, source in pending:
                cached = self._alias_cache.get(self._alias_key(name, source))
                if cached is not None:
                    results[name] = cached

        for name, source in pending:
            if name not in results:
                results[name] = self.find_or_create_team(name, source)
        return results

    # ── Admin ────────────────────────────────────────────────

    def add_manual_alias(self, team_id: int, alias: str, source: str = MANUAL_SOURCE) -> bool:
        with self._lock:
            created = self.repository.insert_alias(team_id, alias, source)
            self._cache_alias(alias, source, team_id)
        return created

    def merge_teams(self, target_team_id: int, source_team_id: int) -> int:
        """Move every alias of source_team_id onto target_team_id."""
        if target_team_id == source_team_id:
            raise ValueError("Cannot merge a team into itself")

        with self._lock:
            moved = self.repository.reassign_aliases(target_team_id, source_team_id)
            self.invalidate_caches()
        logger.info(f"Merged team {source_team_id} into {target_team_id} ({moved} alias(es) moved)")
        return moved

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "alias_cache_size": len(self._alias_cache),
                "team_cache_size": len(self._teams),
            }
