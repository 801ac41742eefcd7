#!/usr/bin/env python3
"""
Tests for team name normalization, similarity and cached team resolution.
"""

import pytest

from sportscrape.teams.normalizer import (
    combined_similarity,
    create_search_key,
    levenshtein_similarity,
    normalize_team_name,
    token_similarity,
)
from sportscrape.teams.resolver import TEAM_CACHE_TTL_SECONDS, TeamResolver


def _count(repository, sql, params=()):
    with repository.cursor() as cur:
        cur.execute(sql, params)
        return cur.fetchone()[0]


# ---------------------------------------------------------------------------
# Normalization / similarity
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw, expected", [
    ("FC Barcelona", "Barcelona"),
    ("Arsenal FC", "Arsenal"),
    ("The Reds (ENG)", "Reds"),
    ("Bayern München [GER]", "Bayern München"),
    ("Team Name 2024", "Team Name"),
    ("  Real   Madrid  ", "Real Madrid"),
    ("VfB Stuttgart", "Stuttgart"),
])
def test_normalize_team_name(raw, expected):
    assert normalize_team_name(raw) == expected


def test_normalize_never_raises_on_empty():
    assert normalize_team_name("") == ""
    assert normalize_team_name(None) == ""


def test_search_key():
    assert create_search_key("St. Mirren's  ") == "st mirrens"


def test_levenshtein_short_circuits_on_length():
    assert levenshtein_similarity("Ajax", "Manchester United") == 0.0
    assert levenshtein_similarity("Chelsea", "chelsea") == 1.0


def test_token_similarity_ignores_short_tokens_and_order():
    assert token_similarity("FC Porto", "Porto") == 1.0
    assert token_similarity("Manchester United", "United Manchester") == 1.0


def test_combined_similarity_favours_reordering_for_multi_word_names():
    reordered = combined_similarity("Manchester United", "United Manchester")
    unrelated = combined_similarity("Manchester United", "Liverpool")
    assert reordered > unrelated
    assert combined_similarity("Nott'm Forest", "Nottm Forest") == 1.0


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

@pytest.fixture
def resolver(repository, clock):
    return TeamResolver(repository, clock=clock)


def test_same_team_across_sources(resolver, repository):
    """Normalized-name match learns an alias for the second source."""
    first = resolver.find_or_create_team("Arsenal FC", "flashscore")
    second = resolver.find_or_create_team("Arsenal", "oddschecker")

    assert first == second
    assert _count(repository, "SELECT COUNT(*) FROM teams") == 1
    assert _count(repository, "SELECT COUNT(*) FROM team_aliases") == 2


def test_repeat_lookup_creates_no_duplicate_alias(resolver, repository):
    first = resolver.find_or_create_team("Arsenal FC", "flashscore")
    resolver.invalidate_caches()
    assert resolver.find_or_create_team("Arsenal FC", "flashscore") == first
    assert resolver.find_or_create_team("Arsenal FC", "flashscore") == first
    assert _count(repository, "SELECT COUNT(*) FROM team_aliases") == 1


def test_new_team_uses_normalized_canonical_name(resolver, repository):
    team_id = resolver.find_or_create_team("FC Barcelona", "flashscore")
    teams = repository.list_teams()
    assert [(t.id, t.canonical_name) for t in teams] == [(team_id, "Barcelona")]
    assert repository.find_team_by_alias("FC Barcelona", "flashscore") == team_id


def test_fuzzy_match_learns_alias(resolver, repository):
    team_id = resolver.find_or_create_team("Nottm Forest", "flashscore")
    assert resolver.find_or_create_team("Nott'm Forest", "oddschecker") == team_id
    assert repository.find_team_by_alias("Nott'm Forest", "oddschecker") == team_id


def test_dissimilar_names_create_separate_teams(resolver):
    assert resolver.find_or_create_team("Chelsea", "flashscore") != resolver.find_or_create_team("Everton", "flashscore")


def test_blank_name_is_rejected(resolver):
    with pytest.raises(ValueError):
        resolver.find_or_create_team("   ", "flashscore")


def test_team_list_cache_has_ttl(resolver, repository, clock):
    """Teams inserted behind the resolver's back appear once the TTL lapses."""
    resolver.find_or_create_team("Chelsea", "flashscore")
    assert resolver.fuzzy_match_team("Chelsea").similarity == 1.0

    forest = repository.insert_team("Nottm Forest")
    assert resolver.fuzzy_match_team("Nott'm Forest") is None

    clock.advance(TEAM_CACHE_TTL_SECONDS + 1)
    match = resolver.fuzzy_match_team("Nott'm Forest")
    assert match.team_id == forest


def test_alias_cache_is_bounded(repository, clock):
    resolver = TeamResolver(repository, clock=clock, alias_cache_size=2)
    for name in ("Ghost One", "Ghost Two", "Ghost Three"):
        assert resolver.find_team_by_alias(name, "flashscore") is None
    assert resolver.get_stats()["alias_cache_size"] == 2


def test_bulk_resolution(resolver):
    result = resolver.bulk_find_or_create_teams([
        ("Arsenal FC", "flashscore"),
        ("Chelsea", "flashscore"),
        ("Arsenal", "oddschecker"),
    ])
    assert set(result) == {"Arsenal FC", "Chelsea", "Arsenal"}
    assert result["Arsenal FC"] == result["Arsenal"]
    assert result["Chelsea"] != result["Arsenal"]

    # Second pass is served from the alias cache
    assert resolver.bulk_find_or_create_teams([("Chelsea", "flashscore")]) == {"Chelsea": result["Chelsea"]}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

def test_manual_alias(resolver):
    team_id = resolver.find_or_create_team("Manchester United", "flashscore")
    assert resolver.add_manual_alias(team_id, "MUFC")
    assert not resolver.add_manual_alias(team_id, "MUFC")
    assert resolver.find_team_by_alias("MUFC", "manual") == team_id


def test_merge_moves_aliases_and_drops_duplicates(resolver, repository):
    target = resolver.find_or_create_team("Manchester United", "flashscore")
    duplicate = resolver.find_or_create_team("Man Utd", "oddschecker")
    assert target != duplicate

    resolver.add_manual_alias(target, "MUFC")
    resolver.add_manual_alias(duplicate, "MUFC")

    assert resolver.merge_teams(target, duplicate) == 1
    assert resolver.find_or_create_team("Man Utd", "oddschecker") == target
    assert _count(repository, "SELECT COUNT(*) FROM team_aliases WHERE alias = ?", ("MUFC",)) == 1
    assert _count(repository, "SELECT COUNT(*) FROM team_aliases WHERE team_id = ?", (duplicate,)) == 0


def test_merge_into_itself_is_rejected(resolver):
    team_id = resolver.find_or_create_team("Chelsea", "flashscore")
    with pytest.raises(ValueError):
        resolver.merge_teams(team_id, team_id)
