#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Team Name Normalization

Generic, sport-agnostic normalization and similarity scoring for team and
competitor names. Patterns only; no team-specific hardcoding.

Usage:
    from sportscrape.teams.normalizer import normalize_team_name, combined_similarity

    normalize_team_name("FC Barcelona")                     # "Barcelona"
    combined_similarity("Manchester United", "Man United")  # 0..1
"""

import re
from typing import List, Pattern, Set, Tuple

from rapidfuzz.distance import Levenshtein

# Applied in order
GENERIC_PATTERNS: List[Tuple[Pattern, str]] = [
    # Club prefixes across languages/countries
    (re.compile(
        r"^(FC|AC|AS|SS|SC|SK|FK|NK|AEK|CD|CF|RC|CA|AD|UD|SD|US|SV|TSV|VfB|VfL|FSV|SpVgg|BSC|BVB|RCD|RSC)\s+",
        re.IGNORECASE,
    ), ""),
    (re.compile(r"\s+(FC|CF|SC|AFC|BC|HC|KC|CC|RFC|SFC)$", re.IGNORECASE), ""),
    # Country/region qualifiers
    (re.compile(r"\s*\([^)]+\)\s*$"), ""),
    (re.compile(r"\s*\[[^\]]+\]\s*$"), ""),
    (re.compile(r"^The\s+", re.IGNORECASE), ""),
    # "Team Name 2024"
    (re.compile(r"\s+\d{4}$"), ""),
    (re.compile(r"\s+"), " "),
]

LENGTH_DIFFERENCE_CUTOFF = 0.5
MIN_TOKEN_LENGTH = 3
TOKEN_WEIGHT_PER_WORD = 0.15
MAX_TOKEN_WEIGHT = 0.6

_APOSTROPHES = re.compile(r"['‘’`]")
_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")


def normalize_team_name(name: str) -> str:
    """Strip generic prefixes, suffixes, qualifiers and year tokens."""
    normalized = (name or "").strip()
    for pattern, replacement in GENERIC_PATTERNS:
        normalized = pattern.sub(replacement, normalized)
    return normalized.strip()


def create_search_key(name: str) -> str:
    """Aggressive lower-case key used only for comparison."""
    key = (name or "").lower()
    key = _APOSTROPHES.sub("", key)
    key = _NON_WORD.sub("", key)
    return _WHITESPACE.sub(" ", key).strip()


def levenshtein_similarity(first: str, second: str) -> float:
    """1 - edit distance / longer length, on search keys."""
    s1, s2 = create_search_key(first), create_search_key(second)
    if s1 == s2:
        return 1.0

    longest = max(len(s1), len(s2))
    if abs(len(s1) - len(s2)) > longest * LENGTH_DIFFERENCE_CUTOFF:
        return 0.0

    return 1.0 - Levenshtein.distance(s1, s2) / longest


def _tokens(name: str) -> Set[str]:
    return {token for token in create_search_key(name).split(" ") if len(token) >= MIN_TOKEN_LENGTH}


def token_similarity(first: str, second: str) -> float:
    """Jaccard similarity over tokens longer than two characters. Order-insensitive."""
    tokens1, tokens2 = _tokens(first), _tokens(second)
    if not tokens1 or not tokens2:
        return 0.0
    return len(tokens1 & tokens2) / len(tokens1 | tokens2)


def combined_similarity(first: str, second: str) -> float:
    """
    Weighted blend of Levenshtein and token similarity.

    Multi-word names lean on token overlap (weight 0.15 per word, capped
    at 0.6) so reordered names still match.
    """
    first, second = first or "", second or ""
    word_count = max(len(first.split(" ")), len(second.split(" ")))
    token_weight = min(MAX_TOKEN_WEIGHT, word_count * TOKEN_WEIGHT_PER_WORD)
    return (
        levenshtein_similarity(first, second) * (1 - token_weight)
        + token_similarity(first, second) * token_weight
    )
