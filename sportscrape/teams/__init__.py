"""Teams - name normalization and cached team resolution"""

from .normalizer import (
    combined_similarity,
    create_search_key,
    levenshtein_similarity,
    normalize_team_name,
    token_similarity,
)
from .resolver import FuzzyMatch, TeamResolver

__all__ = [
    'FuzzyMatch',
    'TeamResolver',
    'combined_similarity',
    'create_search_key',
    'levenshtein_similarity',
    'normalize_team_name',
    'token_similarity',
]
