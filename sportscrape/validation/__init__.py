"""Validation - odds anomaly detection and live score validation"""

from .odds_anomaly import (
    OddsAnomalyResult,
    OddsProcessingResult,
    OddsValidator,
    OddsValues,
    PreviousOdds,
    Severity,
    detect_odds_anomalies,
)
from .score_validator import (
    ScoreProcessingResult,
    ScoreStability,
    ScoreValidationResult,
    ScoreValidator,
    get_sport_limits,
    validate_score_update,
)

__all__ = [
    'OddsAnomalyResult',
    'OddsProcessingResult',
    'OddsValidator',
    'OddsValues',
    'PreviousOdds',
    'ScoreProcessingResult',
    'ScoreStability',
    'ScoreValidationResult',
    'ScoreValidator',
    'Severity',
    'detect_odds_anomalies',
    'get_sport_limits',
    'validate_score_update',
]
