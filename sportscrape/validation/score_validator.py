#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Score Validation

Validates live score updates before they can influence settlement.

Detects:
- Negative scores
- Scores above the sport's maximum, or differentials above its maximum
- Scores that decreased (unless the sport resets per period)
- Large single-update jumps (warning only)

Every update, valid or not, is appended to the score history.

Usage:
    validator = ScoreValidator(repository)
    outcome = validator.validate_and_process_score(
        event_id, "football", 2, 1, period="2H", minute=67, source="flashscore"
    )
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional

from ..db.repository import EventRepository, ScoreHistoryEntry
from ..errors import ValidationFailure

logger = logging.getLogger(__name__)

STABILITY_LOOKBACK = 10


@dataclass(frozen=True)
class SportScoreLimits:
    max_score: int
    max_difference: int
    allow_decrease: bool = False
    period_based: bool = False


SPORT_LIMITS: Dict[str, SportScoreLimits] = {
    "football": SportScoreLimits(15, 10),
    "soccer": SportScoreLimits(15, 10),
    "basketball": SportScoreLimits(200, 100),
    # Per set; new sets reset the score
    "tennis": SportScoreLimits(7, 7, allow_decrease=True, period_based=True),
    "volleyball": SportScoreLimits(35, 20, allow_decrease=True, period_based=True),
    "ice_hockey": SportScoreLimits(15, 12),
    "hockey": SportScoreLimits(15, 12),
    "american_football": SportScoreLimits(70, 60),
    "baseball": SportScoreLimits(30, 25),
    "rugby": SportScoreLimits(80, 60),
    "handball": SportScoreLimits(50, 30),
    # First innings can be high
    "cricket": SportScoreLimits(500, 400),
}

DEFAULT_LIMITS = SportScoreLimits(100, 50)

JUMP_THRESHOLDS = {"basketball": 20}
DEFAULT_JUMP_THRESHOLD = 5


def normalize_sport_slug(sport: str) -> str:
    return re.sub(r"[^a-z]", "_", (sport or "").lower())


def get_sport_limits(sport: str) -> SportScoreLimits:
    return SPORT_LIMITS.get(normalize_sport_slug(sport), DEFAULT_LIMITS)


@dataclass
class ScoreValidationResult:
    is_valid: bool
    reasons: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def should_flag(self) -> bool:
        return not self.is_valid


@dataclass
class ScoreProcessingResult:
    valid: bool
    flagged: bool
    validation: Optional[ScoreValidationResult] = None

    def raise_for_validation(self, event_id):
        if not self.valid:
            raise ValidationFailure(event_id, self.validation.reasons if self.validation else [])


class ScoreStability(NamedTuple):
    stable: bool
    change_count: int


def _is_score(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_score_update(
    sport: str,
    home_score: Optional[int],
    away_score: Optional[int],
    previous_home: Optional[int] = None,
    previous_away: Optional[int] = None,
) -> ScoreValidationResult:
    """
    Check a score update against the sport's limits and the previous score.

    Null scores (not started) always pass. Never raises.
    """
    if home_score is None or away_score is None:
        return ScoreValidationResult(True)

    reasons: List[str] = []
    warnings: List[str] = []

    for side, value in (("home", home_score), ("away", away_score)):
        if not _is_score(value):
            reasons.append(f"Non-numeric {side} score: {value!r}")
    if reasons:
        return ScoreValidationResult(False, reasons)

    limits = get_sport_limits(sport)

    if home_score < 0:
        reasons.append(f"Negative home score: {home_score}")
    if away_score < 0:
        reasons.append(f"Negative away score: {away_score}")

    if home_score > limits.max_score:
        reasons.append(f"Home score exceeds limit for {sport}: {home_score} > {limits.max_score}")
    if away_score > limits.max_score:
        reasons.append(f"Away score exceeds limit for {sport}: {away_score} > {limits.max_score}")

    difference = abs(home_score - away_score)
    if difference > limits.max_difference:
        reasons.append(f"Score difference exceeds limit for {sport}: {difference} > {limits.max_difference}")

    if _is_score(previous_home) and _is_score(previous_away):
        if not limits.allow_decrease:
            if home_score < previous_home:
                reasons.append(f"Home score decreased: {previous_home} -> {home_score}")
            if away_score < previous_away:
                reasons.append(f"Away score decreased: {previous_away} -> {away_score}")

        # Could be catch-up after a missed poll
        max_jump = JUMP_THRESHOLDS.get(normalize_sport_slug(sport), DEFAULT_JUMP_THRESHOLD)
        home_jump = home_score - previous_home
        away_jump = away_score - previous_away
        if home_jump > max_jump:
            warnings.append(f"Large home score jump: +{home_jump} in single update")
        if away_jump > max_jump:
            warnings.append(f"Large away score jump: +{away_jump} in single update")

    return ScoreValidationResult(not reasons, reasons, warnings)


class ScoreValidator:
    """Validates score updates and keeps the append-only score history."""

    def __init__(self, repository: EventRepository, clock: Callable[[], float] = time.time):
        self.repository = repository
        self._clock = clock

    def get_latest_score(self, event_id: str) -> Optional[ScoreHistoryEntry]:
        return self.repository.get_latest_score(event_id)

    def _baseline(self, event_id: str) -> Optional[ScoreHistoryEntry]:
        return self.repository.get_latest_valid_score(event_id)

    def flag_event_for_score_anomaly(self, event_id: str, reasons: List[str]) -> bool:
        changed = self.repository.flag_event(event_id, f"[SCORE] {'; '.join(reasons)}")
        if changed:
            logger.warning(f"Event {event_id} flagged for score anomaly: {'; '.join(reasons)}")
        return changed

    def validate_and_process_score(
        self,
        event_id: str,
        sport: str,
        home_score: Optional[int],
        away_score: Optional[int],
        period: Optional[str] = None,
        minute: Optional[int] = None,
        source: str = "unknown",
    ) -> ScoreProcessingResult:
        """
        Validate, record to history, and flag when invalid.

        Returns:
            valid / flagged pair; history is written either way
        """
        baseline = self._baseline(event_id)
        result = validate_score_update(
            sport,
            home_score,
            away_score,
            baseline.home_score if baseline else None,
            baseline.away_score if baseline else None,
        )
        for warning in result.warnings:
            logger.warning(f"Event {event_id}: {warning}")

        self.repository.record_score(ScoreHistoryEntry(
            event_id=event_id,
            home_score=home_score if _is_score(home_score) else None,
            away_score=away_score if _is_score(away_score) else None,
            period=period,
            minute=minute,
            source=source,
            is_valid=result.is_valid,
            recorded_at=self._clock(),
        ))

        if result.should_flag:
            self.flag_event_for_score_anomaly(event_id, result.reasons)
            return ScoreProcessingResult(valid=False, flagged=True, validation=result)
        return ScoreProcessingResult(valid=True, flagged=False, validation=result)

    def is_score_stable(self, event_id: str, window_minutes: float = 5) -> ScoreStability:
        """
        Count score transitions among the recent history entries inside the window.

        Fewer than two recent entries counts as stable.
        """
        recent = self.repository.get_recent_scores(event_id, limit=STABILITY_LOOKBACK)
        if len(recent) < 2:
            return ScoreStability(True, 0)

        cutoff = self._clock() - window_minutes * 60
        in_window = [entry for entry in recent if entry.recorded_at is not None and entry.recorded_at >= cutoff]

        changes = 0
        for current, previous in zip(in_window, in_window[1:]):
            if current.home_score != previous.home_score or current.away_score != previous.away_score:
                changes += 1
        return ScoreStability(changes == 0, changes)
