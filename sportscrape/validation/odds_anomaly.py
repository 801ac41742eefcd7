#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Odds Anomaly Detection

Detects suspicious odds patterns that usually mean a scraper returned bad
data (or, rarely, a manipulated market) and holds them back from
money-bearing predictions.

Checks (severity only escalates: critical > high > medium > low):
1. Any odds below 1.01 (critical) or above 50.0 (high)
2. Sum of implied probabilities below 50% (critical)
3. Any outcome moving more than 50% within 5 minutes (high)
4. All outcomes within 15% of each other (high)
5. Favourite flipping sides with a 2x swing (high)

Usage:
    validator = OddsValidator(repository)
    outcome = validator.validate_and_process_odds(
        event_id,
        OddsValues(home_win=2.1, draw=3.4, away_win=3.6, source="oddsportal"),
        previous,
    )
    if outcome.valid:
        apply_odds(...)
"""

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..db.repository import EventRepository, OddsHistoryEntry
from ..errors import CriticalDataAnomaly, ReviewableAnomaly

logger = logging.getLogger(__name__)

MIN_ODDS = 1.01
MAX_ODDS = 50.0
MIN_IMPLIED_PROBABILITY = 0.50
MAX_CHANGE_PERCENT = 0.50
CHANGE_TIME_WINDOW_SECONDS = 5 * 60
SIMILAR_ODDS_THRESHOLD = 0.15
INVERSION_FACTOR = 0.5
HISTORY_CHANGE_THRESHOLD = 0.05
MARKET_TYPE = "match_winner"

OUTCOMES = (
    ("home_win", "Home Win", "Home"),
    ("draw", "Draw", "Draw"),
    ("away_win", "Away Win", "Away"),
)


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}


@dataclass
class OddsValues:
    """A scraped 1X2 odds update. draw is None for two-way markets."""
    home_win: Optional[float] = None
    draw: Optional[float] = None
    away_win: Optional[float] = None
    source: str = "unknown"


@dataclass
class PreviousOdds:
    home_win: Optional[float] = None
    draw: Optional[float] = None
    away_win: Optional[float] = None
    updated_at: Optional[float] = None


@dataclass
class OddsAnomalyResult:
    is_anomalous: bool
    reasons: List[str] = field(default_factory=list)
    severity: Severity = Severity.LOW


@dataclass
class OddsProcessingResult:
    valid: bool
    flagged: bool
    anomaly: Optional[OddsAnomalyResult] = None

    def raise_for_anomaly(self, event_id, strict: bool = False):
        """
        Raise CriticalDataAnomaly for a rejected update; with strict=True
        also raise ReviewableAnomaly for a flagged-but-applied one.
        """
        reasons = self.anomaly.reasons if self.anomaly else []
        if not self.valid:
            raise CriticalDataAnomaly(event_id, reasons)
        if strict and self.flagged:
            raise ReviewableAnomaly(event_id, reasons)


def implied_probability(odds: float) -> float:
    return 1 / odds


def percent_change(old_value: float, new_value: float) -> float:
    """Absolute relative change; a zero baseline counts as 100% if anything appeared."""
    if old_value == 0:
        return 1.0 if new_value > 0 else 0.0
    return abs(new_value - old_value) / old_value


def _usable(value) -> bool:
    """A finite positive number. Anything else is treated as corrupted."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def _escalate(current: Severity, new: Severity) -> Severity:
    return new if new.rank > current.rank else current


def _fmt(value) -> str:
    return f"{value:g}" if isinstance(value, (int, float)) and not isinstance(value, bool) else repr(value)


def check_similar_odds(odds: OddsValues) -> bool:
    """True when every present outcome sits within 15% of the lowest."""
    values = [v for v in (odds.home_win, odds.draw, odds.away_win) if _usable(v)]
    if len(values) < 2:
        return False
    low, high = min(values), max(values)
    return (high - low) / low < SIMILAR_ODDS_THRESHOLD


def check_inverted_odds(new_odds: OddsValues, previous: Optional[PreviousOdds]) -> bool:
    """True when the favourite flipped sides with a more than 2x swing."""
    if previous is None or not _usable(previous.home_win) or not _usable(previous.away_win):
        return False
    if not _usable(new_odds.home_win) or not _usable(new_odds.away_win):
        return False

    was_home_favored = previous.home_win < previous.away_win
    now_away_heavily_favored = new_odds.away_win < new_odds.home_win * INVERSION_FACTOR
    was_away_favored = previous.away_win < previous.home_win
    now_home_heavily_favored = new_odds.home_win < new_odds.away_win * INVERSION_FACTOR

    return (was_home_favored and now_away_heavily_favored) or (was_away_favored and now_home_heavily_favored)


def detect_odds_anomalies(
    new_odds: OddsValues,
    previous: Optional[PreviousOdds],
    now: Optional[float] = None,
) -> OddsAnomalyResult:
    """
    Run every anomaly check against an odds update.

    Never raises. Non-numeric, zero, negative or NaN odds count as below the
    minimum and make the result critical.
    """
    now = time.time() if now is None else now
    reasons: List[str] = []
    severity = Severity.LOW

    present = [v for v in (new_odds.home_win, new_odds.draw, new_odds.away_win) if v is not None]

    # Check 1: extreme values
    for odds in present:
        if not _usable(odds) or odds < MIN_ODDS:
            reasons.append(f"Odds below minimum ({_fmt(odds)} < {MIN_ODDS})")
            severity = Severity.CRITICAL
        elif odds > MAX_ODDS:
            reasons.append(f"Extreme high odds detected ({_fmt(odds)} > {MAX_ODDS})")
            severity = _escalate(severity, Severity.HIGH)

    # Check 2: implied probability
    usable = [v for v in present if _usable(v)]
    if usable:
        total_implied = sum(implied_probability(v) for v in usable)
        if total_implied < MIN_IMPLIED_PROBABILITY:
            reasons.append(
                f"Implied probability too low ({total_implied * 100:.1f}%) - possible arbitrage opportunity"
            )
            severity = Severity.CRITICAL

    # Check 3: rapid change
    if previous is not None and previous.updated_at is not None:
        elapsed = now - previous.updated_at
        if elapsed < CHANGE_TIME_WINDOW_SECONDS:
            changes = []
            for attr, _, label in OUTCOMES:
                new_value, old_value = getattr(new_odds, attr), getattr(previous, attr)
                if _usable(new_value) and _usable(old_value):
                    change = percent_change(old_value, new_value)
                    if change > MAX_CHANGE_PERCENT:
                        changes.append(f"{label} odds changed {change * 100:.0f}%")
            if changes:
                reasons.append(f"Rapid odds change in {round(elapsed)}s: {', '.join(changes)}")
                severity = _escalate(severity, Severity.HIGH)

    # Check 4: suspiciously similar outcomes
    if check_similar_odds(new_odds):
        reasons.append(
            f"All outcomes have suspiciously similar odds (within {SIMILAR_ODDS_THRESHOLD * 100:.0f}%)"
        )
        severity = _escalate(severity, Severity.HIGH)

    # Check 5: inverted favourite
    if check_inverted_odds(new_odds, previous):
        reasons.append("Home/away odds inverted dramatically from previous values")
        severity = _escalate(severity, Severity.HIGH)

    return OddsAnomalyResult(is_anomalous=bool(reasons), reasons=reasons, severity=severity)


def format_flag_reason(reasons: List[str], severity: Severity) -> str:
    return f"[{severity.value.upper()}] Odds anomaly: {'; '.join(reasons)}"


def signed_change(old_value: float, new_value: float) -> Tuple[float, str]:
    """Relative change magnitude plus a signed display string such as "+12%"."""
    change = percent_change(old_value, new_value)
    sign = "-" if new_value < old_value else "+"
    return change, f"{sign}{change * 100:.0f}%"


class OddsValidator:
    """
    Validates odds updates and writes flags and history through the repository.

    Storage failures propagate as StorageUnavailable.
    """

    def __init__(self, repository: EventRepository, clock: Callable[[], float] = time.time):
        self.repository = repository
        self._clock = clock

    def flag_event_for_review(self, event_id: str, reasons: List[str], severity: Severity) -> bool:
        changed = self.repository.flag_event(event_id, format_flag_reason(reasons, severity))
        if changed:
            logger.warning(f"Event {event_id} flagged for odds anomaly [{severity.value}]: {'; '.join(reasons)}")
        return changed

    def _record_history(self, event_id: str, new_odds: OddsValues, previous: Optional[PreviousOdds],
                        flagged: bool) -> int:
        recorded = 0
        for attr, outcome_name, _ in OUTCOMES:
            new_value = getattr(new_odds, attr)
            if not _usable(new_value):
                continue
            old_value = getattr(previous, attr) if previous is not None else None

            if _usable(old_value):
                change, change_text = signed_change(old_value, new_value)
                if change <= HISTORY_CHANGE_THRESHOLD:
                    continue
            elif flagged:
                old_value, change_text = None, None
            else:
                continue

            self.repository.record_odds_history(OddsHistoryEntry(
                event_id=event_id,
                market_type=MARKET_TYPE,
                outcome_name=outcome_name,
                previous_odds=old_value,
                new_odds=new_value,
                change_percent=change_text,
                source=new_odds.source,
                is_flagged=flagged,
                recorded_at=self._clock(),
            ))
            recorded += 1
        return recorded

    def validate_and_process_odds(
        self,
        event_id: str,
        new_odds: OddsValues,
        previous: Optional[PreviousOdds] = None,
    ) -> OddsProcessingResult:
        """
        Decide whether an odds update may be applied.

        Returns:
            valid=False, flagged=True  -> critical anomaly, do not apply
            valid=True,  flagged=True  -> apply, but held for human review
            valid=True,  flagged=False -> clean update
        """
        anomaly = detect_odds_anomalies(new_odds, previous, now=self._clock())

        if anomaly.is_anomalous:
            self.flag_event_for_review(event_id, anomaly.reasons, anomaly.severity)
            self._record_history(event_id, new_odds, previous, flagged=True)

            if anomaly.severity is Severity.CRITICAL:
                logger.warning(f"Critical odds anomaly for event {event_id} - odds not applied")
                return OddsProcessingResult(valid=False, flagged=True, anomaly=anomaly)
            return OddsProcessingResult(valid=True, flagged=True, anomaly=anomaly)

        self._record_history(event_id, new_odds, previous, flagged=False)
        return OddsProcessingResult(valid=True, flagged=False, anomaly=anomaly)
