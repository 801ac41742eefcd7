#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error taxonomy for the ingestion core.

Detectors never raise these for bad input; they return structured results.
Navigation raises TransientNetworkFailure / BlockDetected after the outcome
has been recorded into rate-limit, proxy and session accounting. Storage
failures are wrapped in StorageUnavailable and always propagate.
"""

from typing import List, Optional


class ScraperError(Exception):
    """Base exception for all ingestion-core errors."""
    pass


class TransientNetworkFailure(ScraperError):
    """Navigation or fetch error / timeout. Retried by the calling job."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Network failure for {url}: {reason}")


class BlockDetected(ScraperError):
    """Challenge, captcha or block signature found on a page."""

    def __init__(self, url: str, challenge_type: str):
        self.url = url
        self.challenge_type = challenge_type
        super().__init__(f"Blocked at {url} ({challenge_type})")


class _DataError(ScraperError):
    label = "Data error"

    def __init__(self, event_id, reasons: Optional[List[str]] = None):
        self.event_id = event_id
        self.reasons = list(reasons or [])
        super().__init__(f"{self.label} for event {event_id}: {'; '.join(self.reasons)}")


class CriticalDataAnomaly(_DataError):
    """Odds update rejected outright; never applied."""
    label = "Critical odds anomaly"


class ReviewableAnomaly(_DataError):
    """Update applied but flagged for human review."""
    label = "Reviewable anomaly"


class ValidationFailure(_DataError):
    """Score update rejected; history still recorded."""
    label = "Score validation failed"


class StorageUnavailable(ScraperError):
    """History, flag or team writes could not be persisted."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage unavailable during {operation}{detail}")
