#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Rate Limit Detector Module

Per-domain adaptive delay / backoff state machine. Every remote domain
starts at a 3s suggested delay; 429/403/503 responses back the delay off,
2xx responses let it decay again. Repeated 429s (or a Retry-After header)
put the domain into a timed cooldown.

Usage:
    from sportscrape.rate_limiter import RateLimitDetector, extract_domain

    detector = RateLimitDetector()
    domain = extract_domain(url)

    await detector.wait_for_rate_limit(domain)
    response = await page.goto(url)
    detector.check_rate_limit(domain, response.status, response.headers)
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 3000
MIN_DELAY_MS = 1000
MAX_DELAY_MS = 60000
RECOVERY_FACTOR = 0.9
BACKOFF_FACTOR = 1.5
COOLDOWN_AFTER_FAILURES = 3


@dataclass
class DomainRateState:
    """Rate state for one remote domain."""
    domain: str
    suggested_delay_ms: float = DEFAULT_DELAY_MS
    last_request_at: float = 0.0
    consecutive_failures: int = 0
    cooldown_until: Optional[float] = None

    def __post_init__(self):
        self.lock = threading.Lock()

    def backoff(self):
        self.suggested_delay_ms = min(self.suggested_delay_ms * BACKOFF_FACTOR, MAX_DELAY_MS)

    def recover(self):
        self.consecutive_failures = 0
        self.cooldown_until = None
        self.suggested_delay_ms = max(self.suggested_delay_ms * RECOVERY_FACTOR, MIN_DELAY_MS)


@dataclass
class RateLimitResult:
    """Outcome of check_rate_limit()."""
    is_rate_limited: bool
    retry_after: Optional[float] = None


def extract_domain(url: str) -> str:
    """Extract hostname from URL ("unknown" when it cannot be parsed)."""
    try:
        hostname = urlparse(url).hostname
    except (ValueError, AttributeError, TypeError):
        return "unknown"
    return hostname or "unknown"


def parse_retry_after(value: Any, now: float) -> Optional[float]:
    """
    Parse a Retry-After header value into seconds.

    Accepts delta-seconds ("120") or an HTTP-date. Returns None when the
    value is missing or unparseable.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return max(0.0, float(int(text)))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    return max(0.0, when.timestamp() - now)


def _header(headers: Optional[Mapping[str, Any]], name: str) -> Any:
    if not headers:
        return None
    for key, value in headers.items():
        if str(key).lower() == name:
            return value
    return None


class RateLimitDetector:
    """
    Adaptive per-domain rate limiter.

    Mutations on one domain are serialized by that domain's lock; different
    domains never contend beyond the short registry lookup.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._domains: Dict[str, DomainRateState] = {}
        self._registry_lock = threading.Lock()

    def _state(self, domain: str) -> DomainRateState:
        with self._registry_lock:
            state = self._domains.get(domain)
            if state is None:
                state = DomainRateState(domain=domain)
                self._domains[domain] = state
            return state

    def _delay_ms_locked(self, state: DomainRateState, now: float) -> float:
        if state.cooldown_until is not None:
            if now < state.cooldown_until:
                return (state.cooldown_until - now) * 1000
            state.cooldown_until = None

        elapsed_ms = (now - state.last_request_at) * 1000
        if elapsed_ms < state.suggested_delay_ms:
            return state.suggested_delay_ms - elapsed_ms
        return 0.0

    def get_suggested_delay(self, domain: str) -> float:
        """
        Milliseconds to wait before the next request to domain.

        The remaining cooldown when one is active, otherwise whatever is left
        of the suggested delay since the last request.
        """
        state = self._state(domain)
        with state.lock:
            return self._delay_ms_locked(state, self._clock())

    async def wait_for_rate_limit(self, domain: str) -> float:
        """
        Sleep out the suggested delay for domain, then stamp the request time.

        Returns:
            Milliseconds waited
        """
        delay_ms = self.get_suggested_delay(domain)
        if delay_ms > 0:
            logger.debug(f"Rate limiting: waiting {delay_ms:.0f}ms for {domain}")
            await self._sleep(delay_ms / 1000)

        state = self._state(domain)
        with state.lock:
            state.last_request_at = self._clock()
        return delay_ms

    def check_rate_limit(
        self,
        domain: str,
        status: int,
        headers: Optional[Mapping[str, Any]] = None,
    ) -> RateLimitResult:
        """
        Inspect a response status and adjust the domain's delay.

        Args:
            domain: Remote hostname
            status: HTTP status code
            headers: Response headers (case-insensitive lookup)

        Returns:
            RateLimitResult; retry_after is set when a Retry-After header was honored

        A Retry-After header sets the cooldown to its full value, uncapped.
        Only suggested_delay_ms is clamped to MAX_DELAY_MS, so a 120s header
        holds the domain for 120s while the stored delay reads 60000ms.
        """
        state = self._state(domain)
        with state.lock:
            now = self._clock()

            if status == 429:
                state.consecutive_failures += 1

                retry_after = parse_retry_after(_header(headers, "retry-after"), now)
                if retry_after is not None:
                    state.suggested_delay_ms = min(max(retry_after * 1000, MIN_DELAY_MS), MAX_DELAY_MS)
                    state.cooldown_until = now + retry_after
                    logger.warning(
                        f"Rate limit 429 on {domain}: honoring Retry-After {retry_after:.0f}s "
                        f"(delay={state.suggested_delay_ms:.0f}ms)"
                    )
                    return RateLimitResult(True, retry_after)

                state.backoff()
                if state.consecutive_failures >= COOLDOWN_AFTER_FAILURES:
                    cooldown_ms = state.suggested_delay_ms * 2
                    state.cooldown_until = now + cooldown_ms / 1000
                    logger.warning(
                        f"Rate limit on {domain}: {state.consecutive_failures} consecutive failures, "
                        f"entering cooldown for {cooldown_ms:.0f}ms"
                    )
                return RateLimitResult(True)

            if status in (403, 503):
                state.consecutive_failures += 1
                state.backoff()
                logger.warning(f"HTTP {status} from {domain}: delay now {state.suggested_delay_ms:.0f}ms")
                return RateLimitResult(True)

            if 200 <= status < 300:
                state.recover()

            return RateLimitResult(False)

    def record_success(self, domain: str):
        """Status-agnostic success: reset failures, clear cooldown, decay delay."""
        state = self._state(domain)
        with state.lock:
            state.recover()

    def record_failure(self, domain: str, reason: Optional[str] = None):
        """Status-agnostic failure: bump failures and back the delay off."""
        state = self._state(domain)
        with state.lock:
            state.consecutive_failures += 1
            state.backoff()
            logger.debug(
                f"Failure recorded for {domain} ({reason or 'unspecified'}): "
                f"failures={state.consecutive_failures} delay={state.suggested_delay_ms:.0f}ms"
            )

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-domain delay, failure and cooldown snapshot."""
        with self._registry_lock:
            states = list(self._domains.values())

        now = self._clock()
        stats = {}
        for state in states:
            with state.lock:
                stats[state.domain] = {
                    "suggested_delay_ms": state.suggested_delay_ms,
                    "consecutive_failures": state.consecutive_failures,
                    "in_cooldown": state.cooldown_until is not None and now < state.cooldown_until,
                }
        return stats

    def reset(self):
        """Forget all domains."""
        with self._registry_lock:
            self._domains.clear()
        logger.info("Rate limit detector reset")
