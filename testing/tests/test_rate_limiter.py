#!/usr/bin/env python3
"""
Tests for the per-domain adaptive rate limit detector.
"""

import asyncio
from email.utils import formatdate

import pytest

from sportscrape.rate_limiter import (
    DEFAULT_DELAY_MS,
    MAX_DELAY_MS,
    MIN_DELAY_MS,
    RateLimitDetector,
    extract_domain,
    parse_retry_after,
)


@pytest.fixture
def slept():
    return []


@pytest.fixture
def detector(clock, slept):
    async def fake_sleep(seconds):
        slept.append(seconds)
    return RateLimitDetector(clock=clock, sleep=fake_sleep)


# ---------------------------------------------------------------------------
# Domain extraction / header parsing
# ---------------------------------------------------------------------------

def test_extract_domain():
    """Hostname for valid URLs, "unknown" otherwise."""
    assert extract_domain("https://www.oddsportal.com/football/") == "www.oddsportal.com"
    assert extract_domain("not a url") == "unknown"
    assert extract_domain("") == "unknown"


def test_parse_retry_after_seconds_and_date(clock):
    """Delta-seconds and HTTP-date forms both parse."""
    assert parse_retry_after("120", clock()) == 120.0
    assert parse_retry_after(" 7 ", clock()) == 7.0
    assert parse_retry_after(formatdate(clock() + 30, usegmt=True), clock()) == pytest.approx(30.0, abs=1)
    assert parse_retry_after("soon", clock()) is None
    assert parse_retry_after(None, clock()) is None


# ---------------------------------------------------------------------------
# Delays
# ---------------------------------------------------------------------------

def test_new_domain_has_no_delay(detector):
    """A domain never requested has nothing left to wait."""
    assert detector.get_suggested_delay("example.com") == 0


def test_wait_sleeps_out_remaining_delay(detector, slept):
    """Back-to-back requests wait the default 3s."""
    waited = asyncio.run(detector.wait_for_rate_limit("example.com"))
    assert waited == 0
    assert detector.get_suggested_delay("example.com") == DEFAULT_DELAY_MS

    waited = asyncio.run(detector.wait_for_rate_limit("example.com"))
    assert waited == DEFAULT_DELAY_MS
    assert slept == [DEFAULT_DELAY_MS / 1000]


def test_delay_shrinks_with_elapsed_time(detector, clock):
    """Time already elapsed since the last request is subtracted."""
    asyncio.run(detector.wait_for_rate_limit("example.com"))
    clock.advance(1)
    assert detector.get_suggested_delay("example.com") == pytest.approx(2000)


# ---------------------------------------------------------------------------
# Backoff / recovery
# ---------------------------------------------------------------------------

def test_429_backs_off_then_cools_down(detector):
    """Three consecutive 429s without Retry-After trigger a cooldown of 2x the delay."""
    result = detector.check_rate_limit("example.com", 429)
    assert result.is_rate_limited
    assert result.retry_after is None
    assert detector.get_stats()["example.com"]["suggested_delay_ms"] == pytest.approx(4500)

    detector.check_rate_limit("example.com", 429)
    detector.check_rate_limit("example.com", 429)

    stats = detector.get_stats()["example.com"]
    assert stats["suggested_delay_ms"] == pytest.approx(10125)
    assert stats["consecutive_failures"] == 3
    assert stats["in_cooldown"]
    assert detector.get_suggested_delay("example.com") == pytest.approx(20250)


def test_cooldown_expires(detector, clock):
    """Once the cooldown passes the domain is usable again."""
    for _ in range(3):
        detector.check_rate_limit("example.com", 429)
    clock.advance(21)
    assert detector.get_suggested_delay("example.com") == 0
    assert not detector.get_stats()["example.com"]["in_cooldown"]


def test_retry_after_is_honored(detector):
    """Retry-After: 120 caps the delay at 60s but holds the domain for 120s."""
    result = detector.check_rate_limit("example.com", 429, {"Retry-After": "120"})
    assert result.is_rate_limited
    assert result.retry_after == 120

    stats = detector.get_stats()["example.com"]
    assert stats["suggested_delay_ms"] == MAX_DELAY_MS
    assert stats["in_cooldown"]
    assert detector.get_suggested_delay("example.com") == pytest.approx(120000)


def test_retry_after_header_is_case_insensitive(detector):
    """Lower-case header names (as Playwright returns them) work."""
    result = detector.check_rate_limit("example.com", 429, {"retry-after": "5"})
    assert result.retry_after == 5
    assert detector.get_stats()["example.com"]["suggested_delay_ms"] == 5000


def test_small_retry_after_respects_minimum(detector):
    """The delay never drops below 1s even for Retry-After: 0."""
    detector.check_rate_limit("example.com", 429, {"Retry-After": "0"})
    assert detector.get_stats()["example.com"]["suggested_delay_ms"] == MIN_DELAY_MS


def test_403_and_503_back_off(detector):
    """403/503 bump failures and back off without cooldown."""
    assert detector.check_rate_limit("example.com", 403).is_rate_limited
    assert detector.check_rate_limit("example.com", 503).is_rate_limited

    stats = detector.get_stats()["example.com"]
    assert stats["consecutive_failures"] == 2
    assert stats["suggested_delay_ms"] == pytest.approx(6750)
    assert not stats["in_cooldown"]


def test_delay_never_exceeds_maximum(detector):
    """Repeated failures saturate at 60s."""
    for _ in range(30):
        detector.record_failure("example.com", "timeout")
    assert detector.get_stats()["example.com"]["suggested_delay_ms"] == MAX_DELAY_MS


def test_success_decays_to_minimum(detector):
    """2xx responses multiply the delay by 0.9 down to the 1s floor."""
    result = detector.check_rate_limit("example.com", 200)
    assert not result.is_rate_limited
    assert detector.get_stats()["example.com"]["suggested_delay_ms"] == pytest.approx(2700)

    for _ in range(50):
        detector.record_success("example.com")
    assert detector.get_stats()["example.com"]["suggested_delay_ms"] == MIN_DELAY_MS


def test_success_clears_cooldown(detector):
    """record_success resets failures and lifts the cooldown."""
    for _ in range(3):
        detector.check_rate_limit("example.com", 429)
    detector.record_success("example.com")

    stats = detector.get_stats()["example.com"]
    assert stats["consecutive_failures"] == 0
    assert not stats["in_cooldown"]


def test_other_statuses_leave_state_alone(detector):
    """A 404 is neither a rate limit nor a success."""
    detector.check_rate_limit("example.com", 429)
    result = detector.check_rate_limit("example.com", 404)
    assert not result.is_rate_limited
    assert detector.get_stats()["example.com"]["consecutive_failures"] == 1


def test_domains_are_independent(detector):
    """Backoff on one domain does not touch another."""
    detector.check_rate_limit("a.example", 429)
    detector.check_rate_limit("b.example", 200)
    stats = detector.get_stats()
    assert stats["a.example"]["suggested_delay_ms"] == pytest.approx(4500)
    assert stats["b.example"]["suggested_delay_ms"] == pytest.approx(2700)


def test_reset_forgets_domains(detector):
    detector.check_rate_limit("example.com", 429)
    detector.reset()
    assert detector.get_stats() == {}
