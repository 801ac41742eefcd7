#!/usr/bin/env python3
"""
Tests for session counters, rotation decisions and challenge detection.
"""

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import FakeBrowser, FakeContext, FakePage
from sportscrape.browser.session_manager import (
    SessionManager,
    detect_cloudflare_block,
    detect_fingerprint_suspicion,
    handle_cloudflare_challenge,
)


@pytest.fixture
def sessions(clock):
    return SessionManager(clock=clock)


def _page(content="<html>ok</html>", url="https://www.flashscore.com/"):
    context = FakeContext(FakeBrowser())
    page = FakePage(context, content=content)
    page.url = url
    return page


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------

def test_unknown_session_rotates(sessions):
    assert sessions.should_rotate("missing")


def test_preemptive_rotation_after_100_requests(sessions):
    session_id = sessions.create_session()
    for _ in range(99):
        sessions.record_request(session_id)
    assert not sessions.should_rotate(session_id)

    sessions.record_request(session_id)
    assert sessions.should_rotate(session_id)


def test_rotation_after_two_challenges(sessions, clock):
    session_id = sessions.create_session()
    sessions.record_challenge(session_id)
    assert not sessions.should_rotate(session_id)

    sessions.record_challenge(session_id)
    assert sessions.should_rotate(session_id)
    assert sessions.get_session(session_id).last_challenge_at == clock()


def test_get_session_returns_copy(sessions):
    """Mutating the returned metadata does not touch the live counters."""
    session_id = sessions.create_session()
    sessions.record_success(session_id)
    sessions.record_failure(session_id)

    snapshot = sessions.get_session(session_id)
    assert (snapshot.success_count, snapshot.failure_count) == (1, 1)
    snapshot.request_count = 500
    assert not sessions.should_rotate(session_id)


def test_cleanup_removes_only_old_sessions(sessions, clock):
    old = sessions.create_session()
    clock.advance(3000)
    fresh = sessions.create_session()
    clock.advance(700)

    assert sessions.cleanup_old_sessions(3600) == 1
    assert sessions.get_session(old) is None
    assert sessions.get_session(fresh) is not None
    assert sessions.should_rotate(old)


def test_stats_and_reset(sessions):
    first = sessions.create_session()
    second = sessions.create_session()
    sessions.record_request(first)
    sessions.record_request(second)
    sessions.record_challenge(second)

    assert sessions.get_stats() == {"total_sessions": 2, "total_requests": 2, "total_challenges": 1}
    sessions.delete_session(first)
    assert sessions.get_stats()["total_sessions"] == 1

    sessions.reset()
    assert sessions.get_stats()["total_sessions"] == 0


# ---------------------------------------------------------------------------
# Challenge detection
# ---------------------------------------------------------------------------

def test_detects_challenge_in_url():
    result = asyncio.run(detect_fingerprint_suspicion(_page(url="https://site.com/captcha?next=/")))
    assert result.is_challenged
    assert result.challenge_type == "url_challenge"


def test_detects_challenge_in_content():
    page = _page(content="<div class='cf-challenge'>Just a moment</div>")
    result = asyncio.run(detect_fingerprint_suspicion(page))
    assert result.is_challenged
    assert result.challenge_type == "cloudflare_challenge"

    result = asyncio.run(detect_fingerprint_suspicion(_page(content="Our systems detected UNUSUAL TRAFFIC")))
    assert result.challenge_type == "traffic_detection"


def test_clean_page_is_not_challenged():
    result = asyncio.run(detect_fingerprint_suspicion(_page()))
    assert not result.is_challenged
    assert result.challenge_type is None


def test_content_error_counts_as_clean():
    """A page that cannot be read (closed, navigating) is not flagged."""
    page = _page()

    async def broken_content():
        raise PlaywrightError("Target page, context or browser has been closed")

    page.content = broken_content
    assert not asyncio.run(detect_fingerprint_suspicion(page)).is_challenged
    assert not asyncio.run(detect_cloudflare_block(page))


def test_cloudflare_block_markers():
    assert asyncio.run(detect_cloudflare_block(_page(content="Error 1020: Access denied")))
    assert asyncio.run(detect_cloudflare_block(_page(content="Checking your browser before accessing")))
    assert not asyncio.run(detect_cloudflare_block(_page()))


def test_cloudflare_challenge_passes_with_clearance_cookie():
    page = _page(content="cf-challenge")
    page.context.cookie_jar.append({"name": "cf_clearance", "value": "abc"})
    assert asyncio.run(handle_cloudflare_challenge(page, timeout=1))


def test_cloudflare_challenge_fails_without_cookie():
    assert not asyncio.run(handle_cloudflare_challenge(_page(content="cf-challenge"), timeout=1))
