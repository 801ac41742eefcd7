#!/usr/bin/env python3
"""
Tests for the bounded browser context pool, run against FakeBrowser doubles.
"""

import asyncio

import pytest

from conftest import FakeBrowser, browser_factory_for
from sportscrape.browser.pool import BrowserPool
from sportscrape.browser.session_manager import SessionManager
from sportscrape.config.settings import ScraperSettings
from sportscrape.network.proxy_rotator import ProxyRotator


def _pool(browser, clock, rng, sessions=None, rotator=None, **overrides):
    settings = ScraperSettings(**{"browser_max_contexts": 2, **overrides})
    return BrowserPool(
        settings,
        proxy_rotator=rotator,
        session_manager=sessions,
        browser_factory=browser_factory_for(browser),
        clock=clock,
        rng=rng,
        poll_interval=0.01,
    )


# ---------------------------------------------------------------------------
# Acquire / release
# ---------------------------------------------------------------------------

def test_acquire_uses_prewarmed_stealth_context(clock, rng):
    """The first acquire reuses the pre-warmed context with stealth options applied."""
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng)
        lease = await pool.acquire()
        await lease.release()
        return lease

    lease = asyncio.run(main())
    assert len(browser.contexts) == 1
    context = browser.contexts[0]
    assert context.kwargs["locale"] == "en-GB"
    assert context.kwargs["timezone_id"] == "Europe/London"
    assert "user_agent" in context.kwargs
    assert len(context.init_scripts) == 1
    assert lease.page.closed


def test_lease_unpacks_and_release_is_idempotent(clock, rng):
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng)
        page, release = await pool.acquire()
        await release()
        await release()
        return page, pool.get_stats()

    page, stats = asyncio.run(main())
    assert page.closed
    assert stats["idle_contexts"] == 1
    assert stats["active_contexts"] == 0


def test_callers_queue_at_the_cap(clock, rng):
    """A third caller waits until one of two checked-out contexts is released."""
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng)
        first = await pool.acquire()
        second = await pool.acquire()
        assert first.context_id != second.context_id

        waiter = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0.05)
        assert not waiter.done()
        assert pool.get_stats()["active_contexts"] == 2

        await first.release()
        third = await asyncio.wait_for(waiter, timeout=1)
        assert third.context_id == first.context_id

        await second.release()
        await third.release()

    asyncio.run(main())
    assert len(browser.contexts) == 2


def test_page_context_manager_releases(clock, rng):
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng)
        async with pool.page() as page:
            assert not page.closed
        return page, pool.get_stats()

    page, stats = asyncio.run(main())
    assert page.closed
    assert stats["active_contexts"] == 0


# ---------------------------------------------------------------------------
# Recycling
# ---------------------------------------------------------------------------

def test_recycles_after_request_budget(clock, rng):
    """A context that served more than its request budget is closed and replaced."""
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng, browser_max_contexts=1, browser_max_requests_per_context=2)
        for _ in range(3):
            lease = await pool.acquire()
            await lease.release()
        return pool.get_stats()

    stats = asyncio.run(main())
    assert len(browser.contexts) == 2
    assert browser.contexts[0].closed
    assert not browser.contexts[1].closed
    assert stats["idle_contexts"] == 1


def test_recycles_old_context_on_acquire(clock, rng):
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng)
        await pool.initialize()
        clock.advance(31 * 60)
        lease = await pool.acquire()
        await lease.release()

    asyncio.run(main())
    assert browser.contexts[0].closed
    assert len(browser.contexts) >= 2


def test_session_rotation_recycles_context(clock, rng):
    """Two challenges on a context's session retire the context and its session."""
    browser = FakeBrowser()
    sessions = SessionManager(clock=clock)

    async def main():
        pool = _pool(browser, clock, rng, sessions=sessions)
        lease = await pool.acquire()
        sessions.record_challenge(lease.session_id)
        sessions.record_challenge(lease.session_id)
        await lease.release()
        return lease

    lease = asyncio.run(main())
    assert browser.contexts[0].closed
    assert sessions.get_session(lease.session_id) is None
    assert sessions.get_stats()["total_sessions"] == 1


def test_recycle_all_contexts(clock, rng):
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng)
        await pool.initialize()
        await pool.recycle_all_contexts("proxy_refresh")
        return pool.get_stats()

    stats = asyncio.run(main())
    assert browser.contexts[0].closed
    assert stats["idle_contexts"] == 1


def test_recycle_single_context(clock, rng):
    browser = FakeBrowser()

    async def main():
        pool = _pool(browser, clock, rng)
        lease = await pool.acquire()
        await lease.release()
        await pool.recycle_context(lease.context_id, "manual")
        return pool.get_stats()

    stats = asyncio.run(main())
    assert len(browser.contexts) == 2
    assert browser.contexts[0].closed
    assert not browser.contexts[1].closed
    assert stats["idle_contexts"] == 1


# ---------------------------------------------------------------------------
# Jobs / proxies
# ---------------------------------------------------------------------------

def test_execute_job_reports_proxy_success(clock, rng):
    browser = FakeBrowser()
    rotator = ProxyRotator(clock=clock, rng=rng)
    proxy = rotator.add_proxy("http://10.0.0.1:8080", "user", "secret")

    async def main():
        pool = _pool(browser, clock, rng, rotator=rotator)

        async def job(page):
            await page.goto("https://www.oddsportal.com/")
            return page.url

        return await pool.execute_job(job)

    assert asyncio.run(main()) == "https://www.oddsportal.com/"
    assert browser.contexts[0].kwargs["proxy"] == {
        "server": "http://10.0.0.1:8080", "username": "user", "password": "secret",
    }
    assert proxy.success_count == 1


def test_execute_job_failure_counts_and_reraises(clock, rng):
    """An exception in the job marks the proxy and the context, then propagates."""
    browser = FakeBrowser()
    rotator = ProxyRotator(clock=clock, rng=rng)
    proxy = rotator.add_proxy("http://10.0.0.1:8080")

    async def main():
        pool = _pool(browser, clock, rng, rotator=rotator, browser_failure_threshold=1)

        async def job(page):
            raise ValueError("selector missing")

        with pytest.raises(ValueError):
            await pool.execute_job(job)

    asyncio.run(main())
    assert proxy.fail_count == 1
    assert browser.contexts[0].closed


def test_close_shuts_everything(clock, rng):
    browser = FakeBrowser()
    sessions = SessionManager(clock=clock)

    async def main():
        pool = _pool(browser, clock, rng, sessions=sessions)
        await pool.initialize()
        await pool.close()
        return pool.get_stats()

    stats = asyncio.run(main())
    assert browser.closed
    assert all(context.closed for context in browser.contexts)
    assert sessions.get_stats()["total_sessions"] == 0
    assert stats["oldest_context_age"] is None
