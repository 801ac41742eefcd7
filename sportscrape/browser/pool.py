#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Browser Pool with Lifecycle Management

Bounded pool of Playwright browser contexts over one persistent browser.

Features:
- Persistent browser instance (no cold starts)
- Cooperative queueing once the context cap is reached
- Context recycling on age, request count, failure count or session rotation
- Randomized fingerprint, headers and proxy per context
- Proxy outcome reporting back to the rotator

Usage:
    pool = BrowserPool(settings, proxy_rotator=rotator, session_manager=sessions)

    async with pool.page() as page:
        await page.goto(url)

    page, release = await pool.acquire()
    try:
        ...
    finally:
        await release()

    result = await pool.execute_job(scrape_fixtures, humanize=True)
"""

import asyncio
import logging
import random
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..config.settings import ScraperSettings
from ..config.timeouts import TimeoutConfig
from ..utils.logger import redact_proxy_url
from .human_behavior import simulate_human_behavior
from .session_manager import SessionManager
from .stealth_profile import apply_playwright, apply_playwright_with_script, get_launch_args

logger = logging.getLogger(__name__)


@dataclass
class PooledContext:
    """One browser context and its usage counters."""
    id: str
    context: Any
    created_at: float
    last_used: float
    proxy_url: Optional[str] = None
    session_id: Optional[str] = None
    request_count: int = 0
    failure_count: int = 0


@dataclass
class PageLease:
    """
    A checked-out page. Unpacks as (page, release).

    release() closes the page and hands the context back to the pool; it is
    safe to call more than once.
    """
    page: Any
    context_id: str
    proxy_url: Optional[str]
    session_id: Optional[str]
    _release: Callable[[], Awaitable[None]] = field(repr=False)

    async def release(self):
        await self._release()

    def __iter__(self):
        yield self.page
        yield self.release


class BrowserPool:
    """
    Bounded pool of browser contexts.

    All pool bookkeeping happens under one asyncio.Condition; callers over
    the cap wait on it until a context is released or recycled.
    """

    def __init__(
        self,
        settings: Optional[ScraperSettings] = None,
        proxy_rotator=None,
        session_manager: Optional[SessionManager] = None,
        browser_factory: Optional[Callable[[], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        poll_interval: float = TimeoutConfig.ACQUIRE_POLL_INTERVAL,
    ):
        settings = settings or ScraperSettings()
        self.max_contexts = settings.browser_max_contexts
        self.max_context_age = settings.browser_max_context_age_seconds
        self.max_requests_per_context = settings.browser_max_requests_per_context
        self.failure_threshold = settings.browser_failure_threshold
        self.headless = settings.browser_headless
        self.humanize_default = settings.browser_humanize
        self.stealth_enabled = settings.stealth_enabled

        self.proxy_rotator = proxy_rotator
        self.session_manager = session_manager
        self._browser_factory = browser_factory or self._launch_browser
        self._clock = clock
        self._rng = rng or random.Random()
        self._poll_interval = poll_interval

        self._playwright = None
        self._browser = None
        self._contexts: Dict[str, PooledContext] = {}
        self._idle: Deque[str] = deque()
        self._cond = asyncio.Condition()
        self._init_lock = asyncio.Lock()

    async def _launch_browser(self):
        self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self.headless,
            args=get_launch_args(self.stealth_enabled),
        )

    async def initialize(self):
        """Launch the browser and pre-warm one context (idempotent)."""
        async with self._init_lock:
            if self._browser is not None:
                return
            logger.info("Initializing browser pool")
            self._browser = await self._browser_factory()
            async with self._cond:
                await self._create_context_locked(idle=True)
            logger.info("Browser pool initialized")

    async def _create_context_locked(self, idle: bool) -> PooledContext:
        if self._browser is None:
            raise RuntimeError("Browser not initialized")

        proxy = None
        if self.proxy_rotator is not None and self.proxy_rotator.is_enabled():
            proxy = self.proxy_rotator.select_proxy()

        context_kwargs: Dict[str, Any] = {}
        apply_playwright(context_kwargs, self._rng, enabled=self.stealth_enabled)
        if proxy is not None:
            context_kwargs["proxy"] = proxy.playwright_proxy
            logger.debug(f"Context using proxy {redact_proxy_url(proxy.url)}")

        context = await self._browser.new_context(**context_kwargs)
        await apply_playwright_with_script(context, enabled=self.stealth_enabled)

        now = self._clock()
        meta = PooledContext(
            id=str(uuid.uuid4()),
            context=context,
            created_at=now,
            last_used=now,
            proxy_url=proxy.url if proxy else None,
            session_id=self.session_manager.create_session() if self.session_manager else None,
        )
        self._contexts[meta.id] = meta
        if idle:
            self._idle.append(meta.id)
        logger.debug(f"Created new browser context {meta.id}")
        return meta

    def _should_recycle(self, meta: PooledContext) -> Optional[str]:
        if self._clock() - meta.created_at > self.max_context_age:
            return "max_age"
        if meta.request_count > self.max_requests_per_context:
            return "max_requests"
        if meta.failure_count >= self.failure_threshold:
            return "failures"
        if meta.session_id and self.session_manager and self.session_manager.should_rotate(meta.session_id):
            return "session_rotation"
        return None

    async def _recycle_locked(self, context_id: str, reason: str):
        meta = self._contexts.pop(context_id, None)
        if meta is None:
            return
        try:
            self._idle.remove(context_id)
        except ValueError:
            pass

        logger.info(
            f"Recycling browser context {context_id} ({reason}): "
            f"age={round(self._clock() - meta.created_at)}s requests={meta.request_count} "
            f"failures={meta.failure_count}"
        )
        try:
            await meta.context.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing context {context_id}: {e}")
        if meta.session_id and self.session_manager:
            self.session_manager.delete_session(meta.session_id)

        if self._browser is not None and len(self._contexts) < self.max_contexts:
            await self._create_context_locked(idle=True)

    async def recycle_context(self, context_id: str, reason: str):
        """Close a context and replace it while under the cap."""
        async with self._cond:
            await self._recycle_locked(context_id, reason)
            self._cond.notify_all()

    async def recycle_all_contexts(self, reason: str):
        async with self._cond:
            logger.info(f"Recycling all browser contexts ({reason}): {len(self._contexts)}")
            for context_id in list(self._contexts):
                await self._recycle_locked(context_id, reason)
            self._cond.notify_all()

    async def _get_healthy_context(self) -> PooledContext:
        async with self._cond:
            while True:
                while self._idle:
                    context_id = self._idle.popleft()
                    meta = self._contexts.get(context_id)
                    if meta is None:
                        continue
                    reason = self._should_recycle(meta)
                    if reason:
                        await self._recycle_locked(context_id, reason)
                        continue
                    meta.last_used = self._clock()
                    return meta

                if len(self._contexts) < self.max_contexts:
                    return await self._create_context_locked(idle=False)

                try:
                    await asyncio.wait_for(self._cond.wait(), self._poll_interval)
                except asyncio.TimeoutError:
                    pass

    async def _return_context(self, context_id: str):
        async with self._cond:
            meta = self._contexts.get(context_id)
            if meta is not None and context_id not in self._idle:
                reason = self._should_recycle(meta)
                if reason:
                    await self._recycle_locked(context_id, reason)
                else:
                    self._idle.append(context_id)
            self._cond.notify_all()

    async def acquire(self) -> PageLease:
        """
        Check out a page on a healthy context.

        Blocks cooperatively while all contexts are in use.
        """
        await self.initialize()
        meta = await self._get_healthy_context()
        meta.request_count += 1

        try:
            page = await meta.context.new_page()
        except PlaywrightError:
            meta.failure_count += 1
            await self._return_context(meta.id)
            raise

        released = False

        async def release():
            nonlocal released
            if released:
                return
            released = True
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing page: {e}")
            await self._return_context(meta.id)

        return PageLease(page, meta.id, meta.proxy_url, meta.session_id, release)

    @asynccontextmanager
    async def page(self):
        """async with pool.page() as page: ..."""
        lease = await self.acquire()
        try:
            yield lease.page
        finally:
            await lease.release()

    def record_context_failure(self, context_id: str):
        meta = self._contexts.get(context_id)
        if meta is not None:
            meta.failure_count += 1

    async def execute_job(self, fn: Callable[[Any], Awaitable[Any]], humanize: Optional[bool] = None) -> Any:
        """
        Run fn(page) on a pooled page, reporting the outcome for the context's proxy.

        Exceptions from fn count as a context failure and are re-raised.
        """
        if humanize is None:
            humanize = self.humanize_default

        lease = await self.acquire()
        try:
            if humanize:
                await simulate_human_behavior(lease.page, self._rng)
            result = await fn(lease.page)
        except Exception:
            self.record_context_failure(lease.context_id)
            self.mark_page_failed(lease.proxy_url)
            raise
        else:
            self.mark_page_success(lease.proxy_url)
            return result
        finally:
            await lease.release()

    def mark_page_success(self, proxy_url: Optional[str]):
        if proxy_url and self.proxy_rotator is not None:
            self.proxy_rotator.record_success(proxy_url)

    def mark_page_failed(self, proxy_url: Optional[str]):
        if proxy_url and self.proxy_rotator is not None:
            self.proxy_rotator.record_failure(proxy_url)

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        ages = [now - meta.created_at for meta in self._contexts.values()]
        return {
            "active_contexts": len(self._contexts) - len(self._idle),
            "idle_contexts": len(self._idle),
            "max_contexts": self.max_contexts,
            "oldest_context_age": round(max(ages)) if ages else None,
        }

    async def close(self):
        """Close every context, the browser and the Playwright driver."""
        logger.info("Closing browser pool")
        async with self._cond:
            for meta in list(self._contexts.values()):
                try:
                    await meta.context.close()
                except PlaywrightError as e:
                    logger.debug(f"Error closing context {meta.id} during shutdown: {e}")
                if meta.session_id and self.session_manager:
                    self.session_manager.delete_session(meta.session_id)
            self._contexts.clear()
            self._idle.clear()
            self._cond.notify_all()

        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info("Browser pool closed")
