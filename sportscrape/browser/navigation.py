"""
Guarded navigation for pooled pages.

Every navigation waits out the domain's rate limit, then feeds its outcome
into the rate limiter, proxy rotator (via the pool), session counters and
metrics before returning or raising.
"""

import logging
import time
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from ..config.timeouts import TimeoutConfig
from ..errors import BlockDetected, TransientNetworkFailure
from ..rate_limiter import RateLimitDetector, extract_domain
from .pool import BrowserPool, PageLease
from .session_manager import SessionManager, detect_fingerprint_suspicion, handle_cloudflare_challenge

logger = logging.getLogger(__name__)

BLOCK_STATUSES = (403,)
RETRYABLE_STATUSES = (429, 503)


class GuardedNavigator:
    """
    Navigate pooled pages with rate limiting and outcome accounting.

    Usage:
        navigator = GuardedNavigator(pool, rate_limiter, sessions, metrics)
        lease = await pool.acquire()
        try:
            response = await navigator.navigate(lease, url, source="oddsportal")
        finally:
            await lease.release()
    """

    def __init__(
        self,
        pool: BrowserPool,
        rate_limiter: RateLimitDetector,
        session_manager: Optional[SessionManager] = None,
        metrics=None,
        timeout: float = TimeoutConfig.NAVIGATION_TIMEOUT,
        handle_challenges: bool = True,
    ):
        self.pool = pool
        self.rate_limiter = rate_limiter
        self.session_manager = session_manager
        self.metrics = metrics
        self.timeout = timeout
        self.handle_challenges = handle_challenges

    def _record_outcome(self, lease: PageLease, source: str, success: bool, started: float,
                        blocked: bool = False, status: Optional[int] = None):
        if success:
            self.pool.mark_page_success(lease.proxy_url)
        else:
            self.pool.mark_page_failed(lease.proxy_url)
            self.pool.record_context_failure(lease.context_id)

        if self.session_manager and lease.session_id:
            if success:
                self.session_manager.record_success(lease.session_id)
            else:
                self.session_manager.record_failure(lease.session_id)

        if self.metrics is not None:
            self.metrics.record_request(
                source,
                success=success,
                response_time_ms=(time.monotonic() - started) * 1000,
                blocked=blocked,
                status_code=status,
            )

    async def navigate(self, lease: PageLease, url: str, source: Optional[str] = None,
                       wait_until: str = "domcontentloaded"):
        """
        Navigate lease.page to url.

        Returns:
            The Playwright response (may be None for same-document navigations)

        Raises:
            TransientNetworkFailure: navigation error, timeout, 429 or 503
            BlockDetected: challenge page or 403
        """
        domain = extract_domain(url)
        source = source or domain
        page = lease.page

        await self.rate_limiter.wait_for_rate_limit(domain)
        if self.session_manager and lease.session_id:
            self.session_manager.record_request(lease.session_id)

        started = time.monotonic()
        try:
            response = await page.goto(url, wait_until=wait_until, timeout=TimeoutConfig.ms(self.timeout))
        except PlaywrightError as e:
            reason = type(e).__name__
            self.rate_limiter.record_failure(domain, reason)
            self._record_outcome(lease, source, False, started)
            logger.warning(f"Navigation to {url} failed: {reason}")
            raise TransientNetworkFailure(url, str(e)) from e

        status = response.status if response is not None else None
        if status is not None:
            self.rate_limiter.check_rate_limit(domain, status, response.headers)

        challenge = await detect_fingerprint_suspicion(page)
        if challenge.is_challenged:
            if self.session_manager and lease.session_id:
                self.session_manager.record_challenge(lease.session_id)

            passed = False
            if self.handle_challenges and challenge.challenge_type == "cloudflare_challenge":
                passed = await handle_cloudflare_challenge(page)
            if passed:
                # The challenge response status no longer describes the page
                if status is None or not 200 <= status < 300:
                    self.rate_limiter.record_success(domain)
                self._record_outcome(lease, source, True, started, status=status)
                return response

            if status is None or 200 <= status < 300:
                self.rate_limiter.record_failure(domain, challenge.challenge_type)
            self._record_outcome(lease, source, False, started, blocked=True, status=status)
            logger.warning(f"Challenge at {url}: {challenge.challenge_type}")
            raise BlockDetected(url, challenge.challenge_type)

        if status in BLOCK_STATUSES:
            if self.session_manager and lease.session_id:
                self.session_manager.record_challenge(lease.session_id)
            self._record_outcome(lease, source, False, started, blocked=True, status=status)
            raise BlockDetected(url, f"http_{status}")
        if status in RETRYABLE_STATUSES:
            self._record_outcome(lease, source, False, started, status=status)
            raise TransientNetworkFailure(url, f"HTTP {status}")

        self._record_outcome(lease, source, True, started, status=status)
        return response
