#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Scraper Process Context

Builds every shared component once at process start and hands them to jobs
by reference. Nothing in the package keeps module-level state.

Usage:
    context = ScraperContext.create()
    async with context.pool.page() as page:
        ...
    team_id = context.team_resolver.find_or_create_team("Arsenal FC", "flashscore")
    await context.close()
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .browser.navigation import GuardedNavigator
from .browser.pool import BrowserPool
from .browser.session_manager import SessionManager
from .config.settings import ScraperSettings
from .config.timeouts import TimeoutConfig
from .db import SqlRepository, open_repository
from .monitoring.metrics import MetricsCollector
from .network.proxy_rotator import ProxyRotator
from .rate_limiter import RateLimitDetector
from .teams.resolver import TeamResolver
from .utils.logger import setup_standard_logger
from .validation.odds_anomaly import OddsValidator
from .validation.score_validator import ScoreValidator

logger = logging.getLogger(__name__)


@dataclass
class ScraperContext:
    settings: ScraperSettings
    repository: SqlRepository
    rate_limiter: RateLimitDetector
    proxy_rotator: ProxyRotator
    session_manager: SessionManager
    pool: BrowserPool
    navigator: GuardedNavigator
    metrics: MetricsCollector
    odds_validator: OddsValidator
    score_validator: ScoreValidator
    team_resolver: TeamResolver

    @classmethod
    def create(
        cls,
        settings: Optional[ScraperSettings] = None,
        repository: Optional[SqlRepository] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        browser_factory=None,
        configure_logging: bool = False,
    ) -> "ScraperContext":
        """
        Wire up the components.

        Args:
            settings: defaults to ScraperSettings.from_env()
            repository: defaults to open_repository(settings.database_url)
            browser_factory: async callable returning a Playwright browser (tests)
            configure_logging: install the standard "sportscrape" log handlers
        """
        settings = settings or ScraperSettings.from_env()
        if configure_logging:
            setup_standard_logger("sportscrape", log_file=settings.log_file, level=settings.log_level)
        repository = repository or open_repository(settings.database_url)
        rng = rng or random.Random()

        rate_limiter = RateLimitDetector(clock=clock)
        proxy_rotator = ProxyRotator.from_settings(settings, clock=clock, rng=rng)
        session_manager = SessionManager(clock=clock)
        pool = BrowserPool(
            settings,
            proxy_rotator=proxy_rotator,
            session_manager=session_manager,
            browser_factory=browser_factory,
            clock=clock,
            rng=rng,
        )
        metrics = MetricsCollector(max_requests=settings.metrics_max_requests, clock=clock)

        context = cls(
            settings=settings,
            repository=repository,
            rate_limiter=rate_limiter,
            proxy_rotator=proxy_rotator,
            session_manager=session_manager,
            pool=pool,
            navigator=GuardedNavigator(pool, rate_limiter, session_manager, metrics),
            metrics=metrics,
            odds_validator=OddsValidator(repository, clock=clock),
            score_validator=ScoreValidator(repository, clock=clock),
            team_resolver=TeamResolver(repository, clock=clock),
        )
        logger.info(
            f"Scraper context ready (max contexts {settings.browser_max_contexts}, "
            f"proxies {'on' if proxy_rotator.is_enabled() else 'off'})"
        )
        return context

    def sweep_sessions(self) -> int:
        """Periodic session garbage collection."""
        return self.session_manager.cleanup_old_sessions(self.settings.session_max_age_seconds)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pool": self.pool.get_stats(),
            "sessions": self.session_manager.get_stats(),
            "rate_limits": self.rate_limiter.get_stats(),
            "proxies": self.proxy_rotator.get_stats(),
            "metrics": self.metrics.get_stats(),
            "teams": self.team_resolver.get_stats(),
            "timeouts": TimeoutConfig.get_timeout_config(),
        }

    def reset(self):
        """Clear all in-memory state. Storage is left untouched."""
        self.rate_limiter.reset()
        self.proxy_rotator.reset()
        self.session_manager.reset()
        self.metrics.reset()
        self.team_resolver.invalidate_caches()

    async def close(self):
        await self.pool.close()
        self.repository.close()
        logger.info("Scraper context closed")
