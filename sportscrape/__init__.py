# Core modules for the sports ingestion scraper
"""
Scrape-resilience and data-integrity core for sports fixture, odds and
live-score ingestion.

MODULES:
- config: Environment-driven settings and per-call timeouts
- rate_limiter: Per-domain adaptive delay / backoff detector
- network.proxy_rotator: Weighted, subnet-diverse proxy selection
- browser.session_manager: Session usage counters, rotation, challenge detection
- browser.pool: Bounded pool of Playwright browser contexts
- browser.navigation: Guarded navigation feeding outcomes back into the above
- validation.odds_anomaly: Odds anomaly detection and processing
- validation.score_validator: Live-score validation and audit history
- teams: Team name normalization and fuzzy entity resolution
- db: Narrow repository interfaces with SQLite / PostgreSQL backends
- monitoring.metrics: Request and job metrics
- context: ScraperContext, the explicit per-process object graph
"""

__version__ = "1.0.0"
