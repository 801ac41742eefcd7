#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Scraper Settings

Single configuration object for the ingestion core. Values come from the
process environment, optionally seeded from a .env file. Variables already
present in the environment always win over the file.

Usage:
    from sportscrape.config.settings import ScraperSettings

    settings = ScraperSettings.from_env()
    print(settings.browser_max_contexts)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")


def getenv(key: str, default: Optional[str] = None) -> str:
    """Get config value as string."""
    if default is None:
        default = ""
    return os.getenv(key, default)


def getenv_int(key: str, default: int = 0) -> int:
    """Get config value as int."""
    try:
        return int(getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def getenv_float(key: str, default: float = 0.0) -> float:
    """Get config value as float."""
    try:
        return float(getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def getenv_bool(key: str, default: bool = False) -> bool:
    """Get config value as bool."""
    val = getenv(key, str(default))
    return str(val).strip().lower() in _TRUE_VALUES


@dataclass
class ScraperSettings:
    """Typed configuration for the ingestion core."""

    # Browser pool
    browser_max_contexts: int = 3
    browser_max_context_age_seconds: float = 30 * 60
    browser_max_requests_per_context: int = 150
    browser_failure_threshold: int = 5
    browser_headless: bool = True
    browser_humanize: bool = False
    stealth_enabled: bool = True

    # Sessions
    session_max_age_seconds: float = 60 * 60

    # Proxies
    proxy_country: str = "gb"
    proxy_credentials: Dict[str, str] = field(default_factory=dict)

    # Storage
    database_url: str = "sportscrape.db"

    # Logging / metrics
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    metrics_max_requests: int = 1000

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "ScraperSettings":
        """
        Build settings from the environment.

        Args:
            env_file: Optional .env path; defaults to ./.env when present

        Returns:
            ScraperSettings instance
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")

        log_file = getenv("LOG_FILE", "")
        return cls(
            browser_max_contexts=max(1, getenv_int("BROWSER_MAX_CONTEXTS", 3)),
            browser_max_context_age_seconds=getenv_float("BROWSER_MAX_CONTEXT_AGE_SECONDS", 30 * 60),
            browser_max_requests_per_context=getenv_int("BROWSER_MAX_REQUESTS_PER_CONTEXT", 150),
            browser_failure_threshold=getenv_int("BROWSER_FAILURE_THRESHOLD", 5),
            browser_headless=getenv_bool("BROWSER_HEADLESS", True),
            browser_humanize=getenv_bool("BROWSER_HUMANIZE", False),
            stealth_enabled=getenv_bool("STEALTH_PROFILE_ENABLED", True),
            session_max_age_seconds=getenv_float("SESSION_MAX_AGE_SECONDS", 60 * 60),
            proxy_country=getenv("PROXY_COUNTRY", "gb") or "gb",
            proxy_credentials=read_proxy_credentials(),
            database_url=getenv("DATABASE_URL", "sportscrape.db") or "sportscrape.db",
            log_level=getenv("LOG_LEVEL", "INFO").upper() or "INFO",
            log_file=Path(log_file) if log_file else None,
            metrics_max_requests=getenv_int("METRICS_MAX_REQUESTS", 1000),
        )


PROXY_CREDENTIAL_KEYS = (
    "DATAIMPULSE_USERNAME",
    "DATAIMPULSE_PASSWORD",
    "PACKETSTREAM_API_KEY",
    "IPROYAL_USERNAME",
    "IPROYAL_PASSWORD",
    "SMARTPROXY_USERNAME",
    "SMARTPROXY_PASSWORD",
    "BRIGHTDATA_USERNAME",
    "BRIGHTDATA_PASSWORD",
    "BRIGHTDATA_ZONE",
)


def read_proxy_credentials() -> Dict[str, str]:
    """Collect the named proxy-provider variables that are set."""
    return {key: os.environ[key] for key in PROXY_CREDENTIAL_KEYS if os.environ.get(key)}
