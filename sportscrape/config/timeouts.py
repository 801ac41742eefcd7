#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Centralized Timeout Configuration

Per-call timeouts for every suspension point in the core. A timeout is
treated as a failure by the caller; nothing is cancelled beyond the call.
"""

from typing import Dict


class TimeoutConfig:
    """Centralized timeout configuration (seconds)"""

    NAVIGATION_TIMEOUT = 30
    CHALLENGE_TIMEOUT = 15
    HEALTH_CHECK_TIMEOUT = 10
    ACQUIRE_POLL_INTERVAL = 1.0

    @classmethod
    def get_timeout_config(cls) -> Dict[str, float]:
        """Get all timeout configurations as a dict"""
        return {
            "navigation": cls.NAVIGATION_TIMEOUT,
            "challenge": cls.CHALLENGE_TIMEOUT,
            "health_check": cls.HEALTH_CHECK_TIMEOUT,
            "acquire_poll": cls.ACQUIRE_POLL_INTERVAL,
        }

    @classmethod
    def ms(cls, seconds: float) -> float:
        """Playwright takes timeouts in milliseconds."""
        return seconds * 1000
