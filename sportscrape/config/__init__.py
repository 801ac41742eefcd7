"""Configuration - settings and timeouts"""

from .settings import ScraperSettings, getenv, getenv_bool, getenv_float, getenv_int
from .timeouts import TimeoutConfig

__all__ = [
    'ScraperSettings',
    'TimeoutConfig',
    'getenv',
    'getenv_bool',
    'getenv_float',
    'getenv_int',
]
