"""Utility helpers - logging"""

from .logger import get_job_logger, redact_proxy_url, setup_standard_logger

__all__ = [
    'get_job_logger',
    'redact_proxy_url',
    'setup_standard_logger',
]
