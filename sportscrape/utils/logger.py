#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Standardized Logger Module

Provides consistent logging format across the ingestion core.
Format: [{level}] [{job}] [{step}] [thread-{id}] {message}

Secrets found in the environment (tokens, passwords, API keys, proxy
usernames) are masked in every formatted line, and proxy URLs passed
through redact_proxy_url() never carry credentials.
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urlsplit, urlunsplit

_SENSITIVE_KEYWORDS = ("TOKEN", "PASSWORD", "SECRET", "API_KEY", "ACCESS_KEY", "PRIVATE_KEY", "USERNAME")


def _collect_sensitive_values() -> List[str]:
    values = []
    for key, value in os.environ.items():
        if any(k in key.upper() for k in _SENSITIVE_KEYWORDS):
            if value and isinstance(value, str) and len(value) >= 4:
                values.append(value)
    values = sorted(set(values), key=len, reverse=True)
    return values


def redact_proxy_url(url: str) -> str:
    """Strip user:password from a proxy URL, keeping scheme, host and port."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "***"
    if not parts.username and not parts.password:
        return url
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class StandardFormatter(logging.Formatter):
    """Formatter that adds job/step/thread prefixes and masks secrets."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None,
                 sensitive_values: Optional[List[str]] = None):
        super().__init__(fmt, datefmt)
        self.sensitive_values = sensitive_values or []

    def format(self, record):
        record.thread_id = threading.get_ident()

        prefix_parts = [f"[{record.levelname}]"]
        if getattr(record, "job_name", None):
            prefix_parts.append(f"[{record.job_name}]")
        if getattr(record, "step_name", None):
            prefix_parts.append(f"[{record.step_name}]")
        prefix_parts.append(f"[thread-{record.thread_id}]")
        prefix = " ".join(prefix_parts)

        formatted = record.getMessage()
        for secret in self.sensitive_values:
            if secret in formatted:
                formatted = formatted.replace(secret, "***")
        original_msg = record.msg
        original_args = record.args
        try:
            record.msg = f"{prefix} {formatted}"
            record.args = ()
            return super().format(record)
        finally:
            record.msg = original_msg
            record.args = original_args


def setup_standard_logger(
    name: str,
    job_name: Optional[str] = None,
    log_file: Optional[Path] = None,
    level: Union[int, str] = logging.INFO
) -> logging.Logger:
    """
    Setup a standardized logger with consistent format.

    Args:
        name: Logger name (usually "sportscrape")
        job_name: Optional job name for log prefix
        log_file: Optional log file path (if None, only console)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    sensitive_values = _collect_sensitive_values()

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(StandardFormatter(
            '%(asctime)s - %(message)s', datefmt='%Y-%m-%d %H:%M:%S',
            sensitive_values=sensitive_values,
        ))
        logger.addHandler(file_handler)

    # Console handler (always)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(StandardFormatter('%(message)s', sensitive_values=sensitive_values))
    logger.addHandler(console_handler)

    return logger


def get_job_logger(name: str, job_name: str, step_name: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Logger adapter that stamps job/step names onto every record.

    Usage:
        log = get_job_logger(__name__, "odds-ingest", "validate")
        log.info("Checked 40 markets")
    """
    extra = {"job_name": job_name}
    if step_name:
        extra["step_name"] = step_name
    return logging.LoggerAdapter(logging.getLogger(name), extra)
