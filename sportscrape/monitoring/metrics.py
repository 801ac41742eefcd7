#!/usr/bin/env python3
"""
Scrape Metrics Collector

Tracks per-source request outcomes (success, block, response time) and job
runs in memory, mirrored into a private Prometheus registry.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 1000
DEFAULT_WINDOW_SECONDS = 60 * 60
HIGH_BLOCK_RATE = 0.2
LOW_SUCCESS_RATE = 0.8


@dataclass
class RequestRecord:
    source: str
    success: bool
    response_time_ms: float
    timestamp: float
    blocked: bool = False
    status_code: Optional[int] = None


@dataclass
class JobRecord:
    name: str
    start_time: float
    end_time: Optional[float] = None
    duration_ms: Optional[float] = None
    success: Optional[bool] = None
    error: Optional[str] = None


class MetricsCollector:
    """Keeps the most recent max_requests request records plus the latest run of each job."""

    def __init__(self, max_requests: int = DEFAULT_MAX_REQUESTS, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: Deque[RequestRecord] = deque(maxlen=max_requests)
        self._jobs: Dict[str, JobRecord] = {}
        self._last_block: Optional[float] = None

        self.registry = CollectorRegistry()
        self._requests_total = Counter(
            'scrape_requests_total',
            'Total scrape requests',
            ['source', 'status'],
            registry=self.registry,
        )
        self._blocks_total = Counter(
            'scrape_blocks_total',
            'Requests that hit a block or challenge',
            ['source'],
            registry=self.registry,
        )
        self._response_seconds = Histogram(
            'scrape_response_seconds',
            'Response time of successful requests',
            ['source'],
            buckets=[0.25, 0.5, 1, 2, 5, 10, 30],
            registry=self.registry,
        )
        self._jobs_total = Counter(
            'scrape_jobs_total',
            'Completed scrape jobs',
            ['job', 'status'],
            registry=self.registry,
        )

    # ── Recording ────────────────────────────────────────────

    def record_request(self, source: str, success: bool, response_time_ms: float,
                       blocked: bool = False, status_code: Optional[int] = None):
        now = self._clock()
        with self._lock:
            self._requests.append(RequestRecord(source, success, response_time_ms, now, blocked, status_code))
            if blocked:
                self._last_block = now

        self._requests_total.labels(source=source, status="success" if success else "failure").inc()
        if blocked:
            self._blocks_total.labels(source=source).inc()
        if success:
            self._response_seconds.labels(source=source).observe(response_time_ms / 1000)

    def record_job_start(self, job_name: str):
        with self._lock:
            self._jobs[job_name] = JobRecord(job_name, self._clock())

    def record_job_complete(self, job_name: str, duration_ms: float, success: bool):
        with self._lock:
            job = self._jobs.get(job_name)
            if job is None:
                return
            job.end_time = self._clock()
            job.duration_ms = duration_ms
            job.success = success
        self._jobs_total.labels(job=job_name, status="success" if success else "failure").inc()

    def record_job_failed(self, job_name: str, error: BaseException):
        with self._lock:
            job = self._jobs.get(job_name)
            if job is None:
                return
            job.end_time = self._clock()
            job.duration_ms = (job.end_time - job.start_time) * 1000
            job.success = False
            job.error = str(error)
        self._jobs_total.labels(job=job_name, status="failure").inc()
        logger.warning(f"Job {job_name} failed: {error}")

    # ── Queries ──────────────────────────────────────────────

    def _recent(self, window_seconds: Optional[float], source: Optional[str] = None) -> List[RequestRecord]:
        cutoff = self._clock() - (window_seconds or DEFAULT_WINDOW_SECONDS)
        with self._lock:
            return [
                r for r in self._requests
                if r.timestamp > cutoff and (source is None or r.source == source)
            ]

    @staticmethod
    def _summarize(records: List[RequestRecord]) -> dict:
        if not records:
            return {"success_rate": 1.0, "blocked_rate": 0.0, "avg_response_time_ms": 0, "request_count": 0}

        successes = [r for r in records if r.success]
        blocked = sum(1 for r in records if r.blocked)
        avg = round(sum(r.response_time_ms for r in successes) / len(successes)) if successes else 0
        return {
            "success_rate": len(successes) / len(records),
            "blocked_rate": blocked / len(records),
            "avg_response_time_ms": avg,
            "request_count": len(records),
        }

    def get_success_rate(self, window_seconds: Optional[float] = None) -> float:
        return self._summarize(self._recent(window_seconds))["success_rate"]

    def get_blocked_rate(self, window_seconds: Optional[float] = None) -> float:
        return self._summarize(self._recent(window_seconds))["blocked_rate"]

    def get_source_stats(self, source: str, window_seconds: Optional[float] = None) -> dict:
        return self._summarize(self._recent(window_seconds, source))

    def get_job(self, job_name: str) -> Optional[JobRecord]:
        with self._lock:
            return self._jobs.get(job_name)

    def check_alerts(self) -> List[dict]:
        """Alerts for a block rate above 20% or a success rate below 80% in the last hour."""
        alerts = []

        blocked_rate = self.get_blocked_rate()
        if blocked_rate > HIGH_BLOCK_RATE:
            alerts.append({
                "alert_type": "high_block_rate",
                "message": f"High block rate detected: {blocked_rate * 100:.1f}%",
            })
            logger.error(f"High block rate detected: {blocked_rate * 100:.1f}%")

        success_rate = self.get_success_rate()
        if success_rate < LOW_SUCCESS_RATE:
            alerts.append({
                "alert_type": "low_success_rate",
                "message": f"Low success rate: {success_rate * 100:.1f}%",
            })
            logger.warning(f"Low success rate detected: {success_rate * 100:.1f}%")

        return alerts

    def get_stats(self) -> dict:
        with self._lock:
            sources = sorted({r.source for r in self._requests})
            last_block = self._last_block
            jobs = {
                name: {"success": job.success, "duration_ms": job.duration_ms, "error": job.error}
                for name, job in self._jobs.items()
            }
        return {
            "overall": self._summarize(self._recent(None)),
            "sources": {source: self.get_source_stats(source) for source in sources},
            "last_block": last_block,
            "jobs": jobs,
        }

    def export_text(self) -> bytes:
        """Prometheus text exposition of the private registry."""
        return generate_latest(self.registry)

    def reset(self):
        with self._lock:
            self._requests.clear()
            self._jobs.clear()
            self._last_block = None
