#!/usr/bin/env python3
"""
Tests for the request/job metrics collector.
"""

import pytest

from sportscrape.monitoring.metrics import MetricsCollector


@pytest.fixture
def metrics(clock):
    return MetricsCollector(clock=clock)


def test_source_stats(metrics):
    metrics.record_request("oddsportal", True, 100)
    metrics.record_request("oddsportal", True, 300, status_code=200)
    metrics.record_request("oddsportal", False, 900, blocked=True, status_code=403)
    metrics.record_request("flashscore", True, 50)

    stats = metrics.get_source_stats("oddsportal")
    assert stats["success_rate"] == pytest.approx(2 / 3)
    assert stats["blocked_rate"] == pytest.approx(1 / 3)
    assert stats["avg_response_time_ms"] == 200
    assert stats["request_count"] == 3
    assert set(metrics.get_stats()["sources"]) == {"flashscore", "oddsportal"}


def test_window_excludes_old_requests(metrics, clock):
    metrics.record_request("oddsportal", False, 100)
    clock.advance(3601)
    assert metrics.get_source_stats("oddsportal") == {
        "success_rate": 1.0, "blocked_rate": 0.0, "avg_response_time_ms": 0, "request_count": 0,
    }


def test_request_buffer_is_bounded(clock):
    metrics = MetricsCollector(max_requests=3, clock=clock)
    for _ in range(5):
        metrics.record_request("oddsportal", True, 10)
    assert metrics.get_stats()["overall"]["request_count"] == 3


def test_job_tracking(metrics, clock):
    metrics.record_job_start("sync-odds")
    clock.advance(2)
    metrics.record_job_complete("sync-odds", 2000, True)
    job = metrics.get_job("sync-odds")
    assert job.success
    assert job.duration_ms == 2000

    metrics.record_job_start("sync-scores")
    clock.advance(1.5)
    metrics.record_job_failed("sync-scores", RuntimeError("pool exhausted"))
    job = metrics.get_job("sync-scores")
    assert not job.success
    assert job.duration_ms == pytest.approx(1500)
    assert job.error == "pool exhausted"

    # Completing an unknown job is a no-op
    metrics.record_job_complete("never-started", 10, True)
    assert metrics.get_job("never-started") is None


def test_alerts(metrics):
    assert metrics.check_alerts() == []
    for _ in range(5):
        metrics.record_request("oddsportal", False, 100, blocked=True)
    assert [a["alert_type"] for a in metrics.check_alerts()] == ["high_block_rate", "low_success_rate"]


def test_prometheus_registry_is_private(clock):
    """Two collectors never clash, and counters show up in the exposition text."""
    first = MetricsCollector(clock=clock)
    second = MetricsCollector(clock=clock)
    first.record_request("oddsportal", True, 120)
    first.record_request("oddsportal", True, 80)

    text = first.export_text().decode()
    assert 'scrape_requests_total{source="oddsportal",status="success"} 2.0' in text
    assert "scrape_requests_total{" not in second.export_text().decode()


def test_reset(metrics):
    metrics.record_request("oddsportal", False, 100, blocked=True)
    metrics.record_job_start("sync-odds")
    metrics.reset()
    stats = metrics.get_stats()
    assert stats["sources"] == {}
    assert stats["last_block"] is None
    assert stats["jobs"] == {}
