"""Monitoring - request and job metrics"""

from .metrics import JobRecord, MetricsCollector, RequestRecord

__all__ = ['JobRecord', 'MetricsCollector', 'RequestRecord']
