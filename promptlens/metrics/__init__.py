"""Metric records and their batched delivery."""

from .records import MetricRecord
from .queue import MetricsQueue
from .store import InMemoryMetricsStore

__all__ = [
    "MetricRecord",
    "MetricsQueue",
    "InMemoryMetricsStore",
]
