"""In-memory implementation of the metrics collector's persistence layer."""

import threading
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Union

import numpy as np

from .records import MetricRecord

TimeBound = Union[datetime, int]


def _to_epoch_ms(value: TimeBound) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return int(value)


def _from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class InMemoryMetricsStore:
    """
    Stores delivered metric batches and answers operator queries.

    All read methods return records newest first.
    """

    def __init__(self):
        self._records: List[MetricRecord] = []
        self._lock = threading.Lock()

    def store_metrics(self, records: Iterable[Union[MetricRecord, Dict[str, Any]]]) -> int:
        """Store a batch of records (or their wire dicts); returns the count stored."""
        parsed = [r if isinstance(r, MetricRecord) else MetricRecord.from_dict(r) for r in records]
        with self._lock:
            self._records.extend(parsed)
        return len(parsed)

    def get_experiment_metrics(self, experiment_id: str) -> List[MetricRecord]:
        return self._query(lambda r: r.experiment_id == experiment_id)

    def get_prompt_metrics(self, prompt_hash: str) -> List[MetricRecord]:
        return self._query(lambda r: r.prompt_hash == prompt_hash)

    def get_metrics_by_time_range(self, start: TimeBound, end: TimeBound) -> List[MetricRecord]:
        """Records with ``start <= timestamp <= end``."""
        start_ms, end_ms = _to_epoch_ms(start), _to_epoch_ms(end)
        return self._query(lambda r: start_ms <= r.timestamp <= end_ms)

    def get_aggregated_metrics(self, experiment_id: str) -> Dict[str, Any]:
        """Request count, latency statistics and model usage for an experiment."""
        records = self.get_experiment_metrics(experiment_id)
        if not records:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "model_stats": {},
                "time_range": {"start": None, "end": None},
            }

        latencies = np.array([r.latency_ms for r in records], dtype=float)
        timestamps = [r.timestamp for r in records]

        return {
            "total_requests": len(records),
            "avg_latency_ms": float(latencies.mean()),
            "p95_latency_ms": float(np.percentile(latencies, 95)),
            "model_stats": dict(Counter(r.model for r in records)),
            "time_range": {
                "start": _from_epoch_ms(min(timestamps)),
                "end": _from_epoch_ms(max(timestamps)),
            },
        }

    def __len__(self) -> int:
        return len(self._records)

    def _query(self, predicate) -> List[MetricRecord]:
        with self._lock:
            matches = [r for r in self._records if predicate(r)]
        return sorted(matches, key=lambda r: r.timestamp, reverse=True)
