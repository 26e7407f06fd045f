"""Metric records emitted for intercepted calls."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class MetricRecord:
    """One observation of a single intercepted call."""
    experiment_id: str
    prompt_hash: str
    model: str
    latency_ms: float
    timestamp: int  # epoch milliseconds
    user_id: Optional[str] = None  # hashed
    custom_metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation sent to the collector."""
        data: Dict[str, Any] = {
            "experiment_id": self.experiment_id,
            "prompt_hash": self.prompt_hash,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "timestamp": self.timestamp,
        }
        if self.user_id is not None:
            data["user_id"] = self.user_id
        if self.custom_metrics:
            data["custom_metrics"] = dict(self.custom_metrics)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricRecord":
        return cls(
            experiment_id=data["experiment_id"],
            prompt_hash=data["prompt_hash"],
            model=data.get("model") or "unknown",
            latency_ms=float(data["latency_ms"]),
            timestamp=int(data["timestamp"]),
            user_id=data.get("user_id"),
            custom_metrics=dict(data.get("custom_metrics") or {}),
        )
