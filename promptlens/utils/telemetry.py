"""
OpenTelemetry integration for the PromptLens SDK.

Spans are opened around every intercepted model call and every metrics
flush. Without an OpenTelemetry SDK configured by the host application the
API calls below are no-ops.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from opentelemetry import metrics, trace
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)


class OperationType(Enum):
    """Types of operations that can be traced."""
    INTERCEPTED_CALL = "intercepted_call"
    METRICS_FLUSH = "metrics_flush"


@dataclass
class TraceContext:
    """Context information for a traced operation."""
    operation_type: OperationType
    experiment_id: Optional[str] = None
    model: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    start_time: float = field(default_factory=time.perf_counter)


class ExperimentTracer:
    """Tracing and counters for experiment calls and metric delivery."""

    def __init__(self, service_name: str = "promptlens"):
        self.service_name = service_name
        self.tracer = trace.get_tracer(service_name)
        self.meter = metrics.get_meter(service_name)

        self.call_counter = self.meter.create_counter(
            name="promptlens_intercepted_calls_total",
            description="Total number of intercepted model calls",
            unit="1"
        )
        self.call_duration = self.meter.create_histogram(
            name="promptlens_call_duration_ms",
            description="Latency of intercepted model calls",
            unit="ms"
        )
        self.flushed_counter = self.meter.create_counter(
            name="promptlens_metrics_flushed_total",
            description="Number of metric records delivered to the collector",
            unit="1"
        )

    @contextmanager
    def trace_operation(self, context: TraceContext) -> Iterator[Span]:
        """
        Context manager wrapping an operation in a span.

        Usage:
            with tracer.trace_operation(TraceContext(...)) as span:
                span.set_attribute("experiment.variant_index", 0)
        """
        with self.tracer.start_as_current_span(
            context.operation_type.value,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            self._set_span_attributes(span, context)
            context.start_time = time.perf_counter()
            try:
                yield span
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.set_attribute("error.type", type(e).__name__)
                self._record_operation(context, success=False)
                raise
            else:
                span.set_status(Status(StatusCode.OK))
                self._record_operation(context, success=True)

    def record_flushed(self, count: int) -> None:
        """Count records successfully delivered."""
        self.flushed_counter.add(count, {"service": self.service_name})

    def _set_span_attributes(self, span: Span, context: TraceContext) -> None:
        span.set_attribute("operation.type", context.operation_type.value)
        if context.experiment_id:
            span.set_attribute("experiment.id", context.experiment_id)
        if context.model:
            span.set_attribute("llm.model", context.model)
        for key, value in context.attributes.items():
            if isinstance(value, (str, int, float, bool)):
                span.set_attribute(key, value)

    def _record_operation(self, context: TraceContext, success: bool) -> None:
        if context.operation_type is not OperationType.INTERCEPTED_CALL:
            return

        duration_ms = (time.perf_counter() - context.start_time) * 1000
        attributes = {"success": str(success).lower()}
        if context.experiment_id:
            attributes["experiment_id"] = context.experiment_id
        self.call_counter.add(1, attributes)
        self.call_duration.record(duration_ms, attributes)


# Global tracer instance
_global_tracer: Optional[ExperimentTracer] = None


def get_tracer(service_name: str = "promptlens") -> ExperimentTracer:
    """Get or create the global tracer instance."""
    global _global_tracer

    if _global_tracer is None:
        _global_tracer = ExperimentTracer(service_name)
        logger.debug(f"ExperimentTracer initialized for {service_name}")

    return _global_tracer


__all__ = [
    "ExperimentTracer",
    "TraceContext",
    "OperationType",
    "get_tracer",
]
