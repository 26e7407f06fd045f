"""
PromptLens SDK

Client-side prompt experimentation and telemetry for applications calling
generative-model APIs: deterministic prompt variant selection, call
interception, and batched at-least-once delivery of latency metrics.
"""

__version__ = "0.1.2"

from .core.config import PromptLensConfig
from .core.exceptions import (
    PromptLensError,
    InvalidInputError,
    ConfigurationError,
    DeliveryFailureError,
    APIError,
)
from .experiments import (
    DistributionMode,
    Experiment,
    ExperimentRegistry,
    ExperimentResult,
    VariantSelector,
    experiment_decorator,
    prompt_experiment,
)
from .metrics import InMemoryMetricsStore, MetricRecord, MetricsQueue
from .client import PromptLensClient

# Import submodules for easier access
from . import experiments
from . import metrics
from . import utils

__all__ = [
    "PromptLensConfig",
    "PromptLensError",
    "InvalidInputError",
    "ConfigurationError",
    "DeliveryFailureError",
    "APIError",
    "DistributionMode",
    "Experiment",
    "ExperimentRegistry",
    "ExperimentResult",
    "VariantSelector",
    "experiment_decorator",
    "prompt_experiment",
    "InMemoryMetricsStore",
    "MetricRecord",
    "MetricsQueue",
    "PromptLensClient",
    "experiments",
    "metrics",
    "utils",
]
