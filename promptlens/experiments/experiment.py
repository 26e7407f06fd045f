"""Experiment definitions and results."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar, Union

from ..core.exceptions import InvalidInputError
from ..metrics.records import MetricRecord
from .selection import DistributionMode

T = TypeVar("T")


def generate_experiment_id() -> str:
    """Process-unique experiment identifier."""
    return f"exp_{uuid.uuid4().hex[:12]}"


@dataclass
class Experiment:
    """A named set of prompt variants plus a selection policy."""
    prompt_variants: List[str]
    id: str = field(default_factory=generate_experiment_id)
    distribution: Union[DistributionMode, str] = DistributionMode.ROUND_ROBIN
    weights: Optional[List[float]] = None
    track_metrics: bool = True
    model: Optional[str] = None  # label used when the call arguments name no model

    def __post_init__(self):
        self.distribution = DistributionMode.parse(self.distribution)
        self.prompt_variants = list(self.prompt_variants)

        if not self.prompt_variants:
            raise InvalidInputError(
                f"Experiment {self.id} needs at least one prompt variant"
            )

        if self.distribution is DistributionMode.WEIGHTED:
            if self.weights is None or len(self.weights) != len(self.prompt_variants):
                raise InvalidInputError(
                    f"Experiment {self.id}: weights must match the number of prompt variants",
                    {"variants": len(self.prompt_variants), "weights": self.weights},
                )
            if any(w <= 0 for w in self.weights):
                raise InvalidInputError(
                    f"Experiment {self.id}: weights must be strictly positive",
                    {"weights": self.weights},
                )
            self.weights = list(self.weights)
        elif self.weights is not None:
            raise InvalidInputError(
                f"Experiment {self.id}: weights are only allowed with weighted distribution",
                {"distribution": self.distribution.value},
            )


@dataclass
class ExperimentInfo:
    """Which variant an intercepted call used."""
    id: str
    variant_index: int
    prompt_variant: str
    metrics: MetricRecord


@dataclass
class ExperimentResult(Generic[T]):
    """Response of the wrapped call plus experiment metadata."""
    response: T
    experiment: ExperimentInfo
