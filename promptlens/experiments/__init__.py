"""Prompt experiments: variant selection and call interception."""

from .registry import (
    ExperimentRegistry,
    RotationState,
    get_default_registry,
)

from .selection import (
    DistributionMode,
    VariantSelector,
)

from .experiment import (
    Experiment,
    ExperimentInfo,
    ExperimentResult,
    generate_experiment_id,
)

from .interceptor import (
    CallInterceptor,
    PayloadShape,
    classify_payload,
    substitute_prompt,
    resolve_model,
    prompt_experiment,
    experiment_decorator,
)

__all__ = [
    "ExperimentRegistry",
    "RotationState",
    "get_default_registry",
    "DistributionMode",
    "VariantSelector",
    "Experiment",
    "ExperimentInfo",
    "ExperimentResult",
    "generate_experiment_id",
    "CallInterceptor",
    "PayloadShape",
    "classify_payload",
    "substitute_prompt",
    "resolve_model",
    "prompt_experiment",
    "experiment_decorator",
]
