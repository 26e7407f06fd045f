"""Prompt substitution and metric capture around outbound model calls."""

import asyncio
import functools
import inspect
import logging
import time
from collections.abc import Mapping
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..metrics.queue import MetricsQueue
from ..metrics.records import MetricRecord
from ..utils.hashing import hash_prompt, hash_user_id
from ..utils.prompts import estimate_token_count
from ..utils.telemetry import OperationType, TraceContext, get_tracer
from .experiment import Experiment, ExperimentInfo, ExperimentResult
from .selection import VariantSelector

logger = logging.getLogger(__name__)

UNKNOWN_MODEL = "unknown"

# Attribute looked up on the owning instance when a wrapped method has no queue
METRICS_ATTRIBUTE = "metrics_queue"


class PayloadShape(Enum):
    """Request payload layouts the prompt can be substituted into."""
    MESSAGE_LIST = auto()          # [{"role": ..., "content": ...}, ...]
    OBJECT_WITH_MESSAGES = auto()  # {"messages": [...], ...}
    OBJECT_WITH_PROMPT = auto()    # {"prompt": "...", ...}
    UNRECOGNIZED = auto()


def _request_payload(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
    """The first positional argument, or the keyword arguments when there is none."""
    if args:
        return args[0]
    if kwargs:
        return kwargs
    return None


def classify_payload(payload: Any) -> PayloadShape:
    """Resolve which shape ``payload`` has."""
    if isinstance(payload, (list, tuple)):
        return PayloadShape.MESSAGE_LIST
    if isinstance(payload, Mapping):
        if isinstance(payload.get("messages"), (list, tuple)):
            return PayloadShape.OBJECT_WITH_MESSAGES
        if "prompt" in payload:
            return PayloadShape.OBJECT_WITH_PROMPT
    return PayloadShape.UNRECOGNIZED


def _replace_user_message(messages: Any, prompt: str) -> List[Any]:
    """Copy of ``messages`` with the first user message's content replaced."""
    replaced = list(messages)
    for i, message in enumerate(replaced):
        if isinstance(message, Mapping) and message.get("role") == "user":
            replaced[i] = {**message, "content": prompt}
            break
    return replaced


def substitute_prompt(
    args: Tuple[Any, ...],
    kwargs: Dict[str, Any],
    prompt: str,
) -> Tuple[PayloadShape, Tuple[Any, ...], Dict[str, Any]]:
    """
    Put ``prompt`` into the call arguments.

    Tried in order: a list of role/content messages (first ``user`` message
    gets the prompt), a mapping with a ``messages`` list (same rule), a
    mapping with a ``prompt`` field (overwritten). Anything else passes
    through unchanged. The caller's objects are never mutated.
    """
    payload = _request_payload(args, kwargs)
    shape = classify_payload(payload)

    if shape is PayloadShape.MESSAGE_LIST:
        new_payload: Any = _replace_user_message(payload, prompt)
    elif shape is PayloadShape.OBJECT_WITH_MESSAGES:
        new_payload = {**payload, "messages": _replace_user_message(payload["messages"], prompt)}
    elif shape is PayloadShape.OBJECT_WITH_PROMPT:
        new_payload = {**payload, "prompt": prompt}
    else:
        return shape, args, kwargs

    if args:
        return shape, (new_payload,) + tuple(args[1:]), kwargs
    return shape, (), new_payload


def resolve_model(
    args: Tuple[Any, ...],
    kwargs: Dict[str, Any],
    default: Optional[str] = None,
) -> str:
    """
    Best-effort model name for labelling metrics; never raises.

    Looks at a ``model`` key or attribute of the first argument or the keyword
    arguments, then at a string second argument, then falls back to
    ``default`` and finally ``"unknown"``.
    """
    try:
        if args and isinstance(args[0], Mapping) and args[0].get("model"):
            return str(args[0]["model"])
        if args and getattr(args[0], "model", None):
            return str(args[0].model)
        if kwargs.get("model"):
            return str(kwargs["model"])
        if len(args) > 1 and isinstance(args[1], str):
            return args[1]
    except Exception as e:
        logger.debug(f"Could not resolve model from call arguments: {e}")
    return default or UNKNOWN_MODEL


class CallInterceptor:
    """
    Async callable that runs ``call`` with the experiment's next prompt
    variant and returns an ``ExperimentResult``.

    Created by ``prompt_experiment``. Sync and async targets are both
    supported; the interceptor itself is always awaited. Failures of the
    target propagate unchanged and record no metric. Metric delivery runs in
    the background and its errors are logged, never raised.
    """

    def __init__(
        self,
        call: Callable[..., Any],
        experiment: Experiment,
        selector: Optional[VariantSelector] = None,
        metrics: Optional[MetricsQueue] = None,
        timeout: Optional[float] = None,
        user_id_kwarg: Optional[str] = "user_id",
        _pending: Optional[Set[asyncio.Task]] = None,
    ):
        self.call = call
        self.experiment = experiment
        self.selector = selector or VariantSelector()
        self.metrics = metrics
        self.timeout = timeout
        self.user_id_kwarg = user_id_kwarg
        self._pending: Set[asyncio.Task] = _pending if _pending is not None else set()
        self._tracer = get_tracer()
        functools.update_wrapper(self, call, updated=())

    @property
    def experiment_id(self) -> str:
        return self.experiment.id

    def __get__(self, instance: Any, owner: Any = None) -> "CallInterceptor":
        """Bind to ``instance`` when used as a method decorator."""
        if instance is None:
            return self
        metrics = self.metrics
        if metrics is None:
            metrics = getattr(instance, METRICS_ATTRIBUTE, None)
        return CallInterceptor(
            self.call.__get__(instance, owner),
            self.experiment,
            selector=self.selector,
            metrics=metrics,
            timeout=self.timeout,
            user_id_kwarg=self.user_id_kwarg,
            _pending=self._pending,
        )

    async def __call__(self, *args: Any, **kwargs: Any) -> ExperimentResult:
        experiment = self.experiment
        user_id = kwargs.pop(self.user_id_kwarg, None) if self.user_id_kwarg else None
        if user_id is not None:
            user_id = str(user_id)

        variant_index, prompt = self.selector.select_with_index(
            experiment.id,
            experiment.prompt_variants,
            experiment.distribution,
            experiment.weights,
            user_id,
        )
        shape, call_args, call_kwargs = substitute_prompt(args, kwargs, prompt)
        model = resolve_model(args, kwargs, experiment.model)

        context = TraceContext(
            operation_type=OperationType.INTERCEPTED_CALL,
            experiment_id=experiment.id,
            model=model,
            attributes={
                "experiment.variant_index": variant_index,
                "experiment.payload_shape": shape.name,
            },
        )
        with self._tracer.trace_operation(context):
            start = time.perf_counter()
            response = await self._invoke(call_args, call_kwargs)
            latency_ms = (time.perf_counter() - start) * 1000

        record = MetricRecord(
            experiment_id=experiment.id,
            prompt_hash=hash_prompt(prompt),
            model=model,
            latency_ms=latency_ms,
            timestamp=int(time.time() * 1000),
            user_id=hash_user_id(user_id) if user_id else None,
            custom_metrics={"prompt_tokens_estimate": estimate_token_count(prompt)},
        )

        if experiment.track_metrics and self.metrics is not None:
            task = asyncio.get_running_loop().create_task(self._log_metric(record))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return ExperimentResult(
            response=response,
            experiment=ExperimentInfo(
                id=experiment.id,
                variant_index=variant_index,
                prompt_variant=prompt,
                metrics=record,
            ),
        )

    async def wait_for_metrics(self) -> None:
        """Wait until every metric handed to the queue has been processed."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def _invoke(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
        result = self.call(*args, **kwargs)
        if inspect.isawaitable(result):
            if self.timeout is not None:
                return await asyncio.wait_for(result, self.timeout)
            return await result
        return result

    async def _log_metric(self, record: MetricRecord) -> None:
        try:
            await self.metrics.enqueue(record)
        except Exception as e:
            logger.warning(f"Failed to log metric for experiment {record.experiment_id}: {e}")


def prompt_experiment(
    call: Callable[..., Any],
    experiment: Experiment,
    *,
    selector: Optional[VariantSelector] = None,
    metrics: Optional[MetricsQueue] = None,
    timeout: Optional[float] = None,
    user_id_kwarg: Optional[str] = "user_id",
) -> CallInterceptor:
    """
    Wrap ``call`` so each invocation runs an experiment.

    Args:
        call: Sync or async function taking the model request.
        experiment: Variants and distribution to use.
        selector: Variant selector; defaults to one backed by the
            process-wide registry.
        metrics: Queue receiving a MetricRecord per successful call.
        timeout: Seconds allowed for an async call before it fails.
        user_id_kwarg: Keyword argument holding the caller's user id. It is
            removed before ``call`` is invoked and switches round-robin to
            per-user rotation. ``None`` disables it.

    Example:
        >>> create = prompt_experiment(
        ...     client.chat.completions.create,
        ...     Experiment(id="tone", prompt_variants=["Be brief.", "Be thorough."]),
        ...     metrics=queue,
        ... )
        >>> result = await create(model="gpt-4o", messages=[{"role": "user", "content": ""}])
        >>> result.experiment.variant_index
        0
    """
    return CallInterceptor(
        call,
        experiment,
        selector=selector,
        metrics=metrics,
        timeout=timeout,
        user_id_kwarg=user_id_kwarg,
    )


def experiment_decorator(experiment: Experiment, **options: Any) -> Callable[[Callable[..., Any]], CallInterceptor]:
    """
    Decorator form of ``prompt_experiment``.

    On methods the queue defaults to the instance's ``metrics_queue``
    attribute.
    """
    def decorator(func: Callable[..., Any]) -> CallInterceptor:
        return prompt_experiment(func, experiment, **options)
    return decorator
