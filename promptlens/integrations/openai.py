"""
OpenAI integration: runs prompt experiments on ``chat.completions.create``.

Only the ``create`` method is wrapped; every other attribute of the client
is passed through untouched.
"""

import logging
from typing import Any, Optional, Union

from openai import AsyncOpenAI, OpenAI

from ..experiments.experiment import Experiment
from ..experiments.interceptor import CallInterceptor, prompt_experiment
from ..experiments.selection import VariantSelector
from ..metrics.queue import MetricsQueue

logger = logging.getLogger(__name__)


class ExperimentalOpenAI:
    """
    OpenAI client whose chat completions run an experiment.

    ``await client.chat.completions.create(...)`` returns an
    ``ExperimentResult`` wrapping the usual completion. Sync ``OpenAI`` and
    ``AsyncOpenAI`` clients are both accepted.

    Example:
        >>> client = ExperimentalOpenAI(
        ...     AsyncOpenAI(),
        ...     Experiment(id="explanation-styles", prompt_variants=[
        ...         "Explain recursion like I'm 5 years old",
        ...         "Explain recursion with a technical definition",
        ...     ]),
        ...     metrics_queue=queue,
        ... )
        >>> result = await client.chat.completions.create(
        ...     model="gpt-4o-mini",
        ...     messages=[{"role": "user", "content": "placeholder"}],
        ... )
    """

    def __init__(
        self,
        client: Optional[Union[OpenAI, AsyncOpenAI, Any]] = None,
        experiment: Optional[Experiment] = None,
        metrics_queue: Optional[MetricsQueue] = None,
        selector: Optional[VariantSelector] = None,
        timeout: Optional[float] = None,
    ):
        if experiment is None:
            raise ValueError("An experiment is required")

        self._client = client if client is not None else AsyncOpenAI()
        self.experiment = experiment
        self.metrics_queue = metrics_queue
        self._create = prompt_experiment(
            self._client.chat.completions.create,
            experiment,
            selector=selector,
            metrics=metrics_queue,
            timeout=timeout,
        )
        self.chat = _WrappedChat(self._client.chat, self._create)
        logger.debug(f"ExperimentalOpenAI wrapping experiment {experiment.id}")

    @property
    def interceptor(self) -> CallInterceptor:
        return self._create

    def __getattr__(self, name: str) -> Any:
        """Forward everything else to the underlying client."""
        return getattr(self._client, name)


class _WrappedChat:
    def __init__(self, original_chat: Any, create: CallInterceptor):
        self._original_chat = original_chat
        self.completions = _WrappedCompletions(original_chat.completions, create)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._original_chat, name)


class _WrappedCompletions:
    def __init__(self, original_completions: Any, create: CallInterceptor):
        self._original_completions = original_completions
        self.create = create

    def __getattr__(self, name: str) -> Any:
        return getattr(self._original_completions, name)
