"""Client for the PromptLens prompt-testing API."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import httpx

from . import __version__
from .core.config import PromptLensConfig
from .core.exceptions import APIError
from .metrics.queue import MetricsQueue
from .types import ABTestConfig, ExpectationResult, PromptTemplate, PromptTestConfig, PromptTestResult
from .utils.prompts import parse_api_error

logger = logging.getLogger(__name__)


class PromptLensClient:
    """
    Async client for the ``/test``, ``/ab-test`` and ``/log`` endpoints.

    Requests carry the API key as a bearer token and, when configured, the
    project id as a ``projectId`` query parameter.
    """

    def __init__(
        self,
        config: PromptLensConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        config.validate()
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "PromptLensClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def create_metrics_queue(self, **overrides: Any) -> MetricsQueue:
        """Metrics queue posting to this client's base URL."""
        options: Dict[str, Any] = {
            "api_key": self.config.api_key,
            "base_url": self.base_url,
            "enabled": self.config.track_metrics,
            "batch_size": self.config.metrics_batch_size,
            "flush_interval_ms": self.config.metrics_flush_interval_ms,
            "timeout": self.config.timeout_seconds,
        }
        options.update(overrides)
        return MetricsQueue(**options)

    async def test_prompt(
        self,
        prompt: Union[PromptTemplate, str],
        config: PromptTestConfig,
    ) -> PromptTestResult:
        """
        Run a prompt test remotely.

        Expectations carrying a ``validator`` are also checked here against
        the returned response; a failing or raising validator fails the test.
        Errors are reported in the result (``passed=False``) rather than
        raised.
        """
        if isinstance(prompt, str):
            prompt = PromptTemplate(content=prompt)

        start = time.perf_counter()
        try:
            data = await self._request(
                "POST",
                "/test",
                {"prompt": prompt.to_dict(), "config": config.to_dict()},
            )
        except (APIError, httpx.HTTPError) as e:
            logger.warning(f"Prompt test {config.name!r} failed: {e}")
            return PromptTestResult(
                passed=False,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                response=None,
                error=parse_api_error(e),
            )

        response = data.get("aiResponse")
        local_results = _run_local_validators(config, response)
        remote_results = [ExpectationResult.from_dict(r) for r in data.get("expectationResults") or []]

        return PromptTestResult(
            passed=bool(data.get("passed", False)) and all(r.passed for r in local_results),
            execution_time_ms=(time.perf_counter() - start) * 1000,
            response=response,
            expectation_results=remote_results + local_results,
        )

    async def run_ab_test(self, config: ABTestConfig) -> Any:
        """Start a remote A/B test between two prompt templates."""
        return await self._request("POST", "/ab-test", {"config": config.to_dict()})

    async def log_prompt(
        self,
        prompt: Union[PromptTemplate, str],
        response: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a prompt and its response for monitoring."""
        if isinstance(prompt, str):
            prompt = PromptTemplate(content=prompt)

        await self._request(
            "POST",
            "/log",
            {
                "prompt": prompt.to_dict(),
                "response": response,
                "metadata": metadata,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def _request(self, method: str, path: str, data: Optional[Dict[str, Any]] = None) -> Any:
        client = await self._get_http_client()

        params = {}
        if self.config.project_id:
            params["projectId"] = self.config.project_id

        response = await client.request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=data,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "X-SDK-Version": f"python-{__version__}",
            },
            timeout=self.config.timeout_seconds,
        )

        if not response.is_success:
            raise APIError(
                f"PromptLens API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        if not response.content:
            return None
        return response.json()


def _run_local_validators(config: PromptTestConfig, response: Any) -> List[ExpectationResult]:
    """Apply expectation validators to the remote response in-process."""
    results = []
    for expectation in config.expectations:
        if expectation.validator is None:
            continue
        description = expectation.description or f"{expectation.type.value} validator"
        try:
            passed = bool(expectation.validator(response))
        except Exception as e:
            logger.warning(f"Validator {description!r} raised: {e}")
            results.append(ExpectationResult(passed=False, description=description, error=str(e)))
            continue
        results.append(ExpectationResult(passed=passed, description=description))
    return results
