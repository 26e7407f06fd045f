"""Client configuration."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

DEFAULT_BASE_URL = "https://api.promptlens.dev"
DEFAULT_TIMEOUT_MS = 30000

ENV_PREFIX = "PROMPTLENS_"


@dataclass
class PromptLensConfig:
    """Configuration options for the PromptLens client and metrics pipeline."""
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    project_id: Optional[str] = None
    metrics_batch_size: int = 10
    metrics_flush_interval_ms: int = 5000
    track_metrics: bool = True

    def validate(self) -> None:
        """Check the configuration, raising ConfigurationError when invalid."""
        if not self.api_key:
            raise ConfigurationError("API key is required")

        if not isinstance(self.api_key, str) or not self.api_key.strip():
            raise ConfigurationError("API key must be a non-empty string")

        if not isinstance(self.base_url, str) or not self.base_url:
            raise ConfigurationError("Base URL must be a non-empty string")

        if not isinstance(self.timeout_ms, (int, float)) or self.timeout_ms <= 0:
            raise ConfigurationError(
                "Timeout must be a positive number",
                {"timeout_ms": self.timeout_ms},
            )

        if self.metrics_batch_size < 1:
            raise ConfigurationError("Metrics batch size must be at least 1")

        if self.metrics_flush_interval_ms <= 0:
            raise ConfigurationError("Metrics flush interval must be positive")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "PromptLensConfig":
        """
        Build a configuration from ``PROMPTLENS_*`` environment variables.

        A ``.env`` file is loaded first if present; variables already set in
        the environment win.
        """
        load_dotenv(dotenv_path)

        timeout = os.environ.get(f"{ENV_PREFIX}TIMEOUT_MS")
        try:
            timeout_ms = int(timeout) if timeout else DEFAULT_TIMEOUT_MS
        except ValueError as e:
            raise ConfigurationError(
                f"{ENV_PREFIX}TIMEOUT_MS must be an integer: {timeout!r}"
            ) from e

        config = cls(
            api_key=os.environ.get(f"{ENV_PREFIX}API_KEY", ""),
            base_url=os.environ.get(f"{ENV_PREFIX}BASE_URL") or DEFAULT_BASE_URL,
            timeout_ms=timeout_ms,
            project_id=os.environ.get(f"{ENV_PREFIX}PROJECT_ID") or None,
        )
        config.validate()
        return config
