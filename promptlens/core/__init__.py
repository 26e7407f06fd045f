"""
Core components for the PromptLens SDK.
"""

from .config import PromptLensConfig
from .exceptions import (
    PromptLensError,
    InvalidInputError,
    ConfigurationError,
    DeliveryFailureError,
    APIError,
)

__all__ = [
    "PromptLensConfig",
    "PromptLensError",
    "InvalidInputError",
    "ConfigurationError",
    "DeliveryFailureError",
    "APIError",
]
