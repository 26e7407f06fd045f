"""
Exception classes for the PromptLens SDK.
"""

from typing import Any, Dict, Optional


class PromptLensError(Exception):
    """Base exception for all PromptLens errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InvalidInputError(PromptLensError):
    """Raised when selection input or an experiment definition is invalid."""
    pass


class ConfigurationError(InvalidInputError):
    """Raised when the client configuration is invalid."""
    pass


class DeliveryFailureError(PromptLensError):
    """Raised when a batch of metrics could not be delivered to the collector."""

    def __init__(
        self,
        message: str,
        requeued: int,
        status_code: Optional[int] = None,
        error_details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_details)
        self.requeued = requeued
        self.status_code = status_code


class APIError(PromptLensError):
    """Raised when the PromptLens API answers with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        error_details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_details)
        self.status_code = status_code
        self.body = body
