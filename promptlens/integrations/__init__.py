"""Integrations with model provider SDKs."""

from .openai import ExperimentalOpenAI

__all__ = [
    "ExperimentalOpenAI",
]
