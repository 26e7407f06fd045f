"""Prompt helpers: template rendering, token estimates and error messages."""

import math
import re
from typing import Any

from ..types import PromptTemplate

_WHITESPACE = re.compile(r"\s+")

# Rough words-to-tokens ratio for English text.
TOKENS_PER_WORD = 1.3


def render_prompt(template: PromptTemplate) -> str:
    """
    Render a prompt template, replacing every ``{{name}}`` placeholder with
    the string form of the matching variable.
    """
    if not template.variables:
        return template.content

    rendered = template.content
    for key, value in template.variables.items():
        rendered = rendered.replace("{{" + key + "}}", str(value))
    return rendered


def estimate_token_count(text: str) -> int:
    """Very rough token estimate based on whitespace-separated words."""
    stripped = text.strip()
    if not stripped:
        return 0
    words = _WHITESPACE.split(stripped)
    return math.ceil(len(words) * TOKENS_PER_WORD)


def parse_api_error(error: Any) -> str:
    """Turn an arbitrary error value into a message string."""
    if isinstance(error, BaseException):
        return str(error)
    if isinstance(error, str):
        return error
    return "Unknown error occurred"
