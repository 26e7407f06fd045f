"""Utility helpers for the PromptLens SDK."""

from .hashing import hash_value, hash_prompt, hash_user_id
from .prompts import render_prompt, estimate_token_count, parse_api_error

__all__ = [
    "hash_value",
    "hash_prompt",
    "hash_user_id",
    "render_prompt",
    "estimate_token_count",
    "parse_api_error",
]
