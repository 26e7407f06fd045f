"""One-way hashing of prompts and user identifiers for metric keys."""

import hashlib


def hash_value(value: str) -> str:
    """Return the SHA-256 hex digest of ``value``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_prompt(prompt: str) -> str:
    """Hash prompt text so raw prompts never leave the process in metrics."""
    return hash_value(prompt)


def hash_user_id(user_id: str) -> str:
    """Hash a user identifier for privacy."""
    return hash_value(user_id)
