"""Sensitive-field tokenization for pipeline contexts.

Values under keys that look sensitive (passwords, API keys, payment data)
are swapped for opaque ``TOKEN_<hex>`` strings before a run, so they never
show up in logs, stats, or intermediate results. The tokenizer keeps the
token -> value map and restores values on the way out.
"""

from __future__ import annotations

import secrets
from collections.abc import Iterable
from fnmatch import fnmatchcase
from typing import Any

DEFAULT_SENSITIVE_PATTERNS: tuple[str, ...] = (
    "*password*",
    "*_pass",
    "*_pwd",
    "*secret*",
    "*token",
    "*api_key*",
    "*private_key*",
    "user_email",
    "billing_*",
    "payment_*",
    "credit_card*",
    "ssn",
    "social_security*",
)

TOKEN_PREFIX = "TOKEN_"


class DataTokenizer:
    """Replace sensitive fields with tokens, and put them back later.

    Patterns are shell-style wildcards matched case-insensitively against
    mapping keys at any nesting depth.
    """

    def __init__(self, additional_patterns: Iterable[str] = ()) -> None:
        self.patterns = [
            p.lower() for p in (*DEFAULT_SENSITIVE_PATTERNS, *additional_patterns)
        ]
        self._tokens: dict[str, Any] = {}

    @property
    def token_count(self) -> int:
        return len(self._tokens)

    def is_sensitive(self, key: Any) -> bool:
        if not isinstance(key, str):
            return False
        key = key.lower()
        return any(fnmatchcase(key, pattern) for pattern in self.patterns)

    def tokenize(self, data: Any) -> Any:
        """Return a copy of *data* with sensitive values replaced by tokens."""
        if isinstance(data, dict):
            result: dict[Any, Any] = {}
            for key, value in data.items():
                if self.is_sensitive(key):
                    token = f"{TOKEN_PREFIX}{secrets.token_hex(16)}"
                    self._tokens[token] = value
                    result[key] = token
                else:
                    result[key] = self.tokenize(value)
            return result
        if isinstance(data, list):
            return [self.tokenize(item) for item in data]
        return data

    def detokenize(self, data: Any) -> Any:
        """Return a copy of *data* with every known token restored."""
        if isinstance(data, str):
            return self._tokens.get(data, data)
        if isinstance(data, dict):
            return {key: self.detokenize(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self.detokenize(item) for item in data]
        return data

    def clear(self) -> None:
        self._tokens.clear()
