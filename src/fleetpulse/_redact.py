"""Helpers for safe diagnostic logging.

Broker messages can carry credentials or bearer tokens in their headers,
and dropped-message diagnostics echo header values back to operators.
This module redacts sensitive fields and truncates long values before
they are logged.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "token",
        "authorization",
        "cookie",
        "x-api-key",
        "apikey",
        "sasl_plain_password",
        "aws_secret_access_key",
        "aws_session_token",
    }
)


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for log output."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, (bytes, bytearray)):
        try:
            text = bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return f"<bytes:{len(value)}b>"
        return redact_for_log(text, max_string=max_string, _depth=_depth + 1)

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
