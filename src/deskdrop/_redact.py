"""Helpers for safe debug logging.

Order rows carry personal data (phone numbers) and every request carries
the API key. Redact both before anything reaches a DEBUG log line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SECRET_KEYS: frozenset[str] = frozenset({"apikey", "api_key", "authorization", "cookie"})

# Masked rather than dropped so two rows can still be told apart in logs.
_PHONE_KEYS: frozenset[str] = frozenset({"phone_number", "phonenumber", "owner_phone", "ownerphone"})


def mask_phone(value: Any) -> str:
    digits = [ch for ch in str(value) if ch.isdigit()]
    if len(digits) <= 2:
        return "<masked>"
    return "*" * (len(digits) - 2) + "".join(digits[-2:])


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 10:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SECRET_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _PHONE_KEYS and v is not None:
                redacted[key] = mask_phone(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
