"""Base model and timestamp coercion for record-store rows.

Every row model inherits from :class:`DeskdropBaseModel` which provides:

* ``populate_by_name`` so rows can be built from store column names
  (via ``validation_alias``) or from Python field names.
* A ``model_validator(mode="before")`` that drops ``None`` and blank
  strings so optional fields fall back to their defaults.
* A ``raw`` dict that captures the original row.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a store timestamp to a tz-aware datetime.

    Accepts ISO-8601 strings (``Z`` suffix included), epoch seconds or
    milliseconds, and datetimes. Naive values are taken as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


Timestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO strings and epoch numbers to aware datetimes."""


class DeskdropBaseModel(BaseModel):
    """Base for rows read from the shared record store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original row as received."""

    @model_validator(mode="before")
    @classmethod
    def _clean_row(cls, values: Any) -> Any:
        """Drop empty values and stash the raw row."""
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        # Keep an explicitly passed raw= (constructing by keyword).
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
