"""Change-feed events from the shared record store."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """One insert/update/delete notification.

    ``new`` is absent for deletes; ``old`` usually carries only the row id
    for deletes and may be empty for updates depending on the store's
    replica identity.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_type: ChangeType = Field(validation_alias=AliasChoices("eventType", "event_type", "type"))
    table: str = ""
    new: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("new", "record"))
    old: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("old", "old_record"))
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("event_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("new", "old", mode="before")
    @classmethod
    def _empty_to_none(cls, value: Any) -> Any:
        if isinstance(value, dict) and not value:
            return None
        return value
