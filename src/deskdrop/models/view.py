"""Materialized view state."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from deskdrop.models.order import Order


class ViewKind(StrEnum):
    MINE = "mine"
    TRACKING = "tracking"


class ViewState(BaseModel):
    """What a view currently shows.

    ``orders`` is only ever replaced wholesale, never patched in place.
    """

    model_config = ConfigDict(validate_assignment=True)

    orders: list[Order] = Field(default_factory=list)
    loading: bool = False
    error: str | None = None
