"""Locally persisted ownership record."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from deskdrop.models._base import Timestamp


class OwnershipRecord(BaseModel):
    """Links an order reference to the device that placed it.

    Serialized with camelCase keys (``orderReference``, ``placedAt``,
    ``ownerName``). Never mutated once written.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    order_reference: str
    placed_at: Timestamp
    owner_name: str
