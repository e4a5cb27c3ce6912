"""Shared order entity and its lifecycle status."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from deskdrop.models._base import DeskdropBaseModel, Timestamp


class OrderStatus(StrEnum):
    """Delivery lifecycle, in canonical order.

    ``ORDERED`` -> ``COLLECTED`` (picked up at the gate by the front desk)
    -> ``ARRIVED`` (brought inside the office). ``ARRIVED`` is terminal.
    """

    ORDERED = "ordered"
    COLLECTED = "collected"
    ARRIVED = "arrived"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def label(self) -> str:
        """Display form, e.g. ``"Collected"``."""
        return self.value.capitalize()

    @property
    def is_terminal(self) -> bool:
        return self is OrderStatus.ARRIVED

    def can_advance_to(self, target: OrderStatus) -> bool:
        """True when *target* lies strictly after this status."""
        return target.rank > self.rank

    def next(self) -> OrderStatus | None:
        """The following status, or ``None`` from the terminal state."""
        for status in OrderStatus:
            if status.rank == self.rank + 1:
                return status
        return None


_STATUS_RANK: dict[OrderStatus, int] = {
    OrderStatus.ORDERED: 0,
    OrderStatus.COLLECTED: 1,
    OrderStatus.ARRIVED: 2,
}


class Order(DeskdropBaseModel):
    """One delivery, as stored in the shared order table.

    Field names are the engine's; ``validation_alias`` maps the store's
    snake_case columns (``order_id``, ``employee_name`` ...) onto them.
    """

    id: str = Field(validation_alias=AliasChoices("id"))
    """Server-assigned identifier."""

    order_reference: str = Field(validation_alias=AliasChoices("order_id", "order_reference", "orderReference"))
    """Tracking code from the delivery platform."""

    owner_name: str = Field(validation_alias=AliasChoices("employee_name", "owner_name", "ownerName"))
    owner_phone: str = Field(
        default="",
        validation_alias=AliasChoices("phone_number", "owner_phone", "ownerPhone"),
    )

    estimated_delivery_time: Timestamp = Field(
        validation_alias=AliasChoices("estimated_delivery", "estimated_delivery_time", "estimatedDeliveryTime"),
    )
    status: OrderStatus = Field(default=OrderStatus.ORDERED, validation_alias=AliasChoices("status"))
    created_at: Timestamp = Field(validation_alias=AliasChoices("created_at", "createdAt"))

    platform: str | None = Field(default=None, validation_alias=AliasChoices("platform"))
    notes: str | None = Field(default=None, validation_alias=AliasChoices("notes"))

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Some stores hand out integer keys.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def is_delivered(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Order:
        """Map a raw store row to an :class:`Order`.

        Raises ``pydantic.ValidationError`` when required columns are
        missing or unparsable.
        """
        return cls.model_validate(record)

    def to_record(self) -> dict[str, Any]:
        """Inverse of :meth:`from_record`, using the store's column names."""
        record: dict[str, Any] = {
            "id": self.id,
            "order_id": self.order_reference,
            "employee_name": self.owner_name,
            "phone_number": self.owner_phone,
            "estimated_delivery": self.estimated_delivery_time.isoformat(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }
        if self.platform is not None:
            record["platform"] = self.platform
        if self.notes is not None:
            record["notes"] = self.notes
        return record


def new_order_record(
    *,
    order_reference: str,
    owner_name: str,
    owner_phone: str,
    estimated_delivery_time: datetime,
    platform: str | None = None,
    notes: str | None = None,
) -> dict[str, Any]:
    """Build the column mapping for inserting a fresh order.

    ``id`` and ``created_at`` are assigned by the store.
    """
    record: dict[str, Any] = {
        "order_id": order_reference,
        "employee_name": owner_name,
        "phone_number": owner_phone,
        "estimated_delivery": estimated_delivery_time.isoformat(),
        "status": OrderStatus.ORDERED.value,
    }
    if platform:
        record["platform"] = platform
    if notes:
        record["notes"] = notes
    return record
