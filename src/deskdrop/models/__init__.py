"""Data models for deskdrop."""

from deskdrop.models._base import DeskdropBaseModel, Timestamp, parse_timestamp
from deskdrop.models.change import ChangeEvent, ChangeType
from deskdrop.models.order import Order, OrderStatus, new_order_record
from deskdrop.models.ownership import OwnershipRecord
from deskdrop.models.view import ViewKind, ViewState

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "DeskdropBaseModel",
    "Order",
    "OrderStatus",
    "OwnershipRecord",
    "Timestamp",
    "ViewKind",
    "ViewState",
    "new_order_record",
    "parse_timestamp",
]
