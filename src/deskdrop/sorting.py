"""Priority ordering for order lists."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import Any

from deskdrop.models.order import Order, OrderStatus


class SortKey(StrEnum):
    DELIVERY_TIME = "estimatedDelivery"
    CREATED_AT = "createdAt"
    STATUS = "status"


_SECONDARY: dict[SortKey, Callable[[Order], Any]] = {
    SortKey.DELIVERY_TIME: lambda order: order.estimated_delivery_time.timestamp(),
    SortKey.CREATED_AT: lambda order: -order.created_at.timestamp(),
    SortKey.STATUS: lambda order: order.status.value,
}


def filter_by_status(orders: Iterable[Order], status: OrderStatus | None) -> list[Order]:
    if status is None:
        return list(orders)
    return [order for order in orders if order.status is status]


def sort_orders(
    orders: Iterable[Order],
    sort_key: SortKey = SortKey.DELIVERY_TIME,
    *,
    status: OrderStatus | None = None,
) -> list[Order]:
    """Return *orders* filtered to *status* (if given) and priority sorted.

    Orders that have not arrived always come before arrived ones; the
    secondary key only orders within each of those two groups. The sort
    is stable, so ties keep their input order.
    """
    secondary = _SECONDARY[SortKey(sort_key)]
    return sorted(
        filter_by_status(orders, status),
        key=lambda order: (order.status.is_terminal, secondary(order)),
    )
