"""Historical board: pick orders for a day, week or month and summarize them."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo
from enum import StrEnum

from deskdrop._time import to_local
from deskdrop.models.order import Order, OrderStatus


class HistoryMode(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class HistoryStats:
    total: int = 0
    completed: int = 0
    pending: int = 0
    platforms: dict[str, int] = field(default_factory=dict)


def week_bounds(selected: date) -> tuple[date, date]:
    """Sunday-to-Saturday week containing *selected*, inclusive."""
    # date.weekday(): Monday=0 .. Sunday=6
    start = selected - timedelta(days=(selected.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def filter_history(
    orders: Iterable[Order],
    selected: date,
    mode: HistoryMode = HistoryMode.DAY,
    *,
    zone: tzinfo | None = None,
) -> list[Order]:
    """Orders created in the period around *selected*, newest first."""
    first, last = week_bounds(selected) if mode is HistoryMode.WEEK else (selected, selected)
    result: list[Order] = []
    for order in orders:
        created = to_local(order.created_at, zone).date()
        if mode is HistoryMode.DAY:
            keep = created == selected
        elif mode is HistoryMode.WEEK:
            keep = first <= created <= last
        else:
            keep = (created.year, created.month) == (selected.year, selected.month)
        if keep:
            result.append(order)
    result.sort(key=lambda order: order.created_at, reverse=True)
    return result


def summarize(orders: Iterable[Order]) -> HistoryStats:
    """Count orders; "completed" means arrived inside the office."""
    total = 0
    completed = 0
    platforms: Counter[str] = Counter()
    for order in orders:
        total += 1
        if order.status is OrderStatus.ARRIVED:
            completed += 1
        if order.platform:
            platforms[order.platform] += 1
    return HistoryStats(
        total=total,
        completed=completed,
        pending=total - completed,
        platforms=dict(platforms),
    )
