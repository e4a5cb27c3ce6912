from __future__ import annotations

from datetime import UTC, datetime

from deskdrop.models.order import Order, OrderStatus
from deskdrop.sorting import SortKey, filter_by_status, sort_orders


def _order(
    ref: str,
    status: OrderStatus,
    *,
    created: tuple[int, int],
    eta: tuple[int, int] = (12, 30),
) -> Order:
    return Order(
        id=ref,
        order_reference=ref,
        owner_name="Alice",
        estimated_delivery_time=datetime(2026, 3, 2, *eta, tzinfo=UTC),
        status=status,
        created_at=datetime(2026, 3, 2, *created, tzinfo=UTC),
    )


def test_arrived_orders_sink_even_when_newer() -> None:
    arrived = _order("A", OrderStatus.ARRIVED, created=(10, 0))
    ordered = _order("B", OrderStatus.ORDERED, created=(9, 0))

    result = sort_orders([arrived, ordered], SortKey.CREATED_AT)

    assert [o.order_reference for o in result] == ["B", "A"]


def test_delivery_time_sort_is_ascending_within_groups() -> None:
    late = _order("late", OrderStatus.ORDERED, created=(9, 0), eta=(13, 30))
    early = _order("early", OrderStatus.COLLECTED, created=(9, 5), eta=(12, 15))
    done = _order("done", OrderStatus.ARRIVED, created=(8, 0), eta=(11, 0))

    result = sort_orders([done, late, early])

    assert [o.order_reference for o in result] == ["early", "late", "done"]


def test_created_at_sort_is_newest_first() -> None:
    first = _order("first", OrderStatus.ORDERED, created=(9, 0))
    second = _order("second", OrderStatus.ORDERED, created=(11, 0))

    result = sort_orders([first, second], SortKey.CREATED_AT)

    assert [o.order_reference for o in result] == ["second", "first"]


def test_status_sort_is_lexical_on_value() -> None:
    ordered = _order("o", OrderStatus.ORDERED, created=(9, 0))
    collected = _order("c", OrderStatus.COLLECTED, created=(9, 0))

    result = sort_orders([ordered, collected], SortKey.STATUS)

    assert [o.order_reference for o in result] == ["c", "o"]


def test_filter_applies_before_sort() -> None:
    orders = [
        _order("a", OrderStatus.ORDERED, created=(9, 0)),
        _order("b", OrderStatus.ARRIVED, created=(9, 1)),
        _order("c", OrderStatus.ORDERED, created=(9, 2)),
    ]

    result = sort_orders(orders, SortKey.CREATED_AT, status=OrderStatus.ORDERED)

    assert [o.order_reference for o in result] == ["c", "a"]
    assert filter_by_status(orders, None) == orders


def test_ties_keep_input_order() -> None:
    orders = [_order(ref, OrderStatus.ORDERED, created=(9, 0)) for ref in ("x", "y", "z")]

    result = sort_orders(orders, SortKey.DELIVERY_TIME)

    assert [o.order_reference for o in result] == ["x", "y", "z"]


def test_sort_accepts_plain_string_key() -> None:
    orders = [_order("a", OrderStatus.ORDERED, created=(9, 0)), _order("b", OrderStatus.ORDERED, created=(10, 0))]
    assert [o.order_reference for o in sort_orders(orders, "createdAt")] == ["b", "a"]  # type: ignore[arg-type]
