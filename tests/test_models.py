from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from deskdrop.models import ChangeEvent, ChangeType, Order, OrderStatus, OwnershipRecord
from deskdrop.models._base import parse_timestamp
from deskdrop.models.order import new_order_record


def _row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": 42,
        "order_id": "ZMT-4411",
        "employee_name": "Alice",
        "phone_number": "555-0100",
        "estimated_delivery": "2026-03-02T12:45:00Z",
        "status": "Collected",
        "created_at": "2026-03-02T11:40:12.123456+00:00",
        "platform": "Zomato",
        "notes": "",
    }
    row.update(overrides)
    return row


class TestOrderStatus:
    def test_canonical_order(self) -> None:
        assert [s.rank for s in OrderStatus] == [0, 1, 2]
        assert OrderStatus.ORDERED.next() is OrderStatus.COLLECTED
        assert OrderStatus.COLLECTED.next() is OrderStatus.ARRIVED
        assert OrderStatus.ARRIVED.next() is None

    def test_only_forward_transitions(self) -> None:
        assert OrderStatus.ORDERED.can_advance_to(OrderStatus.ARRIVED)
        assert not OrderStatus.COLLECTED.can_advance_to(OrderStatus.COLLECTED)
        assert not OrderStatus.ARRIVED.can_advance_to(OrderStatus.ORDERED)

    def test_label_and_terminal(self) -> None:
        assert OrderStatus.COLLECTED.label == "Collected"
        assert OrderStatus.ARRIVED.is_terminal
        assert not OrderStatus.ORDERED.is_terminal


class TestOrder:
    def test_maps_store_columns(self) -> None:
        order = Order.from_record(_row())

        assert order.id == "42"
        assert order.order_reference == "ZMT-4411"
        assert order.owner_name == "Alice"
        assert order.owner_phone == "555-0100"
        assert order.status is OrderStatus.COLLECTED
        assert order.estimated_delivery_time == datetime(2026, 3, 2, 12, 45, tzinfo=UTC)
        assert order.created_at.tzinfo is not None
        assert order.platform == "Zomato"
        assert order.notes is None
        assert order.raw["order_id"] == "ZMT-4411"

    def test_missing_optional_columns_use_defaults(self) -> None:
        row = _row(phone_number=None, platform=None)
        del row["status"]
        order = Order.from_record(row)

        assert order.owner_phone == ""
        assert order.platform is None
        assert order.status is OrderStatus.ORDERED
        assert not order.is_delivered

    def test_missing_required_column_raises(self) -> None:
        row = _row()
        del row["order_id"]
        with pytest.raises(ValidationError):
            Order.from_record(row)

    def test_unknown_status_raises(self) -> None:
        with pytest.raises(ValidationError):
            Order.from_record(_row(status="lost"))

    def test_orders_are_immutable(self) -> None:
        order = Order.from_record(_row())
        with pytest.raises(ValidationError):
            order.status = OrderStatus.ARRIVED  # type: ignore[misc]

    def test_to_record_restores_store_columns(self) -> None:
        order = Order.from_record(_row())
        record = order.to_record()

        assert record["id"] == "42"
        assert record["order_id"] == "ZMT-4411"
        assert record["status"] == "collected"
        assert "notes" not in record
        assert Order.from_record(record).to_record() == record

    def test_new_order_record_uses_store_columns(self) -> None:
        record = new_order_record(
            order_reference="SWG-1",
            owner_name="Bob",
            owner_phone="",
            estimated_delivery_time=datetime(2026, 3, 2, 13, 0, tzinfo=UTC),
            platform="Swiggy",
        )
        assert record == {
            "order_id": "SWG-1",
            "employee_name": "Bob",
            "phone_number": "",
            "estimated_delivery": "2026-03-02T13:00:00+00:00",
            "status": "ordered",
            "platform": "Swiggy",
        }


class TestTimestamps:
    def test_epoch_seconds_and_millis(self) -> None:
        assert parse_timestamp(1_772_452_800) == parse_timestamp(1_772_452_800_000)

    def test_naive_is_utc(self) -> None:
        assert parse_timestamp("2026-03-02T10:00:00") == datetime(2026, 3, 2, 10, 0, tzinfo=UTC)

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestChangeEvent:
    def test_accepts_store_payload_shape(self) -> None:
        event = ChangeEvent.model_validate(
            {"type": "update", "table": "orders", "record": {"id": 1}, "old_record": {}}
        )
        assert event.event_type is ChangeType.UPDATE
        assert event.new == {"id": 1}
        assert event.old is None

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ValidationError):
            ChangeEvent.model_validate({"eventType": "TRUNCATE"})


def test_ownership_record_accepts_both_key_styles() -> None:
    camel = OwnershipRecord.model_validate(
        {"orderReference": "A", "placedAt": "2026-03-02T09:00:00Z", "ownerName": "Alice"}
    )
    snake = OwnershipRecord(order_reference="A", placed_at=datetime(2026, 3, 2, 9, 0, tzinfo=UTC), owner_name="Alice")
    assert camel == snake
