from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import pytest

from deskdrop.collection import OrderFilter
from deskdrop.exceptions import DeskdropFeedError
from deskdrop.models.change import ChangeEvent
from deskdrop.ownership import OwnershipCorrelator
from deskdrop.session import OwnerSession
from deskdrop.state.reconciler import ChangeFeedReconciler, ReconcilerState
from deskdrop.state.view_store import MineViewStore, TrackingViewStore
from deskdrop.storage import MemoryStorage


def _now() -> datetime:
    return datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _row(ref: str, *, created: str = "2026-03-02T10:00:00+00:00", status: str = "ordered") -> dict[str, Any]:
    return {
        "id": f"id-{ref}",
        "order_id": ref,
        "employee_name": "Alice",
        "estimated_delivery": "2026-03-02T12:30:00+00:00",
        "status": status,
        "created_at": created,
    }


class _Subscription:
    def __init__(self) -> None:
        self.unsubscribed = 0

    async def unsubscribe(self) -> None:
        self.unsubscribed += 1


class _FeedCollection:
    """In-memory collection double with a hand-driven change feed."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.rows = list(rows or [])
        self.query_count = 0
        self.query_gate: asyncio.Event | None = None
        self.subscribe_gate: asyncio.Event | None = None
        self.fail_subscribe = False
        self.handler: Callable[[ChangeEvent], None] | None = None
        self.subscriptions: list[_Subscription] = []

    async def query(
        self,
        where: OrderFilter,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self.query_count += 1
        if self.query_gate is not None:
            await self.query_gate.wait()
        return list(self.rows)

    async def insert(self, record: Mapping[str, Any]) -> dict[str, Any]:  # pragma: no cover
        raise NotImplementedError

    async def update(self, order_id: str, fields: Mapping[str, Any]) -> None:  # pragma: no cover
        raise NotImplementedError

    async def delete(self, order_id: str) -> None:  # pragma: no cover
        raise NotImplementedError

    async def subscribe_changes(self, table: str, on_event: Callable[[ChangeEvent], None]) -> _Subscription:
        if self.subscribe_gate is not None:
            await self.subscribe_gate.wait()
        if self.fail_subscribe:
            raise DeskdropFeedError("broker unreachable")
        self.handler = on_event
        subscription = _Subscription()
        self.subscriptions.append(subscription)
        return subscription

    def emit(self, payload: dict[str, Any]) -> None:
        assert self.handler is not None
        self.handler(ChangeEvent.model_validate(payload))


class _RecordingDispatcher:
    def __init__(self) -> None:
        self.events: list[ChangeEvent] = []
        self.stopped = False

    async def handle(self, event: ChangeEvent) -> bool:
        self.events.append(event)
        return False

    async def stop(self) -> None:
        self.stopped = True


def _tracking(collection: _FeedCollection, **kwargs: Any) -> ChangeFeedReconciler:
    view = TrackingViewStore(collection, clock=_now, zone=UTC)
    return ChangeFeedReconciler(view, collection, **kwargs)


@pytest.mark.asyncio
async def test_activate_loads_then_subscribes() -> None:
    collection = _FeedCollection([_row("A")])
    reconciler = _tracking(collection)

    await reconciler.activate()

    assert reconciler.state is ReconcilerState.ACTIVE
    assert reconciler.is_subscribed
    assert collection.query_count == 1
    assert [o.order_reference for o in reconciler.view.state.orders] == ["A"]
    await reconciler.deactivate()


@pytest.mark.asyncio
async def test_insert_for_today_triggers_full_reload() -> None:
    collection = _FeedCollection([_row("A")])
    async with _tracking(collection) as reconciler:
        collection.rows.append(_row("B"))
        collection.emit({"eventType": "INSERT", "new": _row("B")})
        await reconciler.wait_idle()

        assert collection.query_count == 2
        assert [o.order_reference for o in reconciler.view.state.orders] == ["A", "B"]


@pytest.mark.asyncio
async def test_insert_from_another_day_is_ignored() -> None:
    collection = _FeedCollection([_row("A")])
    async with _tracking(collection) as reconciler:
        collection.emit({"eventType": "INSERT", "new": _row("OLD", created="2026-03-01T10:00:00+00:00")})
        await reconciler.wait_idle()

        assert collection.query_count == 1


@pytest.mark.asyncio
async def test_delete_reloads_optimistically() -> None:
    collection = _FeedCollection([_row("A"), _row("B")])
    async with _tracking(collection) as reconciler:
        collection.rows = [_row("A")]
        collection.emit({"eventType": "DELETE", "old": {"id": "id-B"}})
        await reconciler.wait_idle()

        assert collection.query_count == 2
        assert [o.order_reference for o in reconciler.view.state.orders] == ["A"]


@pytest.mark.asyncio
async def test_burst_of_events_is_coalesced() -> None:
    collection = _FeedCollection([_row("A")])
    async with _tracking(collection) as reconciler:
        collection.query_gate = asyncio.Event()
        collection.emit({"eventType": "UPDATE", "new": _row("A", status="collected")})
        await asyncio.sleep(0)
        assert collection.query_count == 2

        collection.rows = [_row("A", status="arrived")]
        for _ in range(5):
            collection.emit({"eventType": "UPDATE", "new": _row("A", status="arrived")})
        collection.query_gate.set()
        await reconciler.wait_idle()

        # One in-flight reload plus exactly one follow-up.
        assert collection.query_count == 3
        assert reconciler.view.state.orders[0].status == "arrived"


@pytest.mark.asyncio
async def test_deactivate_unsubscribes_and_ignores_late_events() -> None:
    collection = _FeedCollection([_row("A")])
    reconciler = _tracking(collection)
    await reconciler.activate()
    handler = collection.handler

    await reconciler.deactivate()

    assert reconciler.state is ReconcilerState.INACTIVE
    assert collection.subscriptions[0].unsubscribed == 1
    assert reconciler.view.state.orders == []

    assert handler is not None
    handler(ChangeEvent.model_validate({"eventType": "INSERT", "new": _row("B")}))
    await reconciler.wait_idle()
    assert collection.query_count == 1


@pytest.mark.asyncio
async def test_deactivate_while_subscribing_releases_subscription() -> None:
    collection = _FeedCollection([_row("A")])
    collection.subscribe_gate = asyncio.Event()
    reconciler = _tracking(collection)

    activating = asyncio.create_task(reconciler.activate())
    await asyncio.sleep(0)
    assert reconciler.state is ReconcilerState.SUBSCRIBING

    await reconciler.deactivate()
    collection.subscribe_gate.set()
    await activating

    assert reconciler.state is ReconcilerState.INACTIVE
    assert not reconciler.is_subscribed
    assert collection.subscriptions[0].unsubscribed == 1


@pytest.mark.asyncio
async def test_feed_disabled_loads_once_without_subscribing() -> None:
    collection = _FeedCollection([_row("A")])
    reconciler = _tracking(collection, feed_enabled=False)

    await reconciler.activate()

    assert reconciler.state is ReconcilerState.ACTIVE
    assert collection.handler is None
    assert [o.order_reference for o in reconciler.view.state.orders] == ["A"]


@pytest.mark.asyncio
async def test_subscription_failure_leaves_static_snapshot() -> None:
    collection = _FeedCollection([_row("A")])
    collection.fail_subscribe = True
    reconciler = _tracking(collection)

    await reconciler.activate()

    assert reconciler.state is ReconcilerState.ACTIVE
    assert not reconciler.is_subscribed
    assert [o.order_reference for o in reconciler.view.state.orders] == ["A"]
    await reconciler.deactivate()


@pytest.mark.asyncio
async def test_mine_view_reloads_on_any_event_and_forwards_to_dispatcher() -> None:
    correlator = OwnershipCorrelator(MemoryStorage())
    correlator.record_ownership("A", "Alice")
    collection = _FeedCollection([_row("A")])
    view = MineViewStore(collection, correlator, lambda: OwnerSession(owner_name="Alice"), clock=_now, zone=UTC)
    dispatcher = _RecordingDispatcher()

    async with ChangeFeedReconciler(view, collection, dispatcher=dispatcher) as reconciler:  # type: ignore[arg-type]
        collection.emit({"eventType": "UPDATE", "new": _row("SOMEONE-ELSE", created="2026-02-01T10:00:00+00:00")})
        await reconciler.wait_idle()

        assert collection.query_count == 2
        assert len(dispatcher.events) == 1

    assert dispatcher.stopped


@pytest.mark.asyncio
async def test_activate_twice_is_a_no_op() -> None:
    collection = _FeedCollection([_row("A")])
    async with _tracking(collection) as reconciler:
        await reconciler.activate()
        assert collection.query_count == 1
        assert len(collection.subscriptions) == 1


@pytest.mark.asyncio
async def test_state_changes_are_reported() -> None:
    collection = _FeedCollection([_row("A")])
    seen: list[ReconcilerState] = []
    reconciler = _tracking(collection, on_state_change=lambda r: seen.append(r.state))

    await reconciler.activate()
    await reconciler.deactivate()
    await reconciler.deactivate()

    assert seen == [ReconcilerState.SUBSCRIBING, ReconcilerState.INACTIVE]


@pytest.mark.asyncio
async def test_failing_state_callback_does_not_break_activation() -> None:
    def explode(_: ChangeFeedReconciler) -> None:
        raise RuntimeError("boom")

    collection = _FeedCollection([_row("A")])
    async with _tracking(collection, on_state_change=explode) as reconciler:
        assert reconciler.state is ReconcilerState.ACTIVE
    assert reconciler.state is ReconcilerState.INACTIVE
