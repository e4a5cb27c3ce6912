"""High-level async client for the office delivery tracker."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, time
from typing import Any

import aiohttp

from deskdrop._time import localize, resolve_zone, to_local, utcnow
from deskdrop._transport import RestTransport
from deskdrop.collection import OrderCollection, RemoteOrderCollection
from deskdrop.config import DeskdropConfig
from deskdrop.exceptions import (
    DeskdropError,
    DeskdropOrderingClosedError,
    DeskdropTransitionError,
)
from deskdrop.models.order import Order, OrderStatus, new_order_record
from deskdrop.models.view import ViewKind, ViewState
from deskdrop.notifications import HttpPushNotifier, NotificationDispatcher, Notifier
from deskdrop.ownership import DeviceProfileStore, OwnershipCorrelator
from deskdrop.session import OwnerSession
from deskdrop.state.reconciler import ChangeFeedReconciler, ReconcilerState
from deskdrop.state.view_store import MineViewStore, OrderViewStore, TrackingViewStore
from deskdrop.storage import JsonFileStorage, LocalStorage, MemoryStorage

_logger = logging.getLogger(__name__)


class DeskdropClient:
    """Async client tying the order store, local ownership and views together.

    Usage::

        async with DeskdropClient(config) as client:
            client.set_identity("Alice", "555-0100")
            await client.place_order("ZMT-4411", time(12, 45), platform="Zomato")
            async with client.open_view(ViewKind.MINE) as mine:
                print(mine.view.state.orders)
    """

    def __init__(
        self,
        config: DeskdropConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        storage: LocalStorage | None = None,
        collection: OrderCollection | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._collection = collection
        self._notifier = notifier
        self._clock = clock
        self._zone = resolve_zone(config.time_zone)

        if storage is None:
            storage = JsonFileStorage(config.storage_path) if config.storage_path else MemoryStorage()
        self._storage = storage
        self._profile = DeviceProfileStore(storage)
        self._correlator = OwnershipCorrelator(
            storage,
            cap=config.ownership_cap,
            clock=clock,
            zone=self._zone,
        )
        self._identity: OwnerSession | None = None
        self._views: list[ChangeFeedReconciler] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DeskdropClient:
        if self._collection is None:
            self._collection = RemoteOrderCollection(
                self._config,
                RestTransport(self._config, self._ensure_http_session()),
            )
        if self._notifier is None and self._config.push_url:
            self._notifier = HttpPushNotifier(self._ensure_http_session(), self._config.push_url)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        views, self._views = self._views, []
        for reconciler in views:
            try:
                await reconciler.deactivate()
            except Exception:
                _logger.debug("View teardown failed", exc_info=True)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self._http_session

    def _require_collection(self) -> OrderCollection:
        if self._collection is None:
            raise DeskdropError("Client not initialized. Use 'async with DeskdropClient(...) as client:'")
        return self._collection

    def _feed_available(self, collection: OrderCollection) -> bool:
        if isinstance(collection, RemoteOrderCollection):
            return self._config.broker_host is not None
        return True

    def _delivery_datetime(self, value: datetime | time) -> datetime:
        """Anchor a bare time of day to today's local date."""
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                return value
            return localize(value, self._zone)
        today = to_local(self._clock(), self._zone).date()
        return localize(datetime.combine(today, value.replace(second=0, microsecond=0, tzinfo=None)), self._zone)

    # ------------------------------------------------------------------
    # Identity and device state
    # ------------------------------------------------------------------

    @property
    def correlator(self) -> OwnershipCorrelator:
        return self._correlator

    def identity(self) -> OwnerSession:
        """The owner identity stored on this device (possibly anonymous)."""
        if self._identity is None:
            self._identity = self._profile.load_session()
        return self._identity

    def set_identity(self, owner_name: str, owner_phone: str = "") -> OwnerSession:
        session = OwnerSession(owner_name=owner_name, owner_phone=owner_phone)
        self._profile.save_session(session)
        self._identity = session
        return session

    def last_active_view(self) -> ViewKind | None:
        return self._profile.last_active_view()

    def ordering_open(self, now: datetime | None = None) -> bool:
        """Whether the ordering window currently admits new orders."""
        return self._config.ordering_window.is_open(now or self._clock(), self._config.time_zone)

    # ------------------------------------------------------------------
    # Order lifecycle
    # ------------------------------------------------------------------

    async def place_order(
        self,
        order_reference: str,
        estimated_delivery: datetime | time,
        *,
        owner_name: str | None = None,
        owner_phone: str | None = None,
        platform: str | None = None,
        notes: str | None = None,
    ) -> Order:
        """Create a new order owned by this device.

        The ordering window is checked first; the owner identity and the
        ownership record are stored before the insert is sent.

        Raises
        ------
        DeskdropOrderingClosedError
            Outside the ordering window (when enforced).
        ValueError
            Empty reference or owner name.
        DeskdropTransportError
            The insert failed. The ownership record is kept; a later
            retry under the same reference will still be recognised.
        """
        collection = self._require_collection()
        if self._config.enforce_ordering_window and not self.ordering_open():
            raise DeskdropOrderingClosedError("Orders can only be placed inside the ordering window")

        reference = order_reference.strip()
        if not reference:
            raise ValueError("order_reference must be non-empty")

        current = self.identity()
        name = (owner_name if owner_name is not None else current.owner_name).strip()
        phone = (owner_phone if owner_phone is not None else current.owner_phone).strip()
        if not name:
            raise ValueError("owner_name is required (pass it or call set_identity first)")
        if (name, phone) != (current.owner_name, current.owner_phone):
            self.set_identity(name, phone)

        self._correlator.record_ownership(reference, name)
        record = new_order_record(
            order_reference=reference,
            owner_name=name,
            owner_phone=phone,
            estimated_delivery_time=self._delivery_datetime(estimated_delivery),
            platform=platform,
            notes=notes,
        )
        stored = await collection.insert(record)
        order = Order.from_record(stored)
        _logger.debug("Placed order %s (id=%s)", order.order_reference, order.id)
        return order

    async def advance_status(self, order: Order, target: OrderStatus) -> Order:
        """Move *order* forward to *target*.

        Raises :class:`DeskdropTransitionError` for a same-state or
        backwards move; the terminal state is never reopened.
        """
        if not order.status.can_advance_to(target):
            raise DeskdropTransitionError(
                f"Order {order.order_reference} cannot go from {order.status.label} to {target.label}"
            )
        await self._require_collection().update(order.id, {"status": target.value})
        return order.model_copy(update={"status": target})

    async def mark_collected(self, order: Order) -> Order:
        return await self.advance_status(order, OrderStatus.COLLECTED)

    async def mark_arrived(self, order: Order) -> Order:
        return await self.advance_status(order, OrderStatus.ARRIVED)

    async def delete_order(self, order: Order) -> None:
        """Delete *order* remotely, then forget its ownership record."""
        await self._require_collection().delete(order.id)
        self._correlator.remove_ownership(order.order_reference)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def _build_view(
        self,
        kind: ViewKind,
        *,
        follow_feed: bool,
        on_change: Callable[[ViewState], None] | None,
    ) -> OrderViewStore:
        collection = self._require_collection()
        if kind is ViewKind.MINE:
            return MineViewStore(
                collection,
                self._correlator,
                self.identity,
                limit=self._config.mine_limit,
                clock=self._clock,
                zone=self._zone,
                follow_feed=follow_feed,
                on_change=on_change,
            )
        return TrackingViewStore(
            collection,
            page_size=self._config.tracking_page_size,
            clock=self._clock,
            zone=self._zone,
            follow_feed=follow_feed,
            on_change=on_change,
        )

    def _track_view(self, reconciler: ChangeFeedReconciler) -> None:
        """Hold on to a reconciler only while it is activating or active."""
        if reconciler.state is ReconcilerState.INACTIVE:
            if reconciler in self._views:
                self._views.remove(reconciler)
        elif reconciler not in self._views:
            self._views.append(reconciler)

    def open_view(
        self,
        kind: ViewKind,
        *,
        follow_feed: bool = True,
        on_change: Callable[[ViewState], None] | None = None,
    ) -> ChangeFeedReconciler:
        """Create a reconciler for *kind* and remember it as the active view.

        The reconciler is returned inactive: ``await reconciler.activate()``
        or use it as an async context manager. The client keeps track of it
        only while it is active, and deactivates it on exit. The "mine" view
        notifies the owner through the configured notifier, if any.
        """
        kind = ViewKind(kind)
        collection = self._require_collection()
        view = self._build_view(kind, follow_feed=follow_feed, on_change=on_change)

        dispatcher: NotificationDispatcher | None = None
        if kind is ViewKind.MINE and self._notifier is not None:
            dispatcher = NotificationDispatcher(
                self._notifier,
                self._correlator,
                self.identity,
                icon=self._config.notification_icon,
            )

        reconciler = ChangeFeedReconciler(
            view,
            collection,
            table=self._config.table,
            dispatcher=dispatcher,
            feed_enabled=follow_feed and self._feed_available(collection),
            on_state_change=self._track_view,
        )
        try:
            self._profile.set_last_active_view(kind)
        except OSError:
            _logger.warning("Could not persist last active view", exc_info=True)
        return reconciler
