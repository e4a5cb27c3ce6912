"""Keeps one view in step with the record store's change feed.

Every relevant event triggers a full reload of the view rather than a
patch of the affected row. Bursts are coalesced: while a reload is
running, further events only mark that one more reload is needed, so the
final state always comes from a reload that started after the last event.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from enum import StrEnum
from typing import Any

from deskdrop._constants import DEFAULT_TABLE
from deskdrop.collection import OrderCollection, Subscription
from deskdrop.exceptions import DeskdropError
from deskdrop.models.change import ChangeEvent
from deskdrop.notifications import NotificationDispatcher
from deskdrop.state.view_store import OrderViewStore

_logger = logging.getLogger(__name__)


class ReconcilerState(StrEnum):
    INACTIVE = "inactive"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"


class ChangeFeedReconciler:
    """Drives a view through ``INACTIVE -> SUBSCRIBING -> ACTIVE -> INACTIVE``.

    Usage::

        async with ChangeFeedReconciler(view, collection) as reconciler:
            ...  # reconciler.view.state stays current

    Parameters
    ----------
    view : OrderViewStore
        The view to keep current.
    collection : OrderCollection
        Source of the change feed.
    table : str
        Table whose changes to follow.
    dispatcher : NotificationDispatcher or None
        Notified of every event while active, if the view follows the
        feed. Only the "mine" view gets one.
    feed_enabled : bool
        ``False`` loads once and never subscribes.
    on_state_change : callable or None
        Called with the reconciler when it starts activating and when it
        becomes inactive again.
    """

    def __init__(
        self,
        view: OrderViewStore,
        collection: OrderCollection,
        *,
        table: str = DEFAULT_TABLE,
        dispatcher: NotificationDispatcher | None = None,
        feed_enabled: bool = True,
        on_state_change: Callable[[ChangeFeedReconciler], None] | None = None,
    ) -> None:
        self._view = view
        self._collection = collection
        self._table = table
        self._dispatcher = dispatcher
        self._feed_enabled = feed_enabled
        self._on_state_change = on_state_change
        self._state = ReconcilerState.INACTIVE
        self._generation = 0
        self._subscription: Subscription | None = None
        self._reload_task: asyncio.Task[None] | None = None
        self._reload_pending = False
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def view(self) -> OrderViewStore:
        return self._view

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    async def __aenter__(self) -> ChangeFeedReconciler:
        await self.activate()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.deactivate()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def activate(self) -> None:
        """Load the view once, then start following the change feed.

        Calling this on a view that is already subscribing or active does
        nothing. A feed that cannot be opened is logged and leaves the view
        as a static snapshot.
        """
        if self._state is not ReconcilerState.INACTIVE:
            return
        self._generation += 1
        generation = self._generation
        self._state = ReconcilerState.SUBSCRIBING
        self._report_state()
        self._view.activate()

        await self._view.load()
        if generation != self._generation:
            return

        if not self._feed_enabled:
            self._state = ReconcilerState.ACTIVE
            return

        try:
            subscription = await self._collection.subscribe_changes(self._table, self._on_event)
        except DeskdropError:
            _logger.warning("Change feed unavailable for %s view; it will not refresh", self._view.kind, exc_info=True)
            if generation == self._generation:
                self._state = ReconcilerState.ACTIVE
            return

        if generation != self._generation:
            # Deactivated while subscribing.
            await subscription.unsubscribe()
            return
        self._subscription = subscription
        self._state = ReconcilerState.ACTIVE
        _logger.debug("%s view following %s changes", self._view.kind, self._table)

    async def deactivate(self) -> None:
        """Stop following the feed and detach the view.

        Liveness is cleared before anything is awaited, so an in-flight
        load or event that completes afterwards cannot touch the view.
        """
        if self._state is ReconcilerState.INACTIVE:
            return
        self._generation += 1
        self._state = ReconcilerState.INACTIVE
        self._view.deactivate()
        self._report_state()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        self._reload_task = None
        self._reload_pending = False

        subscription = self._subscription
        self._subscription = None
        try:
            if subscription is not None:
                await subscription.unsubscribe()
        finally:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            if self._dispatcher is not None:
                await self._dispatcher.stop()
        _logger.debug("%s view stopped following %s changes", self._view.kind, self._table)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def _report_state(self) -> None:
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(self)
        except Exception:
            _logger.debug("Reconciler state callback failed", exc_info=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_event(self, event: ChangeEvent) -> None:
        """Feed callback; runs on the event loop."""
        if self._state is not ReconcilerState.ACTIVE or not self._view.is_live:
            return
        if self._dispatcher is not None and self._view.follow_feed:
            self._spawn(self._dispatcher.handle(event))
        if self._view.is_relevant(event):
            self.request_reload()

    def request_reload(self) -> None:
        """Schedule a reload, folding it into one already running."""
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_pending = True
            return
        self._reload_task = self._spawn(self._reload_until_settled())

    async def _reload_until_settled(self) -> None:
        while True:
            self._reload_pending = False
            await self._view.load()
            if not self._reload_pending or not self._view.is_live:
                return

    async def wait_idle(self) -> None:
        """Wait until no reload or notification is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
