"""Materialized order views.

A view holds the current list of orders for one screen, plus a loading
flag and an error slot. Its contents only ever change through
:meth:`OrderViewStore.load`, which replaces the whole list in one
assignment.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, ClassVar

from pydantic import ValidationError

from deskdrop._constants import MINE_LIMIT, TRACKING_PAGE_SIZE
from deskdrop._time import local_day_bounds, utcnow
from deskdrop.collection import OrderCollection, OrderFilter
from deskdrop.exceptions import DeskdropError
from deskdrop.models.change import ChangeEvent
from deskdrop.models.order import Order
from deskdrop.models.view import ViewKind, ViewState
from deskdrop.ownership import OwnershipCorrelator
from deskdrop.session import OwnerSession
from deskdrop.state.policy import is_relevant_today

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewQuery:
    """What a view asks the collection for on each load."""

    where: OrderFilter
    limit: int | None
    order_by: str = "created_at"
    descending: bool = True


def map_rows(rows: list[dict[str, Any]]) -> list[Order]:
    """Map raw rows to orders, skipping (and logging) malformed ones."""
    orders: list[Order] = []
    for row in rows:
        try:
            orders.append(Order.from_record(row))
        except ValidationError:
            _logger.warning("Skipping malformed order row id=%r", row.get("id"), exc_info=True)
    return orders


class OrderViewStore(ABC):
    """Base class for one live order view.

    The view is *live* between :meth:`activate` and :meth:`deactivate`.
    Each activation gets a fresh epoch; a load started under an older epoch
    may still complete, but its result is dropped without touching state.
    """

    kind: ClassVar[ViewKind]

    def __init__(
        self,
        collection: OrderCollection,
        *,
        clock: Callable[[], datetime] = utcnow,
        zone: tzinfo | None = None,
        follow_feed: bool = True,
        on_change: Callable[[ViewState], None] | None = None,
    ) -> None:
        self._collection = collection
        self._clock = clock
        self._zone = zone
        self._follow_feed = follow_feed
        self._on_change = on_change
        self._state = ViewState()
        self._live = False
        self._epoch = 0

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._live

    @property
    def follow_feed(self) -> bool:
        """Whether change-feed events may trigger reloads of this view."""
        return self._follow_feed

    def activate(self) -> None:
        """Mark the view live and reset it to an empty, loading state."""
        self._live = True
        self._epoch += 1
        self._state = ViewState(loading=True)
        self._notify()

    def deactivate(self) -> None:
        """Mark the view dead; in-flight loads will no longer touch it."""
        self._live = False
        self._epoch += 1
        self._state = ViewState()
        self._notify()

    def _is_current(self, epoch: int) -> bool:
        return self._live and self._epoch == epoch

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self._state)
        except Exception:
            _logger.debug("%s view on_change callback failed", self.kind, exc_info=True)

    @abstractmethod
    def build_query(self) -> ViewQuery | None:
        """Describe the next load, or ``None`` when there is nothing to ask for."""

    @abstractmethod
    def is_relevant(self, event: ChangeEvent) -> bool:
        """Should *event* trigger a reload of this view?"""

    async def load(self) -> None:
        """Reload the whole view from the collection.

        Safe to call repeatedly and concurrently: overlapping loads each
        replace the list wholesale, so the last one to finish wins. Query
        failures land in ``state.error`` and keep the previous orders.
        """
        if not self._live:
            return
        epoch = self._epoch

        query = self.build_query()
        if query is None:
            self._state.orders = []
            self._state.error = None
            self._state.loading = False
            self._notify()
            return

        self._state.loading = True
        self._notify()
        try:
            rows = await self._collection.query(
                query.where,
                order_by=query.order_by,
                descending=query.descending,
                limit=query.limit,
            )
        except DeskdropError as exc:
            if self._is_current(epoch):
                _logger.warning("%s view load failed: %s", self.kind, exc)
                self._state.error = str(exc) or type(exc).__name__
        else:
            if self._is_current(epoch):
                self._state.orders = map_rows(rows)
                self._state.error = None
            else:
                _logger.debug("Dropping %s view load result from a stale activation", self.kind)
        finally:
            if self._is_current(epoch):
                self._state.loading = False
                self._notify()


class MineViewStore(OrderViewStore):
    """Orders this device placed for the current owner name.

    Rows are matched only by ``order_reference`` against the locally
    recorded references; the row's own ``owner_name`` is not checked.
    """

    kind = ViewKind.MINE

    def __init__(
        self,
        collection: OrderCollection,
        correlator: OwnershipCorrelator,
        identity: Callable[[], OwnerSession],
        *,
        limit: int = MINE_LIMIT,
        clock: Callable[[], datetime] = utcnow,
        zone: tzinfo | None = None,
        follow_feed: bool = True,
        on_change: Callable[[ViewState], None] | None = None,
    ) -> None:
        super().__init__(collection, clock=clock, zone=zone, follow_feed=follow_feed, on_change=on_change)
        self._correlator = correlator
        self._identity = identity
        self._limit = limit

    def build_query(self) -> ViewQuery | None:
        references = self._correlator.owned_references(self._identity().owner_name)
        if not references:
            return None
        return ViewQuery(where=OrderFilter(references=tuple(references)), limit=self._limit)

    def is_relevant(self, event: ChangeEvent) -> bool:
        return self._follow_feed

    def partition_by_day(self) -> tuple[list[Order], list[Order]]:
        """Current orders split into today's and past, by ownership record."""
        return self._correlator.partition_by_day(self._state.orders, self._identity().owner_name)


class TrackingViewStore(OrderViewStore):
    """Every order created today (local time), for the front desk board."""

    kind = ViewKind.TRACKING

    def __init__(
        self,
        collection: OrderCollection,
        *,
        page_size: int = TRACKING_PAGE_SIZE,
        clock: Callable[[], datetime] = utcnow,
        zone: tzinfo | None = None,
        follow_feed: bool = True,
        on_change: Callable[[ViewState], None] | None = None,
    ) -> None:
        super().__init__(collection, clock=clock, zone=zone, follow_feed=follow_feed, on_change=on_change)
        self._page_size = page_size

    def build_query(self) -> ViewQuery:
        start, end = local_day_bounds(self._clock(), self._zone)
        return ViewQuery(
            where=OrderFilter(created_from=start, created_before=end),
            limit=self._page_size,
        )

    def is_relevant(self, event: ChangeEvent) -> bool:
        if not self._follow_feed:
            return False
        return is_relevant_today(event, self._clock(), self._zone)
