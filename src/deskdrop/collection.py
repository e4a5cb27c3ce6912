"""Remote order collection: queries, writes and the change feed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from deskdrop._feed import ChangeFeedRuntime, build_feed_endpoint
from deskdrop._transport import Transport
from deskdrop.config import DeskdropConfig
from deskdrop.exceptions import DeskdropApiError, DeskdropFeedError
from deskdrop.models.change import ChangeEvent
from deskdrop.models.order import OrderStatus

_logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], None]


class OrderFilter(BaseModel):
    """Conditions for :meth:`OrderCollection.query`; all given ones must hold."""

    model_config = ConfigDict(frozen=True)

    references: tuple[str, ...] | None = None
    """Only rows whose ``order_id`` is one of these."""

    created_from: datetime | None = None
    """Inclusive lower bound on ``created_at``."""

    created_before: datetime | None = None
    """Exclusive upper bound on ``created_at``."""

    status: OrderStatus | None = None


class Subscription(Protocol):
    async def unsubscribe(self) -> None:
        ...


class OrderCollection(Protocol):
    """Structural interface of the shared order store."""

    async def query(
        self,
        where: OrderFilter,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def insert(self, record: Mapping[str, Any]) -> dict[str, Any]:
        ...

    async def update(self, order_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def delete(self, order_id: str) -> None:
        ...

    async def subscribe_changes(self, table: str, on_event: ChangeHandler) -> Subscription:
        ...


def _quote(value: str) -> str:
    """Quote one value inside a PostgREST ``in.(...)`` list."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_query_params(
    where: OrderFilter,
    *,
    order_by: str = "created_at",
    descending: bool = True,
    limit: int | None = None,
) -> list[tuple[str, str]]:
    """Translate a filter into PostgREST query parameters."""
    params: list[tuple[str, str]] = [("select", "*")]
    if where.references is not None:
        params.append(("order_id", f"in.({','.join(_quote(ref) for ref in where.references)})"))
    if where.created_from is not None:
        params.append(("created_at", f"gte.{where.created_from.isoformat()}"))
    if where.created_before is not None:
        params.append(("created_at", f"lt.{where.created_before.isoformat()}"))
    if where.status is not None:
        params.append(("status", f"eq.{where.status.value}"))
    params.append(("order", f"{order_by}.{'desc' if descending else 'asc'}"))
    if limit is not None:
        params.append(("limit", str(limit)))
    return params


class FeedSubscription:
    """Handle returned by :meth:`RemoteOrderCollection.subscribe_changes`."""

    def __init__(self, runtime: ChangeFeedRuntime, loop: asyncio.AbstractEventLoop) -> None:
        self._runtime = runtime
        self._loop = loop
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        # paho's loop_stop joins its thread; keep that off the event loop.
        await self._loop.run_in_executor(None, self._runtime.stop)


class RemoteOrderCollection:
    """:class:`OrderCollection` over a REST transport plus an MQTT change feed."""

    def __init__(self, config: DeskdropConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    @property
    def table(self) -> str:
        return self._config.table

    async def query(
        self,
        where: OrderFilter,
        *,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params = build_query_params(where, order_by=order_by, descending=descending, limit=limit)
        rows = await self._transport.request("GET", self.table, params=params)
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise DeskdropApiError(f"Expected a list of rows from {self.table}, got {type(rows).__name__}")
        return [row for row in rows if isinstance(row, dict)]

    async def insert(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored (with ``id``/``created_at``)."""
        rows = await self._transport.request(
            "POST",
            self.table,
            body=dict(record),
            prefer="return=representation",
        )
        if isinstance(rows, list) and rows and isinstance(rows[0], dict):
            return rows[0]
        if isinstance(rows, dict):
            return rows
        raise DeskdropApiError(f"Insert into {self.table} returned no row")

    async def update(self, order_id: str, fields: Mapping[str, Any]) -> None:
        await self._transport.request(
            "PATCH",
            self.table,
            params=[("id", f"eq.{order_id}")],
            body=dict(fields),
            prefer="return=minimal",
        )

    async def delete(self, order_id: str) -> None:
        await self._transport.request(
            "DELETE",
            self.table,
            params=[("id", f"eq.{order_id}")],
            prefer="return=minimal",
        )

    async def subscribe_changes(self, table: str, on_event: ChangeHandler) -> FeedSubscription:
        """Start following *table*'s change feed.

        *on_event* runs on the calling event loop. The returned handle must
        be unsubscribed to release the broker connection.
        """
        if table != self.table:
            raise DeskdropFeedError(f"Change feed is only configured for table {self.table!r}")
        endpoint = build_feed_endpoint(self._config)
        loop = asyncio.get_running_loop()
        runtime = ChangeFeedRuntime(loop=loop, on_event=on_event, table=table, logger=_logger)
        await loop.run_in_executor(None, runtime.start, endpoint)
        return FeedSubscription(runtime, loop)
