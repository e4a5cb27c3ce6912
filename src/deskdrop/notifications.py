"""Push notifications for status changes on the owner's orders.

Notifications are strictly best-effort: nothing in here may raise into
the reconciliation path, and a failed notification never affects order
or view state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any, Protocol

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from deskdrop._constants import DEFAULT_NOTIFICATION_ICON, SENT_TAG_CAP
from deskdrop.exceptions import DeskdropNotificationError
from deskdrop.models.change import ChangeEvent, ChangeType
from deskdrop.models.order import Order, OrderStatus
from deskdrop.ownership import OwnershipCorrelator
from deskdrop.session import OwnerSession

_logger = logging.getLogger(__name__)

#: Statuses worth telling the owner about.
NOTIFY_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.COLLECTED, OrderStatus.ARRIVED})


class PermissionState(StrEnum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class NotificationOptions(BaseModel):
    """Display options; serialized camelCase for the delivery mechanism."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    body: str | None = None
    icon: str | None = None
    tag: str | None = None
    require_interaction: bool = Field(default=False)


class Notifier(Protocol):
    """Structural interface of the push notification collaborator.

    ``collapses_tags`` tells the dispatcher whether a second notification
    with the same tag replaces the first on the device. When it does not,
    the dispatcher drops repeats itself.
    """

    collapses_tags: bool

    async def permission_state(self) -> PermissionState:
        ...

    async def request_permission(self) -> PermissionState:
        ...

    async def show(self, title: str, options: NotificationOptions) -> None:
        ...


def notification_tag(order: Order) -> str:
    return f"order-{order.order_reference}-{order.status.label}"


def build_notification(order: Order, *, icon: str = DEFAULT_NOTIFICATION_ICON) -> tuple[str, NotificationOptions]:
    """Title and options for *order*'s current status."""
    platform = order.platform or "food"
    if order.status is OrderStatus.ARRIVED:
        title = f"Order {order.order_reference} has arrived"
        body = f"Your {platform} order is inside the office. Ready to eat!"
    else:
        title = f"Order {order.order_reference} collected"
        body = f"Your {platform} order was picked up at the gate by the front desk."
    return title, NotificationOptions(
        body=body,
        icon=icon,
        tag=notification_tag(order),
        require_interaction=True,
    )


class NotificationDispatcher:
    """Turns update events on the owner's orders into push notifications."""

    def __init__(
        self,
        notifier: Notifier,
        correlator: OwnershipCorrelator,
        identity: Callable[[], OwnerSession],
        *,
        icon: str = DEFAULT_NOTIFICATION_ICON,
        sent_tag_cap: int = SENT_TAG_CAP,
    ) -> None:
        self._notifier = notifier
        self._correlator = correlator
        self._identity = identity
        self._icon = icon
        self._sent_tag_cap = sent_tag_cap
        # Insertion ordered, used as a bounded set.
        self._sent_tags: dict[str, None] = {}
        self._background: set[asyncio.Task[Any]] = set()

    def _eligible_order(self, event: ChangeEvent) -> Order | None:
        if event.event_type is not ChangeType.UPDATE:
            return None
        if event.old is None or event.new is None:
            return None
        try:
            Order.from_record(event.old)
            order = Order.from_record(event.new)
        except ValidationError:
            _logger.debug("Ignoring update with malformed rows", exc_info=True)
            return None

        if order.status not in NOTIFY_STATUSES:
            return None
        session = self._identity()
        if session.is_anonymous or order.owner_name != session.owner_name:
            return None
        if order.order_reference not in self._correlator.owned_references(session.owner_name):
            return None
        return order

    def _remember_tag(self, tag: str) -> None:
        self._sent_tags[tag] = None
        while len(self._sent_tags) > self._sent_tag_cap:
            del self._sent_tags[next(iter(self._sent_tags))]

    async def stop(self) -> None:
        """Cancel and wait for any permission request still in flight."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _request_permission_later(self) -> None:
        async def _request() -> None:
            try:
                state = await self._notifier.request_permission()
                _logger.debug("Notification permission is now %s", state)
            except Exception:
                _logger.debug("Notification permission request failed", exc_info=True)

        task = asyncio.get_running_loop().create_task(_request())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def handle(self, event: ChangeEvent) -> bool:
        """Notify about *event* if it qualifies. Returns whether anything was shown.

        Never raises.
        """
        try:
            order = self._eligible_order(event)
            if order is None:
                return False

            title, options = build_notification(order, icon=self._icon)
            tag = options.tag or ""
            dedupe_locally = not getattr(self._notifier, "collapses_tags", True)
            if dedupe_locally and tag in self._sent_tags:
                _logger.debug("Suppressing repeat notification %s", tag)
                return False

            permission = await self._notifier.permission_state()
            if permission is not PermissionState.GRANTED:
                if permission is PermissionState.DEFAULT:
                    self._request_permission_later()
                _logger.debug("Notification %s not shown (permission %s)", tag, permission)
                return False

            shown = await self._show(title, options)
            if shown and dedupe_locally:
                self._remember_tag(tag)
            return shown
        except Exception:
            _logger.warning("Notification dispatch failed", exc_info=True)
            return False

    async def _show(self, title: str, options: NotificationOptions) -> bool:
        try:
            await self._notifier.show(title, options)
            _logger.debug("Notification %s shown", options.tag)
            return True
        except Exception:
            _logger.warning("Notification %s failed; retrying minimal form", options.tag, exc_info=True)
        try:
            await self._notifier.show(title, NotificationOptions(icon=self._icon))
            return True
        except Exception:
            _logger.debug("Minimal notification failed too", exc_info=True)
            return False


class HttpPushNotifier:
    """Delivers notifications by POSTing JSON to a push gateway.

    The gateway does not collapse tags, so the dispatcher dedupes. A
    device that asks for permission is treated as subscribed.
    """

    collapses_tags = False

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        url: str,
        *,
        permission: PermissionState = PermissionState.DEFAULT,
        timeout: float = 10.0,
    ) -> None:
        self._http = http_session
        self._url = url
        self._permission = permission
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def permission_state(self) -> PermissionState:
        return self._permission

    async def request_permission(self) -> PermissionState:
        if self._permission is PermissionState.DEFAULT:
            self._permission = PermissionState.GRANTED
        return self._permission

    async def show(self, title: str, options: NotificationOptions) -> None:
        payload = {"title": title, **options.model_dump(by_alias=True, exclude_none=True)}
        try:
            async with self._http.post(self._url, json=payload, timeout=self._timeout) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise DeskdropNotificationError(f"Push gateway returned HTTP {resp.status}: {text[:200]}")
        except (TimeoutError, aiohttp.ClientError) as exc:
            raise DeskdropNotificationError(f"Push gateway unreachable: {exc}") from exc
