"""deskdrop - Async Python client for tracking office food deliveries."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("deskdrop")
except PackageNotFoundError:
    __version__ = "0+local"
from deskdrop.client import DeskdropClient
from deskdrop.collection import OrderCollection, OrderFilter, RemoteOrderCollection
from deskdrop.config import DeskdropConfig, OrderingWindow
from deskdrop.exceptions import (
    DeskdropApiError,
    DeskdropConfigError,
    DeskdropError,
    DeskdropFeedError,
    DeskdropNotificationError,
    DeskdropOrderingClosedError,
    DeskdropTransitionError,
    DeskdropTransportError,
)
from deskdrop.history import HistoryMode, HistoryStats, filter_history, summarize
from deskdrop.models import (
    ChangeEvent,
    ChangeType,
    Order,
    OrderStatus,
    OwnershipRecord,
    ViewKind,
    ViewState,
)
from deskdrop.notifications import (
    HttpPushNotifier,
    NotificationDispatcher,
    NotificationOptions,
    Notifier,
    PermissionState,
)
from deskdrop.ownership import DeviceProfileStore, OwnershipCorrelator
from deskdrop.session import OwnerSession
from deskdrop.sorting import SortKey, sort_orders
from deskdrop.state.reconciler import ChangeFeedReconciler, ReconcilerState
from deskdrop.state.view_store import MineViewStore, OrderViewStore, TrackingViewStore
from deskdrop.storage import JsonFileStorage, LocalStorage, MemoryStorage
from deskdrop.urgency import Urgency, UrgencyKind, evaluate_urgency

__all__ = [
    "__version__",
    "ChangeEvent",
    "ChangeFeedReconciler",
    "ChangeType",
    "DeskdropApiError",
    "DeskdropClient",
    "DeskdropConfig",
    "DeskdropConfigError",
    "DeskdropError",
    "DeskdropFeedError",
    "DeskdropNotificationError",
    "DeskdropOrderingClosedError",
    "DeskdropTransitionError",
    "DeskdropTransportError",
    "DeviceProfileStore",
    "HistoryMode",
    "HistoryStats",
    "HttpPushNotifier",
    "JsonFileStorage",
    "LocalStorage",
    "MemoryStorage",
    "MineViewStore",
    "NotificationDispatcher",
    "NotificationOptions",
    "Notifier",
    "Order",
    "OrderCollection",
    "OrderFilter",
    "OrderStatus",
    "OrderViewStore",
    "OrderingWindow",
    "OwnerSession",
    "OwnershipCorrelator",
    "OwnershipRecord",
    "PermissionState",
    "ReconcilerState",
    "RemoteOrderCollection",
    "SortKey",
    "TrackingViewStore",
    "Urgency",
    "UrgencyKind",
    "ViewKind",
    "ViewState",
    "evaluate_urgency",
    "filter_history",
    "sort_orders",
    "summarize",
]
