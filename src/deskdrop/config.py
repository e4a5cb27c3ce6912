"""Client configuration for deskdrop."""

from __future__ import annotations

import dataclasses
import os
from datetime import datetime, time
from typing import Any

from deskdrop._constants import (
    DEFAULT_NOTIFICATION_ICON,
    DEFAULT_TABLE,
    IMMINENT_MINUTES,
    MINE_LIMIT,
    OWNERSHIP_CAP,
    TRACKING_PAGE_SIZE,
)
from deskdrop._time import resolve_zone, to_local
from deskdrop.exceptions import DeskdropConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_clock(value: str) -> time:
    try:
        return time.fromisoformat(value.strip())
    except ValueError as exc:
        raise DeskdropConfigError(f"Invalid time of day: {value!r}") from exc


def _parse_weekdays(value: str) -> frozenset[int]:
    days: set[int] = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or not 0 <= int(part) <= 6:
            raise DeskdropConfigError(f"Invalid weekday {part!r} (expected 0=Monday .. 6=Sunday)")
        days.add(int(part))
    return frozenset(days)


@dataclasses.dataclass(frozen=True)
class OrderingWindow:
    """When new orders may be placed.

    The defaults mirror the office rule: weekdays, 11:30 to 14:00 local
    time, both ends inclusive.

    Parameters
    ----------
    weekdays : frozenset[int]
        Allowed ``datetime.weekday()`` values (0 = Monday).
    opens_at : datetime.time
        First allowed local time of day.
    closes_at : datetime.time
        Last allowed local time of day.
    """

    weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    opens_at: time = time(11, 30)
    closes_at: time = time(14, 0)

    def is_open(self, now: datetime, time_zone: str | None = None) -> bool:
        """Return ``True`` when *now* falls inside the window."""
        local_now = to_local(now, resolve_zone(time_zone))
        if local_now.weekday() not in self.weekdays:
            return False
        current = local_now.time().replace(second=0, microsecond=0)
        return self.opens_at <= current <= self.closes_at


@dataclasses.dataclass(frozen=True)
class DeskdropConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Record store base URL (the REST API lives under ``/rest/v1``).
    api_key : str
        Anonymous API key sent as ``apikey`` and bearer token.
    table : str
        Name of the shared order table.
    broker_host : str or None
        MQTT broker carrying the change feed. ``None`` disables the feed;
        views still load but never reconcile.
    broker_port : int
        MQTT broker port.
    feed_topic_prefix : str
        Change events for ``table`` arrive on ``<prefix>/<table>``.
    feed_tls : bool
        Use TLS for the broker connection.
    feed_keepalive : int
        MQTT keepalive in seconds.
    feed_reconnect_min_delay : int
        First reconnect delay in seconds after the feed drops.
    feed_reconnect_max_delay : int
        Cap for the exponential reconnect backoff.
    storage_path : str or None
        JSON file used as durable local storage. ``None`` keeps state in
        memory only.
    time_zone : str or None
        IANA zone defining "today". ``None`` uses the system zone.
    ownership_cap : int
        Ownership records kept on the device.
    mine_limit : int
        Row cap for the "mine" view.
    tracking_page_size : int
        Row cap for the tracking view.
    imminent_minutes : int
        Remaining minutes at or below which an order is imminent.
    enforce_ordering_window : bool
        Refuse :meth:`DeskdropClient.place_order` outside ``ordering_window``.
    ordering_window : OrderingWindow
        Days and hours during which orders may be placed.
    notification_icon : str
        Icon reference passed to the notifier.
    push_url : str or None
        Push gateway endpoint for :class:`HttpPushNotifier`.
    request_timeout : float
        Total timeout in seconds for a single REST request.
    """

    base_url: str
    api_key: str
    table: str = DEFAULT_TABLE
    broker_host: str | None = None
    broker_port: int = 1883
    feed_topic_prefix: str = "deskdrop/changes"
    feed_tls: bool = False
    feed_keepalive: int = 60
    feed_reconnect_min_delay: int = 1
    feed_reconnect_max_delay: int = 60
    storage_path: str | None = None
    time_zone: str | None = None
    ownership_cap: int = OWNERSHIP_CAP
    mine_limit: int = MINE_LIMIT
    tracking_page_size: int = TRACKING_PAGE_SIZE
    imminent_minutes: int = IMMINENT_MINUTES
    enforce_ordering_window: bool = True
    ordering_window: OrderingWindow = dataclasses.field(default_factory=OrderingWindow)
    notification_icon: str = DEFAULT_NOTIFICATION_ICON
    push_url: str | None = None
    request_timeout: float = 15.0

    def __post_init__(self) -> None:
        if not self.base_url:
            raise DeskdropConfigError("base_url is required")
        if self.ownership_cap <= 0:
            raise DeskdropConfigError("ownership_cap must be positive")
        if self.feed_reconnect_min_delay > self.feed_reconnect_max_delay:
            raise DeskdropConfigError("feed_reconnect_min_delay must not exceed feed_reconnect_max_delay")
        # Fail early on a typo rather than on the first "today" lookup.
        try:
            resolve_zone(self.time_zone)
        except (KeyError, ValueError) as exc:
            raise DeskdropConfigError(f"Unknown time zone: {self.time_zone!r}") from exc

    @property
    def feed_topic(self) -> str:
        return f"{self.feed_topic_prefix.rstrip('/')}/{self.table}"

    @classmethod
    def from_env(cls, **overrides: Any) -> DeskdropConfig:
        """Create configuration from environment variables.

        Reads ``DESKDROP_BASE_URL``, ``DESKDROP_API_KEY`` and the optional
        ``DESKDROP_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        DeskdropConfig
            Populated configuration.
        """
        env = os.environ

        window_kwargs: dict[str, Any] = {}
        weekdays_env = env.get("DESKDROP_WINDOW_WEEKDAYS")
        if weekdays_env is not None:
            window_kwargs["weekdays"] = _parse_weekdays(weekdays_env)
        opens_env = env.get("DESKDROP_WINDOW_OPENS_AT")
        if opens_env is not None:
            window_kwargs["opens_at"] = _parse_clock(opens_env)
        closes_env = env.get("DESKDROP_WINDOW_CLOSES_AT")
        if closes_env is not None:
            window_kwargs["closes_at"] = _parse_clock(closes_env)

        window_overrides = overrides.pop("ordering_window", None)
        if isinstance(window_overrides, dict):
            window_kwargs.update(window_overrides)
        elif isinstance(window_overrides, OrderingWindow):
            window_kwargs = dataclasses.asdict(window_overrides)

        window = OrderingWindow(**window_kwargs) if window_kwargs else OrderingWindow()

        _ENV_CONFIG_MAP = {
            "DESKDROP_BASE_URL": "base_url",
            "DESKDROP_API_KEY": "api_key",
            "DESKDROP_TABLE": "table",
            "DESKDROP_BROKER_HOST": "broker_host",
            "DESKDROP_FEED_TOPIC_PREFIX": "feed_topic_prefix",
            "DESKDROP_STORAGE_PATH": "storage_path",
            "DESKDROP_TIME_ZONE": "time_zone",
            "DESKDROP_NOTIFICATION_ICON": "notification_icon",
            "DESKDROP_PUSH_URL": "push_url",
        }
        config_kwargs: dict[str, Any] = {"ordering_window": window}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "DESKDROP_BROKER_PORT": "broker_port",
            "DESKDROP_FEED_KEEPALIVE": "feed_keepalive",
            "DESKDROP_FEED_RECONNECT_MIN_DELAY": "feed_reconnect_min_delay",
            "DESKDROP_FEED_RECONNECT_MAX_DELAY": "feed_reconnect_max_delay",
            "DESKDROP_OWNERSHIP_CAP": "ownership_cap",
            "DESKDROP_MINE_LIMIT": "mine_limit",
            "DESKDROP_TRACKING_PAGE_SIZE": "tracking_page_size",
            "DESKDROP_IMMINENT_MINUTES": "imminent_minutes",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = int(val)
                except ValueError as exc:
                    raise DeskdropConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        timeout_env = env.get("DESKDROP_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            try:
                config_kwargs["request_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise DeskdropConfigError(
                    f"DESKDROP_REQUEST_TIMEOUT must be a number, got {timeout_env!r}"
                ) from exc

        if "feed_tls" not in overrides:
            config_kwargs["feed_tls"] = _env_bool(env.get("DESKDROP_FEED_TLS"), False)

        if "enforce_ordering_window" not in overrides:
            config_kwargs["enforce_ordering_window"] = _env_bool(
                env.get("DESKDROP_ENFORCE_ORDERING_WINDOW"),
                True,
            )

        config_kwargs.update(overrides)

        if "base_url" not in config_kwargs or "api_key" not in config_kwargs:
            raise DeskdropConfigError("DESKDROP_BASE_URL and DESKDROP_API_KEY must be set")

        return cls(**config_kwargs)
