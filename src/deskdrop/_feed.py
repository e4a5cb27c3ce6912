"""Internal MQTT change-feed parsing and runtime."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt
from pydantic import ValidationError

from deskdrop.config import DeskdropConfig
from deskdrop.exceptions import DeskdropFeedError
from deskdrop.models.change import ChangeEvent


@dataclass(frozen=True)
class FeedEndpoint:
    """Broker/topic data required to follow one table's change feed."""

    host: str
    port: int
    topic: str
    client_id: str
    tls: bool = False
    keepalive: int = 60
    reconnect_min_delay: int = 1
    reconnect_max_delay: int = 60


def build_feed_endpoint(config: DeskdropConfig) -> FeedEndpoint:
    if not config.broker_host:
        raise DeskdropFeedError("No change-feed broker configured (set broker_host)")
    return FeedEndpoint(
        host=config.broker_host,
        port=config.broker_port,
        topic=config.feed_topic,
        client_id=f"deskdrop-{secrets.token_hex(6)}",
        tls=config.feed_tls,
        keepalive=config.feed_keepalive,
        reconnect_min_delay=config.feed_reconnect_min_delay,
        reconnect_max_delay=config.feed_reconnect_max_delay,
    )


def decode_change_payload(payload: bytes, *, table: str = "") -> ChangeEvent:
    """Parse one feed message into a :class:`ChangeEvent`.

    Raises ``ValueError`` (``json.JSONDecodeError`` or pydantic
    ``ValidationError``) for anything that is not a change event.
    """
    parsed = json.loads(payload.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("Change payload is not a JSON object")
    if table and not parsed.get("table"):
        parsed["table"] = table
    return ChangeEvent.model_validate(parsed)


class ChangeFeedRuntime:
    """Threaded paho-mqtt runtime that emits change events onto an asyncio loop.

    paho's network thread reconnects on its own with exponential backoff
    between ``reconnect_min_delay`` and ``reconnect_max_delay``; the topic
    is (re)subscribed on every successful connect so a dropped session
    resumes delivering events without intervention.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: Callable[[ChangeEvent], None],
        table: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_event = on_event
        self._table = table
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False
        self._topic: str | None = None

    @property
    def is_running(self) -> bool:
        """Whether the network loop is started (connected or retrying)."""
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    def start(self, endpoint: FeedEndpoint) -> None:
        """Connect and subscribe to the endpoint's topic."""
        self.stop()
        self._logger.debug(
            "Change feed start requested host=%s port=%s topic=%s client_id=%s",
            endpoint.host,
            endpoint.port,
            endpoint.topic,
            endpoint.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=endpoint.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        client.reconnect_delay_set(
            min_delay=endpoint.reconnect_min_delay,
            max_delay=endpoint.reconnect_max_delay,
        )
        if endpoint.tls:
            client.tls_set()

        self._topic = endpoint.topic

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("Change feed connect failed: %s", reason_code)
                return
            self._connected = True
            self._logger.debug("Change feed connected reason=%s", reason_code)
            if self._topic:
                self._logger.debug("Change feed subscribing topic=%s", self._topic)
                c.subscribe(self._topic, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                event = decode_change_payload(msg.payload, table=self._table)
            except (ValueError, ValidationError):
                self._logger.debug("Change feed payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._logger.debug("Change feed event type=%s table=%s", event.event_type, event.table)
            self._loop.call_soon_threadsafe(self._on_event, event)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._connected = False
            if self._running:
                # paho keeps retrying in the background.
                self._logger.warning("Change feed disconnected (%s); reconnecting", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        try:
            # Non-blocking connect: an unreachable broker is retried by the loop.
            client.connect_async(endpoint.host, endpoint.port, keepalive=endpoint.keepalive)
            client.loop_start()
        except (OSError, ValueError) as exc:
            raise DeskdropFeedError(f"Could not start change feed: {exc}") from exc

        self._client = client
        self._running = True
        self._logger.debug("Change feed network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False
        self._topic = None

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("Change feed disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Change feed network loop stopped")
