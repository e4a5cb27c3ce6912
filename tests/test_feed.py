from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import pytest

from deskdrop import _feed as feed_module
from deskdrop._feed import ChangeFeedRuntime, build_feed_endpoint, decode_change_payload
from deskdrop.config import DeskdropConfig
from deskdrop.exceptions import DeskdropFeedError
from deskdrop.models.change import ChangeEvent, ChangeType


def test_decode_fills_in_table() -> None:
    payload = json.dumps({"eventType": "INSERT", "new": {"id": 1, "order_id": "A"}}).encode()

    event = decode_change_payload(payload, table="orders")

    assert event.event_type is ChangeType.INSERT
    assert event.table == "orders"
    assert event.new == {"id": 1, "order_id": "A"}


def test_decode_rejects_non_object() -> None:
    with pytest.raises(ValueError):
        decode_change_payload(b"[1, 2]")
    with pytest.raises(ValueError):
        decode_change_payload(b"not json")


def test_endpoint_requires_broker() -> None:
    with pytest.raises(DeskdropFeedError):
        build_feed_endpoint(DeskdropConfig(base_url="https://db.example.com", api_key="anon"))


def test_endpoint_carries_feed_settings() -> None:
    config = DeskdropConfig(
        base_url="https://db.example.com",
        api_key="anon",
        broker_host="mqtt.example.com",
        broker_port=8883,
        feed_tls=True,
        feed_topic_prefix="office/feed/",
    )

    endpoint = build_feed_endpoint(config)

    assert endpoint.topic == "office/feed/orders"
    assert endpoint.port == 8883
    assert endpoint.tls is True
    assert endpoint.client_id.startswith("deskdrop-")
    assert endpoint.client_id != build_feed_endpoint(config).client_id


class _FakeMqttClient:
    instances: list[_FakeMqttClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.subscriptions: list[tuple[str, int]] = []
        self.connected_to: tuple[str, int, int] | None = None
        self.reconnect_delays: tuple[int, int] | None = None
        self.tls = False
        self.loop_running = False
        self.disconnects = 0
        self.on_connect: Any = None
        self.on_message: Any = None
        self.on_disconnect: Any = None
        _FakeMqttClient.instances.append(self)

    def enable_logger(self, logger: Any) -> None:
        pass

    def reconnect_delay_set(self, min_delay: int, max_delay: int) -> None:
        self.reconnect_delays = (min_delay, max_delay)

    def tls_set(self) -> None:
        self.tls = True

    def connect_async(self, host: str, port: int, keepalive: int = 60) -> None:
        self.connected_to = (host, port, keepalive)

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.disconnects += 1

    def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append((topic, qos))


def _endpoint_config() -> DeskdropConfig:
    return DeskdropConfig(
        base_url="https://db.example.com",
        api_key="anon",
        broker_host="mqtt.example.com",
        feed_reconnect_min_delay=2,
        feed_reconnect_max_delay=30,
    )


def test_stop_without_start_is_harmless() -> None:
    loop = asyncio.new_event_loop()
    try:
        runtime = ChangeFeedRuntime(loop=loop, on_event=lambda event: None)
        runtime.stop()
        assert not runtime.is_running
        assert not runtime.is_connected
    finally:
        loop.close()


@pytest.mark.asyncio
async def test_runtime_subscribes_on_every_connect_and_forwards_events(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(feed_module.mqtt, "Client", _FakeMqttClient)
    _FakeMqttClient.instances.clear()
    received: list[ChangeEvent] = []
    runtime = ChangeFeedRuntime(loop=asyncio.get_running_loop(), on_event=received.append, table="orders")

    runtime.start(build_feed_endpoint(_endpoint_config()))
    client = _FakeMqttClient.instances[0]

    assert runtime.is_running
    assert client.loop_running
    assert client.connected_to == ("mqtt.example.com", 1883, 60)
    assert client.reconnect_delays == (2, 30)

    ok = SimpleNamespace(is_failure=False)
    client.on_connect(client, None, None, ok, None)
    client.on_disconnect(client, None, None, SimpleNamespace(is_failure=True), None)
    assert not runtime.is_connected
    client.on_connect(client, None, None, ok, None)
    assert runtime.is_connected
    assert client.subscriptions == [("deskdrop/changes/orders", 1)] * 2

    client.on_message(client, None, SimpleNamespace(topic="t", payload=b"garbage"))
    client.on_message(client, None, SimpleNamespace(topic="t", payload=b'{"eventType": "DELETE", "old": {"id": 3}}'))
    await asyncio.sleep(0)

    assert len(received) == 1
    assert received[0].event_type is ChangeType.DELETE
    assert received[0].table == "orders"

    runtime.stop()
    assert not client.loop_running
    assert client.disconnects == 1
    assert not runtime.is_running


@pytest.mark.asyncio
async def test_failed_connect_does_not_subscribe(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(feed_module.mqtt, "Client", _FakeMqttClient)
    _FakeMqttClient.instances.clear()
    runtime = ChangeFeedRuntime(loop=asyncio.get_running_loop(), on_event=lambda event: None)

    runtime.start(build_feed_endpoint(_endpoint_config()))
    client = _FakeMqttClient.instances[0]
    client.on_connect(client, None, None, SimpleNamespace(is_failure=True), None)

    assert client.subscriptions == []
    assert not runtime.is_connected
    runtime.stop()
