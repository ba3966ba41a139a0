"""Unit tests for the lifecycle coordinator (``Pipeline``).

The store and the broker are replaced with in-memory fakes; stdin is a
stand-in object whose ``read()`` returns once the test is ready to shut down.
"""

from __future__ import annotations

import io
import logging
import threading
import time
from unittest.mock import MagicMock

import pytest

from mqtt_relay.broker.base import BrokerSubscriberBase
from mqtt_relay.broker.channel import Channel
from mqtt_relay.broker.models import BrokerAddress
from mqtt_relay.config import Settings
from mqtt_relay.coordinator import Pipeline
from mqtt_relay.errors import BrokerConnectionError, ChannelClosed, ConfigurationError, InsertError
from mqtt_relay.store.base import DocumentStoreBase
from mqtt_relay.store.models import ConnectionDescriptor


# ── Fakes ──────────────────────────────────────────────────────────────


class FakeSubscriber(BrokerSubscriberBase):
    """Publishes *payloads* into the channel from its own thread once subscribed."""

    def __init__(self, payloads: list[bytes] | None = None, *, fail_connect: bool = False) -> None:
        self.payloads = payloads or []
        self.fail_connect = fail_connect
        self.topic: str | None = None
        self.connects = 0
        self.disconnects = 0
        self.dropped = 0
        self._thread: threading.Thread | None = None

    def connect(self) -> None:
        self.connects += 1
        if self.fail_connect:
            raise BrokerConnectionError("Not authorized")

    def subscribe(self, topic: str, channel: Channel) -> None:
        self.topic = topic
        self._thread = threading.Thread(target=self._publish, args=(channel,), daemon=True)
        self._thread.start()

    def _publish(self, channel: Channel) -> None:
        for payload in self.payloads:
            try:
                channel.send(payload)
            except ChannelClosed:
                self.dropped += 1

    def disconnect(self) -> None:
        self.disconnects += 1


class HangingSubscriber(FakeSubscriber):
    """``connect`` waits for a CONNACK that never comes, until ``disconnect``."""

    def __init__(self) -> None:
        super().__init__()
        self.connecting = threading.Event()
        self._released = threading.Event()

    def connect(self) -> None:
        self.connects += 1
        self.connecting.set()
        self._released.wait(10)

    def disconnect(self) -> None:
        self.disconnects += 1
        self._released.set()


class SlowStore(DocumentStoreBase):
    """Holds every insert until *release* is set."""

    def __init__(self) -> None:
        super().__init__("sensor_data")
        self.documents: list = []
        self.writing = threading.Event()
        self.release = threading.Event()

    def insert(self, document) -> None:  # noqa: ANN001
        self.writing.set()
        self.release.wait(10)
        self.documents.append(document)


class BlockingStdin:
    """``read()`` returns ``""`` once *ready* is true or *timeout* elapses."""

    def __init__(self, ready=lambda: False, timeout: float = 5.0) -> None:  # noqa: ANN001
        self.ready = ready
        self.timeout = timeout

    def read(self) -> str:
        deadline = time.monotonic() + self.timeout
        while not self.ready() and time.monotonic() < deadline:
            time.sleep(0.01)
        return ""


def _pipeline(connection, subscriber, **kwargs) -> Pipeline:  # noqa: ANN001
    descriptor = ConnectionDescriptor.build("localhost:8000", user="admin", password="pw")
    return Pipeline(
        descriptor,
        BrokerAddress(host="localhost"),
        store_name="sensor_data",
        topic="mac/Processes",
        poll_interval=0.01,
        connect_store=lambda _conn_str: connection,
        subscriber_factory=lambda *_args: subscriber,
        **kwargs,
    )


# ── Construction ───────────────────────────────────────────────────────


class TestFromSettings:
    def test_empty_password_fails_before_any_connection(self) -> None:
        connect_store = MagicMock()
        subscriber_factory = MagicMock()
        with pytest.raises(ConfigurationError):
            Pipeline.from_settings(
                Settings(_env_file=None, store_password=""),
                connect_store=connect_store,
                subscriber_factory=subscriber_factory,
            )
        connect_store.assert_not_called()
        subscriber_factory.assert_not_called()

    def test_settings_are_carried_over(self) -> None:
        settings = Settings(
            _env_file=None,
            store_password="pw",
            mqtt_url="u:p@broker:1884",
            mqtt_topic="sensors/#",
            store_name="readings",
            poll_interval=0.5,
        )
        pipeline = Pipeline.from_settings(settings)
        assert pipeline.broker.host == "broker"
        assert pipeline.broker.username == "u"
        assert pipeline.topic == "sensors/#"
        assert pipeline.store_name == "readings"
        assert pipeline.poll_interval == 0.5
        assert "password=pw" in pipeline.descriptor.to_connection_string()


# ── Run / shutdown ─────────────────────────────────────────────────────


class TestRun:
    def test_close_exactly_once_without_messages(self, connection_factory) -> None:
        connection = connection_factory()
        subscriber = FakeSubscriber()
        _pipeline(connection, subscriber).run(BlockingStdin(ready=lambda: subscriber.topic is not None))

        assert connection.close_calls == 1
        assert connection.created == ["sensor_data"]
        assert subscriber.connects == 1
        assert subscriber.disconnects == 1
        assert subscriber.topic == "mac/Processes"

    def test_payloads_reach_the_store_in_order(self, connection_factory, store_factory) -> None:
        store = store_factory()
        connection = connection_factory(store)
        payloads = [f"msg-{i}".encode() for i in range(5)]
        stdin = BlockingStdin(ready=lambda: len(store.documents) == 5)

        _pipeline(connection, FakeSubscriber(payloads)).run(stdin)

        assert store.bodies == [p.decode() for p in payloads]
        assert all(d.topic == "mac/Processes" for d in store.documents)
        assert connection.close_calls == 1

    def test_existing_store_is_opened_not_created(self, connection_factory) -> None:
        connection = connection_factory(existing=("sensor_data",))
        _pipeline(connection, FakeSubscriber()).run(io.StringIO(""))
        assert connection.created == []
        assert connection.opened == ["sensor_data"]

    def test_insert_failure_aborts_and_cleans_up(self, connection_factory, store_factory) -> None:
        store = store_factory(fail_on=3)
        connection = connection_factory(store)
        subscriber = FakeSubscriber([b"m1", b"m2", b"m3", b"m4", b"m5"])

        with pytest.raises(InsertError):
            _pipeline(connection, subscriber).run(BlockingStdin())

        assert store.attempts == 3
        assert store.bodies == ["m1", "m2"]
        assert connection.close_calls == 1
        assert subscriber.disconnects == 1

    def test_broker_failure_still_closes_store(self, connection_factory) -> None:
        connection = connection_factory()
        pipeline = _pipeline(connection, FakeSubscriber(fail_connect=True))

        with pytest.raises(BrokerConnectionError):
            pipeline.run(BlockingStdin())

        assert connection.close_calls == 1
        assert pipeline.channel.closed

    def test_request_shutdown(self, connection_factory) -> None:
        connection = connection_factory()
        pipeline = _pipeline(connection, FakeSubscriber())
        worker = threading.Thread(target=pipeline.run, args=(BlockingStdin(timeout=30),))
        worker.start()
        time.sleep(0.05)
        pipeline.request_shutdown()
        worker.join(5)
        assert not worker.is_alive()
        assert connection.close_calls == 1

    def test_unreadable_stdin_counts_as_end_of_input(self, connection_factory) -> None:
        stdin = io.StringIO("")
        stdin.close()
        connection = connection_factory()
        _pipeline(connection, FakeSubscriber()).run(stdin)
        assert connection.close_calls == 1

    def test_end_of_input_while_broker_connect_is_pending(self, connection_factory) -> None:
        connection = connection_factory()
        subscriber = HangingSubscriber()
        worker = threading.Thread(target=_pipeline(connection, subscriber).run, args=(io.StringIO(""),))
        worker.start()
        worker.join(3)

        assert not worker.is_alive()
        assert connection.close_calls == 1
        assert subscriber.disconnects == 1

    def test_relay_failure_while_broker_connect_is_pending(self, connection_factory, store_factory) -> None:
        connection = connection_factory(store_factory(fail_on=1))
        subscriber = HangingSubscriber()
        pipeline = _pipeline(connection, subscriber)
        pipeline.channel.send(b"m1")

        with pytest.raises(InsertError):
            pipeline.run(BlockingStdin(timeout=30))

        assert subscriber.connecting.wait(1)
        assert connection.close_calls == 1

    def test_warns_when_relay_outlives_join_timeout(
        self, connection_factory, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setattr("mqtt_relay.coordinator._RELAY_JOIN_TIMEOUT", 0.1)
        store = SlowStore()
        connection = connection_factory(store)
        try:
            with caplog.at_level(logging.WARNING, logger="mqtt_relay.coordinator"):
                _pipeline(connection, FakeSubscriber([b"m1"])).run(BlockingStdin(ready=store.writing.is_set))
        finally:
            store.release.set()

        assert "Relay still busy" in caplog.text
        assert connection.close_calls == 1
