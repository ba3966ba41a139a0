"""Lifecycle coordinator: wires the pipeline together and owns shutdown.

Startup order::

    descriptor / broker address   ← ConfigurationError raised here, no I/O yet
            │
            ▼
    store connection (once) ─► open_or_create_store
            │
            ▼
    stdin watcher, relay thread, broker thread
    MQTT subscriber ──► Channel ──► RelayLoop ──► store
            │
            ▼
    wait for end-of-input on stdin  (or a relay / broker failure)

Shutdown stops the relay, disconnects the broker and closes the store
connection exactly once.  Payloads still in the channel are dropped.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Callable
from typing import IO

from mqtt_relay.broker.base import BrokerSubscriberBase
from mqtt_relay.broker.channel import Channel
from mqtt_relay.broker.models import BrokerAddress
from mqtt_relay.config import Settings
from mqtt_relay.relay.loop import RelayLoop
from mqtt_relay.store.base import StoreConnectionBase
from mqtt_relay.store.models import ConnectionDescriptor

logger = logging.getLogger(__name__)

# Upper bound on waiting for the relay thread after asking it to stop.
_RELAY_JOIN_TIMEOUT = 10.0


def _default_connect_store(connection_string: str) -> StoreConnectionBase:
    from mqtt_relay.store.chroma_store import connect

    return connect(connection_string)


def _default_subscriber(address: BrokerAddress, client_id: str, connect_timeout: float) -> BrokerSubscriberBase:
    from mqtt_relay.broker.subscriber import MqttSubscriber

    return MqttSubscriber(address, client_id, connect_timeout=connect_timeout)


class Pipeline:
    """Runs the broker → channel → relay → store pipeline until end-of-input.

    Parameters
    ----------
    descriptor:
        Validated store connection descriptor.
    broker:
        Broker address and credentials.
    store_name:
        Store (collection) that receives the documents.
    topic:
        MQTT topic to subscribe to.
    client_id:
        Client identity presented to the broker.
    poll_interval:
        Relay idle interval in seconds.
    connect_timeout:
        Broker CONNACK wait window in seconds.
    connect_store:
        ``connection_string -> StoreConnectionBase``; defaults to Chroma.
    subscriber_factory:
        ``(address, client_id, connect_timeout) -> BrokerSubscriberBase``;
        defaults to :class:`~mqtt_relay.broker.subscriber.MqttSubscriber`.
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        broker: BrokerAddress,
        *,
        store_name: str,
        topic: str,
        client_id: str = "sub",
        poll_interval: float = 1.0,
        connect_timeout: float = 3.0,
        connect_store: Callable[[str], StoreConnectionBase] | None = None,
        subscriber_factory: Callable[[BrokerAddress, str, float], BrokerSubscriberBase] | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.broker = broker
        self.store_name = store_name
        self.topic = topic
        self.client_id = client_id
        self.poll_interval = poll_interval
        self.connect_timeout = connect_timeout
        self._connect_store = connect_store or _default_connect_store
        self._subscriber_factory = subscriber_factory or _default_subscriber

        self.channel = Channel()
        self.relay: RelayLoop | None = None
        self._shutdown = threading.Event()
        self._failure: Exception | None = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> Pipeline:
        """Build a pipeline from *settings*.

        Raises :class:`~mqtt_relay.errors.ConfigurationError` (e.g. empty
        password) before anything touches the network.
        """
        descriptor = ConnectionDescriptor.build(
            settings.store_url,
            auth=settings.store_auth,
            user=settings.store_user,
            password=settings.store_password,
            ssl=settings.store_use_ssl,
        )
        broker = BrokerAddress.parse(settings.mqtt_url)
        logger.info("Formatted connection string to document store: %s", descriptor.redacted())
        return cls(
            descriptor,
            broker,
            store_name=settings.store_name,
            topic=settings.mqtt_topic,
            client_id=settings.mqtt_client_id,
            poll_interval=settings.poll_interval,
            connect_timeout=settings.mqtt_connect_timeout,
            **kwargs,
        )

    # -- public API -----------------------------------------------------------

    def run(self, stdin: IO[str] | None = None) -> None:
        """Start the pipeline and block until end-of-input on *stdin*.

        Re-raises the first relay or broker error, after cleanup.
        """
        stdin = stdin if stdin is not None else sys.stdin
        connection = self._connect_store(self.descriptor.to_connection_string())
        subscriber: BrokerSubscriberBase | None = None
        relay_thread: threading.Thread | None = None
        try:
            store = connection.open_or_create_store(self.store_name)
            self.relay = RelayLoop(
                self.channel,
                store,
                poll_interval=self.poll_interval,
                topic=self.topic,
            )
            relay_thread = threading.Thread(target=self._run_relay, name="relay-loop", daemon=True)
            relay_thread.start()

            watcher = threading.Thread(target=self._watch_input, args=(stdin,), name="stdin-watcher", daemon=True)
            watcher.start()

            subscriber = self._subscriber_factory(self.broker, self.client_id, self.connect_timeout)
            broker_thread = threading.Thread(
                target=self._run_subscriber, args=(subscriber,), name="broker-subscriber", daemon=True
            )
            broker_thread.start()
            self._shutdown.wait()
        finally:
            logger.info("Shutting down")
            if self.relay is not None:
                self.relay.stop()
            if subscriber is not None:
                subscriber.disconnect()
            self.channel.close()
            if relay_thread is not None:
                relay_thread.join(_RELAY_JOIN_TIMEOUT)
                if relay_thread.is_alive():
                    logger.warning(
                        "Relay still busy after %.1fs; closing the store under an in-flight write",
                        _RELAY_JOIN_TIMEOUT,
                    )
            connection.close()

        if self._failure is not None:
            raise self._failure

    def request_shutdown(self) -> None:
        """Trigger the same shutdown as end-of-input."""
        self._shutdown.set()

    # -- internals ------------------------------------------------------------

    def _fail(self, exc: Exception) -> None:
        # The first failure wins; later ones are consequences of the shutdown.
        if self._failure is None:
            self._failure = exc
        self._shutdown.set()

    def _run_relay(self) -> None:
        try:
            self.relay.run()
        except Exception as exc:
            logger.error("Relay loop failed: %s", exc)
            self._fail(exc)
        finally:
            self._shutdown.set()

    def _run_subscriber(self, subscriber: BrokerSubscriberBase) -> None:
        try:
            subscriber.connect()
            subscriber.subscribe(self.topic, self.channel)
        except Exception as exc:
            logger.error("Broker subscriber failed: %s", exc)
            self._fail(exc)

    def _watch_input(self, stdin: IO[str]) -> None:
        try:
            data = stdin.read()
            logger.info("End of input received (%d characters)", len(data))
        except (OSError, ValueError) as exc:
            logger.warning("Standard input unreadable (%s); treating as end of input", exc)
        self._shutdown.set()
