"""MQTT subscriber built on paho-mqtt.

paho runs its network loop in a background thread and invokes
:meth:`MqttSubscriber._on_message` from that thread.  Every payload is
pushed into the shared :class:`~mqtt_relay.broker.channel.Channel`; a full
channel blocks the network thread, so the broker client stops reading from
the socket until the relay loop catches up.

An unexpected disconnect after subscribing is logged and left to paho's
automatic reconnect.  The subscription is re-issued from ``on_connect`` on
every successful (re)connect.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import paho.mqtt.client as mqtt

from mqtt_relay.broker.base import BrokerSubscriberBase
from mqtt_relay.broker.channel import Channel
from mqtt_relay.broker.models import BrokerAddress
from mqtt_relay.errors import BrokerConnectionError, ChannelClosed

logger = logging.getLogger(__name__)

DEFAULT_KEEPALIVE = 60


class MqttSubscriber(BrokerSubscriberBase):
    """Subscribes to a single topic at QoS 0.

    Parameters
    ----------
    address:
        Broker host, port and optional credentials.
    client_id:
        Client identity presented to the broker.
    connect_timeout:
        Length of one CONNACK wait window in seconds.
    max_connect_windows:
        Give up after this many windows.  ``None`` waits indefinitely,
        re-checking after each window.
    client:
        Pre-built paho client (tests inject a fake).
    """

    def __init__(
        self,
        address: BrokerAddress,
        client_id: str = "sub",
        *,
        connect_timeout: float = 3.0,
        max_connect_windows: int | None = None,
        client: Any = None,
    ) -> None:
        self.address = address
        self.client_id = client_id
        self.connect_timeout = connect_timeout
        self.max_connect_windows = max_connect_windows
        if client is None:
            client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self._client = client
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        self._connack = threading.Event()
        self._connect_error: str | None = None
        self._closing = False
        self._connected = False
        self._topic: str | None = None
        self._channel: Channel | None = None
        self.received = 0

    # -- BrokerSubscriberBase overrides ---------------------------------------

    def connect(self) -> None:
        if self.address.username is not None:
            self._client.username_pw_set(self.address.username, self.address.password)

        logger.info("Connecting to MQTT broker %s as %r", self.address, self.client_id)
        try:
            self._client.connect(self.address.host, self.address.port, keepalive=DEFAULT_KEEPALIVE)
        except (OSError, ValueError) as exc:
            raise BrokerConnectionError(
                f"Could not reach MQTT broker: {exc}", details={"broker": str(self.address)}
            ) from exc
        self._client.loop_start()

        windows = 0
        while not self._connack.wait(self.connect_timeout):
            windows += 1
            logger.info("Still waiting for CONNACK from %s (%.1fs)", self.address, windows * self.connect_timeout)
            if self.max_connect_windows is not None and windows >= self.max_connect_windows:
                self._abandon_connect()
                raise BrokerConnectionError(
                    "Timed out waiting for MQTT broker handshake",
                    details={"broker": str(self.address), "waited_seconds": windows * self.connect_timeout},
                )

        if self._closing:
            self._abandon_connect()
            logger.info("Broker connect abandoned: shutdown requested")
            return
        if self._connect_error is not None:
            self._abandon_connect()
            raise BrokerConnectionError(
                f"MQTT broker rejected the connection: {self._connect_error}",
                details={"broker": str(self.address)},
            )
        self._connected = True

    def subscribe(self, topic: str, channel: Channel) -> None:
        self._topic = topic
        self._channel = channel
        if self._closing:
            channel.close()
            return
        self._client.subscribe(topic, qos=0)
        logger.info("Subscribed to topic %r", topic)

    def disconnect(self) -> None:
        """Safe to call from another thread while :meth:`connect` is still waiting."""
        self._closing = True
        if self._channel is not None:
            self._channel.close()
        if not self._connected:
            # Wake a pending CONNACK wait.
            self._connack.set()
            return
        self._connected = False
        self._client.disconnect()
        self._client.loop_stop()
        logger.info("Disconnected from MQTT broker %s", self.address)

    def _abandon_connect(self) -> None:
        self._client.disconnect()
        self._client.loop_stop()

    # -- paho callbacks (network thread) --------------------------------------

    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            if not self._connack.is_set():
                self._connect_error = str(reason_code)
                self._connack.set()
            else:
                logger.error("MQTT reconnect rejected: %s", reason_code)
            return

        if self._topic is not None:
            # Reconnect: the broker may not have kept the session.
            client.subscribe(self._topic, qos=0)
            logger.info("Re-subscribed to topic %r after reconnect", self._topic)
        self._connack.set()

    def _on_disconnect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if self._connected and reason_code.is_failure:
            logger.warning("MQTT broker session dropped (%s); reconnecting", reason_code)

    def _on_message(self, client: Any, userdata: Any, message: Any) -> None:
        if self._channel is None:
            return
        try:
            self._channel.send(message.payload)
        except ChannelClosed:
            logger.warning("Dropped message on %r: channel closed", message.topic)
            return
        self.received += 1
        logger.info("Read message from MQTT")
