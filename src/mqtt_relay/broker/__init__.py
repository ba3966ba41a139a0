"""
Broker: the MQTT side of the relay.

Public surface
--------------
- :class:`Channel`: bounded hand-off buffer shared with the relay loop.
- :class:`BrokerSubscriberBase`: abstract subscriber.
- :class:`MqttSubscriber`: paho-mqtt subscriber.
- :class:`BrokerAddress`: parsed broker location and credentials.
"""

from mqtt_relay.broker.base import BrokerSubscriberBase
from mqtt_relay.broker.channel import Channel
from mqtt_relay.broker.models import BrokerAddress

__all__ = [
    "BrokerAddress",
    "BrokerSubscriberBase",
    "Channel",
    "MqttSubscriber",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import MqttSubscriber to avoid pulling in paho at import time."""
    if name == "MqttSubscriber":
        from mqtt_relay.broker.subscriber import MqttSubscriber

        return MqttSubscriber
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
