"""Abstract base class for broker subscribers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from mqtt_relay.broker.channel import Channel


class BrokerSubscriberBase(ABC):
    """Owns one broker session and forwards one topic into a :class:`Channel`."""

    @abstractmethod
    def connect(self) -> None:
        """Open the session.

        Raises :class:`~mqtt_relay.errors.BrokerConnectionError` on a refused
        socket or a rejected handshake.
        """
        ...

    @abstractmethod
    def subscribe(self, topic: str, channel: Channel) -> None:
        """Forward every payload received on *topic* into *channel*."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        ...
