"""
Exceptions raised by the relay.

Every fatal condition derives from :class:`RelayError` and is allowed to
propagate up to :class:`~mqtt_relay.coordinator.Pipeline`, which releases
the store connection before re-raising.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base exception for all relay errors.

    Attributes:
        message: Human-readable error message
        details: Additional context (never contains secrets)
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(RelayError):
    """Invalid or missing configuration, detected before any connection attempt."""

    def __init__(self, message: str, config_key: str | None = None) -> None:
        super().__init__(message, details={"config_key": config_key} if config_key else None)
        self.config_key = config_key


class PipelineConnectionError(RelayError):
    """A backend could not be reached or rejected the session."""


class StoreConnectionError(PipelineConnectionError):
    """The document store is unreachable or the descriptor is unusable."""


class BrokerConnectionError(PipelineConnectionError):
    """The MQTT broker refused the socket or the CONNACK."""


class StoreError(RelayError):
    """A store could not be created or opened."""


class InsertError(StoreError):
    """A document write was rejected by the store."""

    def __init__(self, message: str, document_id: str | None = None) -> None:
        super().__init__(message, details={"document_id": document_id} if document_id else None)
        self.document_id = document_id


class ChannelClosed(RelayError):
    """Raised to a producer that tries to send on a closed channel."""
