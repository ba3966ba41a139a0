"""
Relay: the consumer side of the pipeline.

Drains the channel, assigns document ids and hands documents to the store.
"""

from mqtt_relay.relay.ids import DocumentIdGenerator
from mqtt_relay.relay.loop import RelayLoop

__all__ = ["DocumentIdGenerator", "RelayLoop"]
