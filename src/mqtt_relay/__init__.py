"""
mqtt_relay: persist every message of an MQTT topic as a document.

Subpackages
-----------
- :mod:`mqtt_relay.broker`: MQTT subscriber and the hand-off channel.
- :mod:`mqtt_relay.relay`: the consumer loop and document ids.
- :mod:`mqtt_relay.store`: document-store gateway (Chroma backend).
- :mod:`mqtt_relay.coordinator`: startup / shutdown sequencing.
"""

__version__ = "0.1.0"
