"""Command-line entry point.

Reads settings from the environment / ``.env`` and lets flags override
them, then runs the pipeline until end-of-input (``^D``) on stdin::

    mqtt-relay --mqtt-url user:pass@localhost:1883 --mqtt-topic mac/Processes \\
               --store-url localhost:8000 --user admin --password secret
"""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError

from mqtt_relay.config import Settings
from mqtt_relay.coordinator import Pipeline
from mqtt_relay.errors import ConfigurationError, RelayError

logger = logging.getLogger(__name__)

# CLI flag → Settings field
_FLAG_FIELDS = {
    "mqtt_url": "mqtt_url",
    "mqtt_topic": "mqtt_topic",
    "client_id": "mqtt_client_id",
    "store_url": "store_url",
    "auth": "store_auth",
    "user": "store_user",
    "password": "store_password",
    "use_ssl": "store_use_ssl",
    "store_name": "store_name",
    "poll_interval": "poll_interval",
    "log_level": "log_level",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mqtt-relay",
        description="Relay MQTT messages into a document store until end-of-input on stdin.",
    )
    parser.add_argument("--mqtt-url", help="The URL to the MQTT broker, e.g. user:pass@localhost:1883")
    parser.add_argument("--mqtt-topic", help="MQTT topic to read from")
    parser.add_argument("--client-id", help="Client identity presented to the broker")
    parser.add_argument("--store-url", help="Document store endpoint in the form host:port")
    parser.add_argument("--auth", help="Authorization type (basic or token)")
    parser.add_argument("--user", help="Username for the store connection")
    parser.add_argument("--password", help="Password for the store user")
    parser.add_argument("--use-ssl", action="store_true", default=None, help="Use SSL for the store connection")
    parser.add_argument("--store-name", help="Store that receives the MQTT messages")
    parser.add_argument("--poll-interval", type=float, help="Seconds to idle when no message is waiting")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with non-empty CLI flags layered on top."""
    overrides = {
        field: getattr(args, flag) for flag, field in _FLAG_FIELDS.items() if getattr(args, flag) is not None
    }
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args)
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("%s", exc)
        return 2

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )

    try:
        pipeline = Pipeline.from_settings(settings)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2

    try:
        pipeline.run(sys.stdin)
    except RelayError as exc:
        logger.error("Fatal: %s", exc)
        return 1
    return 0
