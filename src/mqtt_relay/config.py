"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Relay settings, populated from env vars, a .env file, or CLI overrides."""

    # Broker
    mqtt_url: str = Field(
        default="localhost:1883",
        description="MQTT broker address, optionally with credentials: 'user:pass@host:port'",
    )
    mqtt_topic: str = Field(default="mac/Processes", description="MQTT topic to read from")
    mqtt_client_id: str = "sub"
    mqtt_connect_timeout: float = Field(
        default=3.0,
        gt=0,
        description="Seconds per CONNACK wait window before logging and waiting again",
    )

    # Document store
    store_url: str = Field(default="localhost:8000", description="Chroma endpoint as 'host:port'")
    store_auth: str = Field(default="basic", description="Authorization type ('basic' or 'token')")
    store_user: str = "admin"
    store_password: str = Field(default="", description="Password (or token) for the store user")
    store_use_ssl: bool = False
    store_name: str = Field(default="sensor_data", description="Collection that receives the messages")

    # Relay
    poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Seconds the relay idles after finding the channel empty",
    )

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value!r}")
        return level

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

