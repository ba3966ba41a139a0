"""Domain models for persisted documents and store connection descriptors."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from typing import Any, Literal
from urllib.parse import quote, unquote

from pydantic import BaseModel, Field, SecretStr

from mqtt_relay.errors import ConfigurationError, StoreConnectionError


class ConnectionDescriptor(BaseModel):
    """Everything needed to open a session to the document store.

    Attributes
    ----------
    endpoint:
        ``host:port`` of the store server.
    auth:
        Authorization mode, e.g. ``"basic"`` or ``"token"``.
    user:
        Username for the session.
    password:
        Password (or token) for *user*; never empty.
    ssl:
        Whether the transport is TLS.
    """

    endpoint: str
    auth: str = "basic"
    user: str = ""
    password: SecretStr
    ssl: bool = False

    @classmethod
    def build(
        cls,
        endpoint: str,
        *,
        auth: str = "basic",
        user: str = "",
        password: str | None = None,
        ssl: bool = False,
    ) -> ConnectionDescriptor:
        """Validate the discrete fields and return a descriptor.

        Raises :class:`ConfigurationError` when *password* is empty.
        """
        if not password:
            raise ConfigurationError(
                "Password for the connection to the document store needs to be set",
                config_key="store_password",
            )
        if not endpoint:
            raise ConfigurationError("Store endpoint needs to be set", config_key="store_url")
        return cls(endpoint=endpoint, auth=auth, user=user, password=SecretStr(password), ssl=ssl)

    @classmethod
    def parse(cls, connection_string: str) -> ConnectionDescriptor:
        """Parse a string produced by :meth:`to_connection_string`."""
        endpoint, sep, query = connection_string.partition("?")
        params: dict[str, str] = {}
        if sep:
            for part in query.split(";"):
                if not part:
                    continue
                key, eq, value = part.partition("=")
                if not eq:
                    raise StoreConnectionError(
                        "Malformed connection string parameter", details={"parameter": key}
                    )
                params[key.strip().lower()] = unquote(value)
        try:
            return cls.build(
                endpoint.strip(),
                auth=params.get("auth", "basic"),
                user=params.get("user", ""),
                password=params.get("password"),
                ssl=params.get("ssl", "false").lower() == "true",
            )
        except ConfigurationError as exc:
            raise StoreConnectionError(exc.message, details=exc.details) from exc

    @property
    def host(self) -> str:
        return self.endpoint.rsplit(":", 1)[0]

    @property
    def port(self) -> int:
        host, sep, port = self.endpoint.rpartition(":")
        if not sep or not host:
            raise StoreConnectionError(
                "Store endpoint must be in the form host:port", details={"endpoint": self.endpoint}
            )
        try:
            return int(port)
        except ValueError as exc:
            raise StoreConnectionError(
                "Store endpoint port is not a number", details={"endpoint": self.endpoint}
            ) from exc

    def to_connection_string(self) -> str:
        """Render the descriptor; user and password are percent-encoded."""
        return self._render(quote(self.password.get_secret_value(), safe=""))

    def redacted(self) -> str:
        """Connection string with the password masked, safe for logs."""
        return self._render("****")

    def _render(self, password: str) -> str:
        return (
            f"{self.endpoint}?auth={self.auth};user={quote(self.user, safe='')};"
            f"password={password};ssl={str(self.ssl).lower()}"
        )


class Document(BaseModel):
    """A persisted record wrapping exactly one broker payload.

    The body is the payload decoded as UTF-8 when possible; payloads that are
    not valid UTF-8 are stored base64-encoded so the original bytes survive.
    """

    id: str
    body: str
    encoding: Literal["utf-8", "base64"] = "utf-8"
    topic: str | None = None
    size: int = 0
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_payload(cls, doc_id: str, payload: bytes, *, topic: str | None = None) -> Document:
        try:
            body = payload.decode("utf-8")
            encoding = "utf-8"
        except UnicodeDecodeError:
            body = base64.b64encode(payload).decode("ascii")
            encoding = "base64"
        return cls(id=doc_id, body=body, encoding=encoding, topic=topic, size=len(payload))

    def payload(self) -> bytes:
        """Return the original payload bytes."""
        if self.encoding == "base64":
            try:
                return base64.b64decode(self.body, validate=True)
            except binascii.Error as exc:
                raise ValueError(f"Document {self.id!r} has a corrupt base64 body") from exc
        return self.body.encode("utf-8")

    def metadata(self) -> dict[str, Any]:
        """Flat metadata dict (str / int values only) stored next to the body."""
        meta: dict[str, Any] = {
            "encoding": self.encoding,
            "size": self.size,
            "received_at": self.received_at.isoformat(),
        }
        if self.topic is not None:
            meta["topic"] = self.topic
        return meta
