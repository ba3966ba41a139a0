"""Chroma implementation of the document-store abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings

from mqtt_relay.errors import InsertError, StoreConnectionError, StoreError
from mqtt_relay.store.base import DocumentStoreBase, StoreConnectionBase
from mqtt_relay.store.models import ConnectionDescriptor, Document

logger = logging.getLogger(__name__)

_AUTH_PROVIDERS = {
    "basic": "chromadb.auth.basic_authn.BasicAuthClientProvider",
    "token": "chromadb.auth.token_authn.TokenAuthClientProvider",
}


def _client_settings(descriptor: ConnectionDescriptor) -> ChromaSettings:
    """Map the descriptor's auth mode onto Chroma client auth settings."""
    provider = _AUTH_PROVIDERS.get(descriptor.auth.lower())
    if provider is None:
        raise StoreConnectionError(
            f"Unsupported auth mode: {descriptor.auth!r}",
            details={"supported": sorted(_AUTH_PROVIDERS)},
        )
    password = descriptor.password.get_secret_value()
    credentials = f"{descriptor.user}:{password}" if descriptor.auth.lower() == "basic" else password
    return ChromaSettings(
        chroma_client_auth_provider=provider,
        chroma_client_auth_credentials=credentials,
        anonymized_telemetry=False,
    )


class ChromaDocumentStore(DocumentStoreBase):
    """A Chroma collection used as a document store."""

    def __init__(self, collection: Any) -> None:
        super().__init__(collection.name)
        self._collection = collection

    def insert(self, document: Document) -> None:
        try:
            self._collection.add(
                ids=[document.id],
                documents=[document.body],
                metadatas=[document.metadata()],
            )
        except Exception as exc:
            raise InsertError(f"Insert document error: {exc}", document_id=document.id) from exc


class ChromaConnection(StoreConnectionBase):
    """Session to a Chroma server.

    Parameters
    ----------
    descriptor:
        Validated connection descriptor.
    client:
        Pre-built Chroma client; when *None* an ``HttpClient`` is created
        from *descriptor* and checked with a heartbeat.
    embedding_function:
        Embedding applied by the collection on every insert.  *None* keeps
        Chroma's default.
    """

    def __init__(
        self, descriptor: ConnectionDescriptor, *, client: Any = None, embedding_function: Any = None
    ) -> None:
        super().__init__()
        self.descriptor = descriptor
        self.embedding_function = embedding_function
        if client is None:
            client = self._make_client(descriptor)
        self._client = client

    @staticmethod
    def _make_client(descriptor: ConnectionDescriptor) -> Any:
        settings = _client_settings(descriptor)
        try:
            client = chromadb.HttpClient(
                host=descriptor.host,
                port=descriptor.port,
                ssl=descriptor.ssl,
                settings=settings,
            )
            client.heartbeat()
        except StoreConnectionError:
            raise
        except Exception as exc:
            raise StoreConnectionError(
                f"Could not connect to document store: {exc}",
                details={"endpoint": descriptor.endpoint},
            ) from exc
        return client

    # -- StoreConnectionBase overrides ----------------------------------------

    def store_exists(self, name: str) -> bool:
        try:
            collections = self._client.list_collections()
        except Exception as exc:
            raise StoreError(f"Could not list stores: {exc}", details={"store": name}) from exc
        # Older clients return Collection objects, newer ones plain names.
        return name in {getattr(c, "name", c) for c in collections}

    def create_store(self, name: str) -> ChromaDocumentStore:
        try:
            return ChromaDocumentStore(self._client.create_collection(name, **self._collection_kwargs()))
        except Exception as exc:
            raise StoreError(f"Could not create store: {exc}", details={"store": name}) from exc

    def get_store(self, name: str) -> ChromaDocumentStore:
        try:
            return ChromaDocumentStore(self._client.get_collection(name, **self._collection_kwargs()))
        except Exception as exc:
            raise StoreError(f"Could not open store: {exc}", details={"store": name}) from exc

    def _collection_kwargs(self) -> dict[str, Any]:
        if self.embedding_function is None:
            return {}
        return {"embedding_function": self.embedding_function}

    def _close(self) -> None:
        self._client.clear_system_cache()


def connect(connection_string: str) -> ChromaConnection:
    """Open a session to the Chroma server described by *connection_string*.

    Raises :class:`StoreConnectionError` when the string is malformed or the
    server does not answer.
    """
    descriptor = ConnectionDescriptor.parse(connection_string)
    logger.info("Connecting to document store: %s", descriptor.redacted())
    return ChromaConnection(descriptor)
