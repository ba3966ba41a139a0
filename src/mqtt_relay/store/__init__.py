"""
Store: the gateway between the relay and the document store.

Public surface
--------------
- :class:`StoreConnectionBase`, :class:`DocumentStoreBase`: abstract backend.
- :class:`ChromaConnection` / :func:`connect`: default Chroma backend.
- :class:`Document`, :class:`ConnectionDescriptor`: data models.
"""

from mqtt_relay.store.base import DocumentStoreBase, StoreConnectionBase
from mqtt_relay.store.models import ConnectionDescriptor, Document

__all__ = [
    "ChromaConnection",
    "ConnectionDescriptor",
    "Document",
    "DocumentStoreBase",
    "StoreConnectionBase",
    "connect",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import the Chroma backend to avoid pulling in chromadb at import time."""
    if name in ("ChromaConnection", "connect"):
        from mqtt_relay.store import chroma_store

        return getattr(chroma_store, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
