"""Abstract base classes for document-store backends.

Adding a new backend only requires subclassing :class:`StoreConnectionBase`
and :class:`DocumentStoreBase`.  The relay loop and the coordinator never
touch a backend client directly.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from mqtt_relay.store.models import Document

logger = logging.getLogger(__name__)


class DocumentStoreBase(ABC):
    """A named collection of documents.

    Parameters
    ----------
    name:
        Logical name of the store / collection.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    def insert(self, document: Document) -> None:
        """Durably write *document*.

        Raises :class:`~mqtt_relay.errors.InsertError` when the backend
        rejects the write.  Nothing is buffered locally.
        """
        ...


class StoreConnectionBase(ABC):
    """A live session to a document store.

    A connection owns zero or one store handle and is closed exactly once.
    """

    def __init__(self) -> None:
        self.store: DocumentStoreBase | None = None
        self.closed = False

    @abstractmethod
    def store_exists(self, name: str) -> bool:
        """Return ``True`` when a store called *name* already exists."""
        ...

    @abstractmethod
    def create_store(self, name: str) -> DocumentStoreBase:
        ...

    @abstractmethod
    def get_store(self, name: str) -> DocumentStoreBase:
        ...

    @abstractmethod
    def _close(self) -> None:
        """Release backend resources."""
        ...

    def open_or_create_store(self, name: str) -> DocumentStoreBase:
        """Open the store called *name*, creating it first if it is absent.

        The existence check and the creation are not atomic; a single
        writer process is assumed.
        """
        if not self.store_exists(name):
            logger.info("Creating store: %s", name)
            self.store = self.create_store(name)
        else:
            logger.info("Get store: %s", name)
            self.store = self.get_store(name)
        return self.store

    def close(self) -> None:
        if self.closed:
            logger.warning("Store connection already closed")
            return
        self.closed = True
        self.store = None
        self._close()
        logger.info("Store connection closed")

