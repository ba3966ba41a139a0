"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from mqtt_relay.errors import InsertError
from mqtt_relay.store.base import DocumentStoreBase, StoreConnectionBase
from mqtt_relay.store.models import Document


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring a broker or a store server")


# ── In-memory store fakes ───────────────────────────────────────────────


class RecordingStore(DocumentStoreBase):
    """Keeps inserted documents in order; optionally fails on the n-th insert."""

    def __init__(self, name: str = "test-store", *, fail_on: int | None = None) -> None:
        super().__init__(name)
        self.fail_on = fail_on
        self.attempts = 0
        self.documents: list[Document] = []

    def insert(self, document: Document) -> None:
        self.attempts += 1
        if self.attempts == self.fail_on:
            raise InsertError("simulated write rejection", document_id=document.id)
        self.documents.append(document)

    @property
    def bodies(self) -> list[str]:
        return [d.body for d in self.documents]


class FakeConnection(StoreConnectionBase):
    """Connection fake that records create / open / close calls."""

    def __init__(self, store: RecordingStore | None = None, *, existing: tuple[str, ...] = ()) -> None:
        super().__init__()
        self._store = store or RecordingStore()
        self.existing = set(existing)
        self.created: list[str] = []
        self.opened: list[str] = []
        self.close_calls = 0

    def store_exists(self, name: str) -> bool:
        return name in self.existing

    def create_store(self, name: str) -> RecordingStore:
        self.created.append(name)
        self.existing.add(name)
        return self._store

    def get_store(self, name: str) -> RecordingStore:
        self.opened.append(name)
        return self._store

    def _close(self) -> None:
        self.close_calls += 1


@pytest.fixture()
def store_factory() -> Callable[..., RecordingStore]:
    return RecordingStore


@pytest.fixture()
def connection_factory() -> Callable[..., FakeConnection]:
    return FakeConnection
