"""Document identity generation."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentIdGenerator:
    """Time-sortable ids that stay unique within one process.

    Each id is the UTC timestamp of generation followed by a zero-padded
    sequence number, e.g. ``2024-05-01T12:00:00.123456+00:00-00000042``.
    Two ids generated within the same clock tick differ in the suffix.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            seq = next(self._sequence)
            now = self._clock()
        return f"{now.isoformat()}-{seq:08d}"
