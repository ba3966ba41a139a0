"""In-process hand-off buffer between the subscriber and the relay loop."""

from __future__ import annotations

import queue
import threading

from mqtt_relay.errors import ChannelClosed

# How often a blocked sender re-checks whether the channel was closed.
_SEND_RECHECK_SECONDS = 0.5


class Channel:
    """FIFO channel with a single in-flight slot by default.

    :meth:`send` blocks while the slot is occupied, which stalls the
    producer's thread and so propagates back-pressure upstream.  The
    consumer only ever uses the non-blocking :meth:`try_receive`.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._queue: queue.Queue[bytes] = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, payload: bytes) -> None:
        """Put *payload* on the channel, blocking until there is room.

        Raises :class:`ChannelClosed` if the channel is closed before the
        payload could be handed over.
        """
        while True:
            if self._closed.is_set():
                raise ChannelClosed("Channel is closed")
            try:
                self._queue.put(payload, timeout=_SEND_RECHECK_SECONDS)
                return
            except queue.Full:
                continue

    def try_receive(self) -> bytes | None:
        """Return the next payload, or ``None`` when nothing is waiting."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        """Release blocked senders; anything still buffered is abandoned."""
        self._closed.set()

    def __len__(self) -> int:
        return self._queue.qsize()
