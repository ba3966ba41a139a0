"""The relay loop: drains the channel into the document store.

The loop alternates between two states:

* **POLLING**: non-blocking receive from the channel.  When nothing is
  waiting it logs a heartbeat and idles for ``poll_interval`` seconds, so an
  idle relay never polls faster than once per interval.
* **STORING**: wrap the payload in a :class:`Document` with a fresh id and
  insert it.

An :class:`~mqtt_relay.errors.InsertError` is never caught here: it ends
:meth:`RelayLoop.run` so that no later payload is attempted, and the
coordinator takes care of closing the store connection.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from mqtt_relay.broker.channel import Channel
from mqtt_relay.relay.ids import DocumentIdGenerator
from mqtt_relay.store.base import DocumentStoreBase
from mqtt_relay.store.models import Document

logger = logging.getLogger(__name__)


class RelayLoop:
    """Single consumer that persists every payload from *channel* to *store*.

    Parameters
    ----------
    channel:
        Shared channel fed by the broker subscriber.
    store:
        Target document store.
    poll_interval:
        Seconds to idle after an empty poll.
    topic:
        Topic recorded on each document's metadata.
    id_generator:
        Callable returning a fresh document id; defaults to
        :class:`DocumentIdGenerator`.
    stop_event:
        Event that ends :meth:`run`; also used for the idle wait so that
        :meth:`stop` interrupts it immediately.
    """

    def __init__(
        self,
        channel: Channel,
        store: DocumentStoreBase,
        *,
        poll_interval: float = 1.0,
        topic: str | None = None,
        id_generator: Callable[[], str] | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._channel = channel
        self._store = store
        self.poll_interval = poll_interval
        self.topic = topic
        self._next_id = id_generator or DocumentIdGenerator()
        self._stop = stop_event or threading.Event()
        self.stored = 0

    def poll_once(self) -> bool:
        """Run one POLLING step (and STORING, if a payload was waiting).

        Returns ``True`` when a document was stored.
        """
        payload = self._channel.try_receive()
        if payload is None:
            logger.info("waiting for messages on channel...")
            return False

        logger.info("Got new message to store in db")
        document = Document.from_payload(self._next_id(), payload, topic=self.topic)
        self._store.insert(document)
        self.stored += 1
        logger.info("Inserted document %s", document.id)
        return True

    def run(self) -> None:
        logger.info("Relay loop started (store=%s, poll_interval=%.2fs)", self._store.name, self.poll_interval)
        while not self._stop.is_set():
            if not self.poll_once():
                self._stop.wait(self.poll_interval)
        logger.info("Relay loop stopped after %d documents", self.stored)

    def stop(self) -> None:
        self._stop.set()
