"""Bounded, ordered channel from session threads to the presentation loop."""

from __future__ import annotations

import asyncio
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
import logging
import threading

from .exceptions import OllamaTuiError
from .models import Fragment

LOGGER = logging.getLogger(__name__)

DEFAULT_RELAY_SIZE = 100


@dataclass(frozen=True)
class RelayEvent:
    """A fragment or an error, tagged with the session that produced it."""

    session_id: int
    fragment: Fragment | None = None
    error: OllamaTuiError | None = None


class FragmentRelay:
    """Queue bridging a producer thread to the asyncio event loop.

    Producers call :meth:`push` from any thread other than the loop's; when the
    queue is full they block until the consumer catches up, so fragments are
    never dropped. The consumer awaits :meth:`next` one event at a time.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        max_size: int = DEFAULT_RELAY_SIZE,
    ) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[RelayEvent] = asyncio.Queue(maxsize=max(1, max_size))
        self._closed = False
        self._pending: set[Future[None]] = set()
        self._pending_lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop accepting events and release producers blocked on a full queue.

        Later pushes, and pushes still waiting for room, are discarded.
        """
        with self._pending_lock:
            self._closed = True
            pending = list(self._pending)
            self._pending.clear()
        for future in pending:
            future.cancel()

    def push(self, event: RelayEvent) -> None:
        """Enqueue ``event`` from a producer thread, blocking while full."""
        with self._pending_lock:
            if self._closed or self._loop.is_closed():
                self._discarded(event)
                return
            future = asyncio.run_coroutine_threadsafe(
                self._queue.put(event), self._loop
            )
            self._pending.add(future)
        try:
            future.result()
        except CancelledError:
            self._discarded(event)
        finally:
            with self._pending_lock:
                self._pending.discard(future)

    def _discarded(self, event: RelayEvent) -> None:
        LOGGER.debug(
            "relay.push.discarded",
            extra={"event": "relay.push.discarded", "session_id": event.session_id},
        )

    def push_fragment(self, session_id: int, fragment: Fragment) -> None:
        self.push(RelayEvent(session_id=session_id, fragment=fragment))

    def push_error(self, session_id: int, error: OllamaTuiError) -> None:
        self.push(RelayEvent(session_id=session_id, error=error))

    async def next(self) -> RelayEvent:
        """Wait for and return the next event in emission order."""
        return await self._queue.get()
