"""
Worker-thread → UI-thread event queue.

Worker threads :meth:`~EventQueue.post` ``(kind, payload)`` tuples; the Tk
main loop calls :meth:`~EventQueue.drain` on a timer.  A handler that raises
never stops the drain: the error is logged and passed to *on_error*, and the
remaining events are still delivered.
"""

import logging
import queue
from typing import Any, Callable

log = logging.getLogger("orion_ai")


class EventQueue:
    """Thread-safe FIFO of ``(kind, payload)`` events."""

    def __init__(self) -> None:
        self._queue: queue.Queue = queue.Queue()

    def post(self, kind: str, payload: Any = None) -> None:
        """Enqueue an event.  Safe to call from any thread."""
        self._queue.put((kind, payload))

    def drain(
        self,
        handle: Callable[[str, Any], None],
        on_error: Callable[[str, Any, Exception], None] | None = None,
    ) -> int:
        """Deliver every queued event to *handle*; return how many ran."""
        count = 0
        while True:
            try:
                kind, payload = self._queue.get_nowait()
            except queue.Empty:
                return count
            count += 1
            try:
                handle(kind, payload)
            except Exception as exc:  # noqa: BLE001
                log.error("[APP] Handler for %r event failed", kind,
                          exc_info=True)
                if on_error is not None:
                    on_error(kind, payload, exc)
