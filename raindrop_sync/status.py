import asyncio
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

StatusSink = Callable[[str], None]

STATUS_PREFIX = "Raindrop Bookmarks"


class StatusBroadcaster:
    """
    Best-effort progress notifications for at most one observer.

    Delivery is scheduled on the running event loop rather than made inline,
    so a slow or failing sink never runs inside a sync state transition.

    ``register`` sets the long-lived sink. ``push``/``pop`` lend the channel
    to a caller for the length of one request; while any lent sink is active
    the most recently pushed one receives messages instead.
    """

    def __init__(self):
        self.sink: Optional[StatusSink] = None
        self.last_message: Optional[str] = None
        self._lent: List[StatusSink] = []

    def register(self, sink: StatusSink):
        self.sink = sink

    def unregister(self):
        self.sink = None

    def push(self, sink: StatusSink):
        self._lent.append(sink)

    def pop(self, sink: StatusSink):
        # Requests may finish out of order, so remove this exact sink
        for i in range(len(self._lent) - 1, -1, -1):
            if self._lent[i] == sink:
                del self._lent[i]
                return

    @property
    def active_sink(self) -> Optional[StatusSink]:
        return self._lent[-1] if self._lent else self.sink

    def emit(self, message: str, count: Optional[int] = None):
        if count is None:
            self._send(f"{STATUS_PREFIX} - {message}")
        else:
            self._send(f"{STATUS_PREFIX} ({count}) - {message}")

    def emit_count(self, count: int):
        """Bare header, e.g. "Raindrop Bookmarks (42)"."""
        self._send(f"{STATUS_PREFIX} ({count})")

    def _send(self, text: str):
        self.last_message = text
        logger.info(text)

        sink = self.active_sink
        if sink is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(sink, text)
            return
        loop.call_soon(self._deliver, sink, text)

    @staticmethod
    def _deliver(sink: StatusSink, text: str):
        try:
            sink(text)
        except Exception as e:
            logger.warning(f"Status sink failed: {e}")
