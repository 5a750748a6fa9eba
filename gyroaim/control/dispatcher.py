"""Cross-thread handoff to the single-threaded consumer loop.

Network callbacks post work here; the consumer tick drains it. The queue is a
FIFO so that two shoot commands stay two shots.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class MainThreadDispatcher:
    def __init__(self, max_pending: int = 1024):
        self._lock = threading.Lock()
        self._pending: deque[Callable[[], None]] = deque()
        self._max_pending = int(max_pending)
        self._dropped = 0

    def post(self, action: Callable[[], None]) -> bool:
        """Queue an action; returns False (and drops it) when the queue is full."""
        with self._lock:
            if len(self._pending) >= self._max_pending:
                self._dropped += 1
                dropped = self._dropped
            else:
                self._pending.append(action)
                return True
        logger.warning("[APP] dispatcher full, dropped action (total dropped=%d)", dropped)
        return False

    def drain(self) -> int:
        """Run every action queued so far on the calling thread."""
        with self._lock:
            batch = list(self._pending)
            self._pending.clear()
        for action in batch:
            try:
                action()
            except Exception:
                logger.exception("[APP] dispatched action raised")
        return len(batch)

    def clear(self) -> int:
        """Discard queued actions without running them."""
        with self._lock:
            n = len(self._pending)
            self._pending.clear()
        return n

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped
