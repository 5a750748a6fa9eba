"""Device attitude capabilities for the sending side."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import numpy as np

from ..math3d.quaternion import q_identity, q_normalize
from ..net.wire import MessageKind


class OrientationSource:
    """Base interface for the device attitude (gyroscope) capability.

    ``get_quaternion()`` returns the raw device attitude ``[w, x, y, z]`` in
    sensor space and must be safe to call from the sender thread. ``run()``
    owns the calling (main) thread, like a UI event loop.
    """

    name: str = "base"

    def __init__(self):
        self._lock = threading.Lock()
        self._q = q_identity()
        self._command_handler: Optional[Callable[[MessageKind], None]] = None

    def is_available(self) -> bool:
        return True

    def get_quaternion(self) -> np.ndarray:
        with self._lock:
            return self._q.copy()

    def _publish(self, q: np.ndarray) -> None:
        q = q_normalize(q)
        with self._lock:
            self._q = q

    def set_command_handler(self, handler: Optional[Callable[[MessageKind], None]]) -> None:
        """Optional UI hook: sources with buttons emit calibrate/shoot/restart."""
        self._command_handler = handler

    def _emit_command(self, kind: MessageKind) -> None:
        if self._command_handler is not None:
            self._command_handler(kind)

    def set_status(self, text: str) -> None:
        # Optional UI hook.
        pass

    def run(self, on_tick: Callable[[], None]) -> None:
        """Run the source's event loop and call on_tick periodically."""
        raise NotImplementedError

    def close(self) -> None:
        pass


class UnavailableOrientationSource(OrientationSource):
    """No gyroscope on this device; sends become no-ops."""

    name = "none"

    def __init__(self, tick_s: float = 0.1):
        super().__init__()
        self.tick_s = float(tick_s)
        self._closed = threading.Event()

    def is_available(self) -> bool:
        return False

    def run(self, on_tick: Callable[[], None]) -> None:
        while not self._closed.is_set():
            on_tick()
            time.sleep(self.tick_s)

    def close(self) -> None:
        self._closed.set()
