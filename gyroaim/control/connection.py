"""Connection liveness derived purely from packet arrival timing.

Two states, Disconnected and Connected:

- any packet arrival connects (the connected event fires once per transition);
- ``tick(now)`` disconnects once ``now - last_packet > timeout_s``;
- ``force_disconnect()`` disconnects and clears the remembered peer.

Timeout detection is polled, not timer driven. Callers tick at a modest rate
(for example every 0.5 s), so detection latency is bounded by
``max(timeout_s, poll interval)``. That latency is an accepted trade-off.

The tracker is shared between the network thread (packet notifications) and
the consumer thread (ticks, reads); state lives behind one lock and events are
delivered after the lock is released, on the thread that caused the
transition.
"""

from __future__ import annotations

import enum
import logging
import math
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


ConnectedCallback = Callable[[str], None]
DisconnectedCallback = Callable[[], None]


class ConnectionTracker:
    def __init__(
        self,
        timeout_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._lock = threading.Lock()
        self._on_connected: list[ConnectedCallback] = []
        self._on_disconnected: list[DisconnectedCallback] = []
        self._timeout_s = 0.0
        self._state = ConnectionState.DISCONNECTED
        self._last_packet_t: Optional[float] = None
        self._last_remote_address = ""
        self.initialize(timeout_s)

    def initialize(self, timeout_s: float) -> None:
        """Reset to Disconnected with a new timeout. Subscribers are kept.

        ``timeout_s <= 0`` disables timeout-based disconnection.
        """
        timeout_s = float(timeout_s)
        if math.isnan(timeout_s):
            raise ValueError("timeout_s must be a number")
        with self._lock:
            self._timeout_s = timeout_s
            self._state = ConnectionState.DISCONNECTED
            self._last_packet_t = None
            self._last_remote_address = ""

    def subscribe(
        self,
        on_connected: Optional[ConnectedCallback] = None,
        on_disconnected: Optional[DisconnectedCallback] = None,
    ) -> Callable[[], None]:
        """Register callbacks; returns a function that unregisters them."""
        with self._lock:
            if on_connected is not None:
                self._on_connected.append(on_connected)
            if on_disconnected is not None:
                self._on_disconnected.append(on_disconnected)

        def unsubscribe() -> None:
            with self._lock:
                if on_connected is not None and on_connected in self._on_connected:
                    self._on_connected.remove(on_connected)
                if on_disconnected is not None and on_disconnected in self._on_disconnected:
                    self._on_disconnected.remove(on_disconnected)

        return unsubscribe

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    @property
    def last_remote_address(self) -> str:
        with self._lock:
            return self._last_remote_address

    @property
    def last_packet_timestamp(self) -> Optional[float]:
        with self._lock:
            return self._last_packet_t

    def last_packet_age(self, now: Optional[float] = None) -> float:
        """Seconds since the last packet, ``inf`` if none was seen."""
        with self._lock:
            last = self._last_packet_t
        if last is None:
            return math.inf
        t = self._clock() if now is None else float(now)
        return max(0.0, t - last)

    def notify_packet_received(self, remote_address: Optional[str] = None, now: Optional[float] = None) -> None:
        t = self._clock() if now is None else float(now)
        with self._lock:
            self._last_packet_t = t
            if remote_address:
                self._last_remote_address = str(remote_address)
            if self._state is ConnectionState.CONNECTED:
                return
            self._state = ConnectionState.CONNECTED
            address = self._last_remote_address
            listeners = list(self._on_connected)

        logger.info("[CONN] connected%s", f" from {address}" if address else "")
        for cb in listeners:
            self._fire(cb, address)

    def tick(self, now: Optional[float] = None) -> None:
        t = self._clock() if now is None else float(now)
        with self._lock:
            if self._state is not ConnectionState.CONNECTED:
                return
            if self._timeout_s <= 0.0 or self._last_packet_t is None:
                return
            if t - self._last_packet_t <= self._timeout_s:
                return
            self._state = ConnectionState.DISCONNECTED
            listeners = list(self._on_disconnected)

        logger.info("[CONN] disconnected (timeout %.2fs)", self._timeout_s)
        for cb in listeners:
            self._fire(cb)

    def force_disconnect(self) -> None:
        with self._lock:
            was_connected = self._state is ConnectionState.CONNECTED
            previous = self._last_remote_address
            self._state = ConnectionState.DISCONNECTED
            self._last_packet_t = None
            self._last_remote_address = ""
            listeners = list(self._on_disconnected) if was_connected else []

        if was_connected:
            logger.info("[CONN] forced disconnect (last address=%s)", previous or "-")
        for cb in listeners:
            self._fire(cb)

    @staticmethod
    def _fire(cb: Callable[..., None], *args) -> None:
        try:
            cb(*args)
        except Exception:
            logger.exception("[CONN] subscriber raised")
