"""
UDP receiver for orientation and command datagrams.

Provides functionality to:
- Receive datagrams on a background thread
- Decode both wire layouts (legacy 16-byte and tagged 17-byte)
- Publish the latest orientation as a single-slot snapshot (newest wins)
- Dispatch commands to registered handlers
- Report every decoded datagram to the connection tracker

Usage:
    receiver = OrientationReceiver(tracker=tracker)
    receiver.on_command(handle_command)
    receiver.listen(7777)
    # ... consumer reads receiver.latest_orientation() each tick ...
    receiver.stop()
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Callable, Dict, Optional

from ..control.connection import ConnectionTracker
from .endpoint import validate_port
from .wire import (
    VALID_SIZES,
    CommandMessage,
    DecodeError,
    MessageKind,
    Orientation,
    OrientationMessage,
    decode,
)

logger = logging.getLogger(__name__)

OrientationCallback = Callable[[Orientation, tuple], None]
CommandCallback = Callable[[MessageKind, tuple], None]


class OrientationReceiver:
    def __init__(
        self,
        tracker: Optional[ConnectionTracker] = None,
        host: str = "0.0.0.0",
        recv_timeout_s: float = 0.2,
        log_every_n_packets: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            tracker: Connection tracker notified on every decoded datagram
            host: Host address to bind (default: all interfaces)
            recv_timeout_s: Socket timeout so the loop can observe stop()
            log_every_n_packets: Debug-log one decoded orientation every N (0 = off)
            clock: Time source used for packet timestamps
        """
        self.host = host
        self.recv_timeout_s = float(recv_timeout_s)
        self.log_every_n_packets = int(log_every_n_packets)
        self._tracker = tracker
        self._clock = clock

        self._lifecycle_lock = threading.Lock()
        # Held while dispatching so stop() cannot return mid-callback.
        self._dispatch_lock = threading.RLock()
        self._state_lock = threading.Lock()

        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._port: Optional[int] = None

        self._orientation_callbacks: list[OrientationCallback] = []
        self._command_callbacks: list[CommandCallback] = []

        self._latest = Orientation.identity()
        self._latest_t: Optional[float] = None

        # Statistics
        self._datagrams_received = 0
        self._bytes_received = 0
        self._orientation_packets = 0
        self._command_packets = 0
        self._decode_errors = 0
        self._errors = 0

    def on_orientation(self, callback: OrientationCallback) -> None:
        """Register a callback for decoded orientations (runs on the network thread)."""
        with self._dispatch_lock:
            self._orientation_callbacks.append(callback)

    def on_command(self, callback: CommandCallback) -> None:
        """Register a callback for decoded commands (runs on the network thread)."""
        with self._dispatch_lock:
            self._command_callbacks.append(callback)

    def listen(self, port: int) -> int:
        """Bind and start receiving. Returns the bound port.

        Raises OSError when the port cannot be bound. Calling listen() while
        already listening is a no-op.
        """
        validate_port(port, "--listen-port", allow_zero=True)
        with self._lifecycle_lock:
            if self._thread is not None and self._thread.is_alive():
                logger.info("[RECV] already listening on %s:%s", self.host, self._port)
                return int(self._port)

            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.bind((self.host, int(port)))
            except OSError:
                sock.close()
                logger.exception("[RECV] failed to bind UDP %s:%s", self.host, port)
                raise
            sock.settimeout(self.recv_timeout_s)

            stop_event = threading.Event()
            self._socket = sock
            self._stop_event = stop_event
            self._port = int(sock.getsockname()[1])
            self._thread = threading.Thread(
                target=self._receive_loop,
                args=(sock, stop_event),
                name="gyroaim-recv",
                daemon=True,
            )
            self._thread.start()

        logger.info("[RECV] listening on UDP %s:%s", self.host, self._port)
        return int(self._port)

    def stop(self) -> None:
        """Stop receiving and release the socket.

        After stop() returns no callback fires. Safe to call repeatedly and
        from inside a callback.
        """
        with self._lifecycle_lock:
            sock = self._socket
            thread = self._thread
            stop_event = self._stop_event
            self._socket = None
            self._thread = None
            self._stop_event = None

        if stop_event is None:
            return

        with self._dispatch_lock:
            stop_event.set()
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(2.0, self.recv_timeout_s * 4.0))
        logger.info("[RECV] stopped listening")

    def latest_orientation(self) -> Orientation:
        """Most recent orientation; identity until the first one arrives."""
        with self._state_lock:
            return self._latest

    def latest_orientation_time(self) -> Optional[float]:
        with self._state_lock:
            return self._latest_t

    def reset_orientation(self) -> None:
        with self._state_lock:
            self._latest = Orientation.identity()
            self._latest_t = None

    def _receive_loop(self, sock: socket.socket, stop_event: threading.Event) -> None:
        """Main receive loop."""
        while not stop_event.is_set():
            try:
                data, addr = sock.recvfrom(65536)
            except socket.timeout:
                continue
            except OSError:
                if stop_event.is_set():
                    break
                self._errors += 1
                logger.exception("[RECV] socket error")
                time.sleep(self.recv_timeout_s)
                continue

            try:
                self._handle_datagram(data, addr, stop_event)
            except Exception:
                self._errors += 1
                logger.exception("[RECV] failed to handle datagram from %s", addr)

    def _handle_datagram(self, data: bytes, addr: tuple, stop_event: threading.Event) -> None:
        self._datagrams_received += 1
        self._bytes_received += len(data)

        try:
            message = decode(data)
        except DecodeError as exc:
            self._decode_errors += 1
            if len(data) not in VALID_SIZES:
                logger.warning(
                    "[RECV] unexpected packet length %d from %s. Raw bytes: %s",
                    len(data),
                    addr,
                    data[:32].hex("-"),
                )
            else:
                logger.warning("[RECV] dropped datagram from %s: %s", addr, exc)
            return

        now = self._clock()
        with self._dispatch_lock:
            if stop_event.is_set():
                return

            if isinstance(message, OrientationMessage):
                self._publish_orientation(message.orientation, addr, now)
            elif isinstance(message, CommandMessage):
                self._command_packets += 1
                logger.info("[RECV] command %s from %s", message.kind.name, addr[0])
                for cb in list(self._command_callbacks):
                    self._fire(cb, message.kind, addr)

            if self._tracker is not None:
                self._tracker.notify_packet_received(addr[0], now=now)

    def _publish_orientation(self, orientation: Orientation, addr: tuple, now: float) -> None:
        with self._state_lock:
            self._latest = orientation
            self._latest_t = now
        self._orientation_packets += 1

        n = self.log_every_n_packets
        if n > 0 and self._orientation_packets % n == 0:
            logger.debug(
                "[RECV] packet #%d quat=(%.3f,%.3f,%.3f,%.3f)",
                self._orientation_packets,
                orientation.x,
                orientation.y,
                orientation.z,
                orientation.w,
            )
        for cb in list(self._orientation_callbacks):
            self._fire(cb, orientation, addr)

    def _fire(self, cb: Callable[..., None], *args) -> None:
        try:
            cb(*args)
        except Exception:
            self._errors += 1
            logger.exception("[RECV] callback raised")

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def is_listening(self) -> bool:
        with self._lifecycle_lock:
            return self._thread is not None and self._thread.is_alive()

    @property
    def stats(self) -> Dict[str, int]:
        """Get receiver statistics."""
        return {
            "datagrams_received": self._datagrams_received,
            "bytes_received": self._bytes_received,
            "orientation_packets": self._orientation_packets,
            "command_packets": self._command_packets,
            "decode_errors": self._decode_errors,
            "errors": self._errors,
        }
