"""Periodic orientation sender and command transmitter.

Each tick reads the device attitude, maps it into the receiver convention
(``math3d.device_frame``), applies the sender-side calibration
(``inverse(reference) * attitude``) and sends one datagram. Commands go out
as single-byte datagrams on the same socket.

Missing destination or missing gyroscope makes sending a silent no-op (logged
once), never an exception.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Dict, Optional

import numpy as np

from ..control.orientation_source import OrientationSource
from ..math3d.device_frame import device_to_receiver
from ..math3d.quaternion import q_identity, q_relative
from .endpoint import ServiceAddress, validate_port
from .wire import (
    COMMAND_KINDS,
    CommandMessage,
    MessageKind,
    Orientation,
    OrientationMessage,
    encode,
    encode_legacy,
)

logger = logging.getLogger(__name__)


class OrientationSender:
    def __init__(
        self,
        source: OrientationSource,
        send_hz: float = 200.0,
        legacy_wire: bool = False,
    ):
        if not send_hz > 0.0:
            raise ValueError(f"--send-hz must be > 0, got {send_hz}")
        self._source = source
        self._send_hz = float(send_hz)
        self.legacy_wire = bool(legacy_wire)

        self._lock = threading.Lock()
        self._destination: Optional[ServiceAddress] = None
        self._calibration = q_identity()
        self._socket: Optional[socket.socket] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._warned_no_destination = False
        self._warned_unavailable = False
        self._sent = 0
        self._send_errors = 0

    @property
    def destination(self) -> Optional[ServiceAddress]:
        with self._lock:
            return self._destination

    def set_destination(self, host: str, port: int) -> None:
        """Point the sender at host:port. An empty host clears the destination."""
        if not host:
            with self._lock:
                self._destination = None
            logger.info("[SEND] destination cleared")
            return
        validate_port(port, "--server port")
        with self._lock:
            self._destination = ServiceAddress(str(host), int(port))
            self._warned_no_destination = False
        logger.info("[SEND] target set to %s:%s", host, port)

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                logger.info("[SEND] already running")
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._loop, name="gyroaim-send", daemon=True)
            self._thread.start()
        logger.info("[SEND] streaming at %.0f Hz (legacy_wire=%s)", self._send_hz, self.legacy_wire)

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

        with self._lock:
            sock = self._socket
            self._socket = None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass
        logger.info("[SEND] stopped")

    def _loop(self) -> None:
        period = 1.0 / self._send_hz
        next_tick = time.perf_counter()
        while not self._stop_event.is_set():
            if self._source.is_available():
                self.send_orientation(self._source.get_quaternion())
            else:
                self._warn_unavailable()

            next_tick += period
            now = time.perf_counter()
            if next_tick < now:
                # Fell behind; drop the missed ticks instead of bursting.
                next_tick = now
            self._stop_event.wait(max(0.0, next_tick - now))

    def _ensure_socket(self) -> Optional[socket.socket]:
        with self._lock:
            if self._socket is None:
                sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                self._socket = sock
            return self._socket

    def _warn_unavailable(self) -> None:
        if not self._warned_unavailable:
            self._warned_unavailable = True
            logger.warning("[SEND] gyroscope not available (source=%s)", self._source.name)

    def _send(self, payload: bytes) -> bool:
        dest = self.destination
        if dest is None:
            if not self._warned_no_destination:
                self._warned_no_destination = True
                logger.warning("[SEND] no destination set, dropping outgoing datagrams")
            return False
        sock = self._ensure_socket()
        try:
            sock.sendto(payload, dest.as_tuple())
        except OSError as exc:
            self._send_errors += 1
            logger.warning("[SEND] send to %s failed: %s", dest, exc)
            return False
        self._sent += 1
        return True

    def receiver_orientation(self, device_q: np.ndarray) -> np.ndarray:
        """Device attitude -> calibrated receiver-space ``[w, x, y, z]``."""
        with self._lock:
            calibration = self._calibration.copy()
        return q_relative(calibration, device_to_receiver(device_q))

    def send_orientation(self, device_q: np.ndarray) -> bool:
        if not self._source.is_available():
            self._warn_unavailable()
            return False
        orientation = Orientation.from_wxyz(self.receiver_orientation(device_q))
        if self.legacy_wire:
            payload = encode_legacy(orientation)
        else:
            payload = encode(OrientationMessage(orientation))
        return self._send(payload)

    def send_command(self, kind: MessageKind) -> bool:
        kind = MessageKind(kind)
        if kind not in COMMAND_KINDS:
            raise ValueError(f"not a command kind: {kind!r}")
        sent = self._send(encode(CommandMessage(kind)))
        if sent:
            logger.info("[SEND] command %s", kind.name)
        return sent

    def calibrate(self, device_q: Optional[np.ndarray] = None) -> bool:
        """Make the current (or given) device attitude read as identity."""
        if not self._source.is_available():
            self._warn_unavailable()
            return False
        q = self._source.get_quaternion() if device_q is None else device_q
        reference = device_to_receiver(q)
        with self._lock:
            self._calibration = reference
        logger.info("[SEND] gyro calibrated")
        return True

    def reset_calibration(self) -> None:
        with self._lock:
            self._calibration = q_identity()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    @property
    def stats(self) -> Dict[str, int]:
        return {"sent": self._sent, "send_errors": self._send_errors}
