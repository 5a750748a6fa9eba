"""Device attitude fed by an external sensor bridge process.

The bridge (a phone sensor app, a serial IMU reader, ...) owns device access
and streams JSON datagrams to localhost. This source only parses and
publishes the newest sample.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from typing import Optional, Tuple

import numpy as np

from ..control.orientation_source import OrientationSource
from ..math3d.quaternion import q_normalize

logger = logging.getLogger(__name__)


def _parse_attitude_payload(payload: dict) -> Optional[Tuple[np.ndarray, bool]]:
    available = bool(payload.get("available", True))
    if "quaternion_wxyz" in payload:
        raw = payload.get("quaternion_wxyz")
        order = "wxyz"
    else:
        raw = payload.get("quaternion_xyzw", payload.get("quaternion"))
        order = "xyzw"
    if raw is None:
        return None

    try:
        q = np.asarray(raw, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError):
        return None
    if q.size != 4 or not np.isfinite(q).all():
        return None
    if float(np.linalg.norm(q)) < 1e-9:
        return None
    if order == "xyzw":
        q = np.array([q[3], q[0], q[1], q[2]], dtype=np.float64)
    return q_normalize(q), available


def _parse_attitude_packet(data: bytes) -> Optional[Tuple[np.ndarray, bool]]:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return _parse_attitude_payload(payload)


class _UdpAttitudeReceiver:
    def __init__(self, host: str, port: int):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self.sock.bind((host, int(port)))
        except OSError:
            self.sock.close()
            raise
        self.sock.setblocking(False)

    def recv_latest(self) -> Optional[Tuple[np.ndarray, bool]]:
        latest = None
        while True:
            try:
                data, _ = self.sock.recvfrom(65535)
            except BlockingIOError:
                break
            except OSError:
                break
            parsed = _parse_attitude_packet(data)
            if parsed is not None:
                latest = parsed
        return latest

    def close(self) -> None:
        self.sock.close()


class SensorBridgeOrientationSource(OrientationSource):
    """Attitude from bridge JSON packets over UDP.

    Expected JSON packet schema:
    {
      "available": true,
      "quaternion_xyzw": [x, y, z, w]
    }
    ``quaternion_wxyz`` is accepted as well. The quaternion is the raw device
    attitude in sensor space; the sender applies the receiver mapping.
    """

    name = "bridge"

    def __init__(
        self,
        bridge_host: str = "127.0.0.1",
        bridge_port: int = 24568,
        poll_ms: int = 2,
        stale_s: float = 2.0,
    ):
        super().__init__()
        self.bridge_host = str(bridge_host)
        self.bridge_port = int(bridge_port)
        self.poll_s = max(0.001, float(poll_ms) / 1000.0)
        self.stale_s = float(stale_s)

        self._receiver = _UdpAttitudeReceiver(self.bridge_host, self.bridge_port)
        self._closed = threading.Event()
        self._available = False
        self._last_recv_t = 0.0
        self._last_warn_t = 0.0
        self._recv_count = 0

        logger.info(
            "[SOURCE] provider=sensor-bridge (host=%s, port=%s, poll_ms=%.1f)",
            self.bridge_host,
            self.bridge_port,
            self.poll_s * 1000.0,
        )

    def is_available(self) -> bool:
        if not self._available:
            return False
        return (time.monotonic() - self._last_recv_t) <= self.stale_s

    def _poll_once(self) -> None:
        sample = self._receiver.recv_latest()
        if sample is None:
            now = time.monotonic()
            # Only warn if we have not received any packet recently.
            if (now - self._last_recv_t) > 2.0 and (now - self._last_warn_t) > 2.0:
                logger.info(
                    "[SOURCE] waiting for sensor bridge packets on %s:%s",
                    self.bridge_host,
                    self.bridge_port,
                )
                self._last_warn_t = now
            return

        q, available = sample
        self._last_recv_t = time.monotonic()
        self._recv_count += 1
        if self._recv_count == 1:
            logger.info(
                "[SOURCE] first sensor bridge packet received on %s:%s",
                self.bridge_host,
                self.bridge_port,
            )
        self._available = available
        if available:
            self._publish(q)

    def run(self, on_tick):
        while not self._closed.is_set():
            self._poll_once()
            if on_tick is not None:
                on_tick()
            time.sleep(self.poll_s)
        self.close()

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._receiver.close()
        except OSError:
            pass
