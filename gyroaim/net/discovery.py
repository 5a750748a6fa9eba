"""LAN discovery: locate a receiver without manual address entry.

Client broadcasts a fixed UTF-8 token to the discovery port. A receiver that
recognizes it replies unicast with ``GYRO_SERVER|<service port>``; the reply's
source IP is the service address.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Optional

from .endpoint import ServiceAddress, validate_port

logger = logging.getLogger(__name__)

DISCOVERY_TOKEN = "DISCOVER_GYRO_SERVER"
RESPONSE_PREFIX = "GYRO_SERVER"
BROADCAST_HOST = "255.255.255.255"


def discovery_reply(data: bytes, service_port: int, token: str = DISCOVERY_TOKEN) -> Optional[bytes]:
    """Reply payload for a discovery request, or None when it is not one."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None
    if text != token:
        return None
    return f"{RESPONSE_PREFIX}|{int(service_port)}".encode("utf-8")


def parse_discovery_response(text: str) -> int:
    """Service port from ``GYRO_SERVER|<port>``; ValueError otherwise."""
    parts = text.split("|")
    if len(parts) != 2 or parts[0] != RESPONSE_PREFIX:
        raise ValueError(f"not a discovery response: {text!r}")
    try:
        port = int(parts[1])
    except ValueError as exc:
        raise ValueError(f"discovery response port is not an integer: {parts[1]!r}") from exc
    return validate_port(port, "discovery response port")


class DiscoveryServer:
    """Answers discovery broadcasts on behalf of a receiver."""

    def __init__(
        self,
        discovery_port: int = 7778,
        service_port: int = 7777,
        host: str = "0.0.0.0",
        token: str = DISCOVERY_TOKEN,
        recv_timeout_s: float = 0.2,
    ):
        self.discovery_port = validate_port(discovery_port, "--discovery-port", allow_zero=True)
        self.service_port = validate_port(service_port, "--listen-port")
        self.host = host
        self.token = token
        self.recv_timeout_s = float(recv_timeout_s)

        self._lock = threading.Lock()
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._replies = 0

    def start(self) -> int:
        """Bind the discovery port and answer in the background. Returns the bound port."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return self.discovery_port
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.bind((self.host, self.discovery_port))
            except OSError:
                sock.close()
                logger.exception("[DISCOVERY] failed to bind UDP %s:%s", self.host, self.discovery_port)
                raise
            sock.settimeout(self.recv_timeout_s)
            self.discovery_port = int(sock.getsockname()[1])
            self._socket = sock
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, args=(sock,), name="gyroaim-discovery", daemon=True
            )
            self._thread.start()
        logger.info("[DISCOVERY] listening for discovery on port %s", self.discovery_port)
        return self.discovery_port

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            sock = self._socket
            thread = self._thread
            self._socket = None
            self._thread = None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _loop(self, sock: socket.socket) -> None:
        while not self._stop_event.is_set():
            try:
                data, addr = sock.recvfrom(1024)
            except socket.timeout:
                continue
            except OSError:
                if self._stop_event.is_set():
                    break
                logger.exception("[DISCOVERY] socket error")
                time.sleep(self.recv_timeout_s)
                continue

            reply = discovery_reply(data, self.service_port, self.token)
            if reply is None:
                logger.debug("[DISCOVERY] ignored %d bytes from %s", len(data), addr)
                continue
            try:
                sock.sendto(reply, addr)
            except OSError as exc:
                logger.warning("[DISCOVERY] reply to %s failed: %s", addr, exc)
                continue
            self._replies += 1
            logger.info("[DISCOVERY] responded to discovery from %s", addr)

    @property
    def replies(self) -> int:
        return self._replies


class DiscoveryClient:
    """Broadcasts the discovery token and waits for the first valid reply."""

    def __init__(
        self,
        discovery_port: int = 7778,
        broadcast_host: str = BROADCAST_HOST,
        token: str = DISCOVERY_TOKEN,
    ):
        self.discovery_port = validate_port(discovery_port, "--discovery-port")
        self.broadcast_host = broadcast_host
        self.token = token

    def discover(self, timeout_s: float = 2.0) -> Optional[ServiceAddress]:
        """One broadcast round. First valid reply wins; None on timeout."""
        deadline = time.monotonic() + max(0.0, float(timeout_s))
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            try:
                sock.sendto(self.token.encode("utf-8"), (self.broadcast_host, self.discovery_port))
            except OSError as exc:
                logger.warning("[DISCOVERY] broadcast failed: %s", exc)
                return None
            logger.info(
                "[DISCOVERY] sent discovery broadcast to %s:%s", self.broadcast_host, self.discovery_port
            )

            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0.0:
                    logger.info("[DISCOVERY] no reply within %.1fs", timeout_s)
                    return None
                sock.settimeout(remaining)
                try:
                    data, addr = sock.recvfrom(1024)
                except socket.timeout:
                    continue
                except OSError as exc:
                    logger.warning("[DISCOVERY] receive failed: %s", exc)
                    return None
                try:
                    port = parse_discovery_response(data.decode("utf-8"))
                except (UnicodeDecodeError, ValueError) as exc:
                    logger.debug("[DISCOVERY] ignored reply from %s: %s", addr, exc)
                    continue
                found = ServiceAddress(addr[0], port)
                logger.info("[DISCOVERY] discovered server %s", found)
                return found

    def discover_with_retries(self, attempts: int = 3, timeout_s: float = 2.0) -> Optional[ServiceAddress]:
        for attempt in range(1, max(1, int(attempts)) + 1):
            found = self.discover(timeout_s)
            if found is not None:
                return found
            logger.info("[DISCOVERY] attempt %d/%d found nothing", attempt, attempts)
        return None
