"""Service addresses and connection payloads (QR / pasted strings)."""

from __future__ import annotations

import ipaddress
import json
import logging
import socket
from dataclasses import dataclass

logger = logging.getLogger(__name__)

PAYLOAD_SCHEME = "gyro://"


class PayloadError(ValueError):
    """Connection payload that does not match any supported form."""


@dataclass(frozen=True)
class ServiceAddress:
    host: str
    port: int

    def as_tuple(self) -> tuple[str, int]:
        return self.host, self.port

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def validate_port(port: int, name: str = "port", allow_zero: bool = False) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"{name} must be an integer, got {port!r}")
    lo = 0 if allow_zero else 1
    if not (lo <= port <= 65535):
        raise ValueError(f"{name} must be in [{lo},65535], got {port}")
    return port


def _parse_host_port(text: str) -> ServiceAddress:
    if text.count(":") != 1:
        raise PayloadError(f"expected host:port, got {text!r}")
    host, port_str = (part.strip() for part in text.split(":", 1))
    if not host:
        raise PayloadError("host is empty")
    try:
        port = int(port_str)
    except ValueError as exc:
        raise PayloadError(f"port must be an integer, got {port_str!r}") from exc
    try:
        validate_port(port)
    except ValueError as exc:
        raise PayloadError(str(exc)) from exc
    return ServiceAddress(host, port)


def _parse_json_payload(text: str) -> ServiceAddress:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PayloadError(f"invalid JSON payload: {exc}") from exc
    if not isinstance(obj, dict):
        raise PayloadError("JSON payload must be an object")

    ip = obj.get("ip")
    port = obj.get("port")
    if not isinstance(ip, str) or not ip.strip():
        raise PayloadError("JSON payload requires string field 'ip'")
    if isinstance(port, bool) or not isinstance(port, int):
        raise PayloadError("JSON payload requires integer field 'port'")
    try:
        validate_port(port)
    except ValueError as exc:
        raise PayloadError(str(exc)) from exc
    return ServiceAddress(ip.strip(), port)


def parse_connection_payload(payload: str) -> ServiceAddress:
    """Parse ``ip:port``, ``gyro://ip:port`` or ``{"ip": "...", "port": N}``."""
    if payload is None or not payload.strip():
        raise PayloadError("empty payload")
    text = payload.strip()
    if text.startswith("{"):
        return _parse_json_payload(text)
    if text.startswith(PAYLOAD_SCHEME):
        return _parse_host_port(text[len(PAYLOAD_SCHEME):])
    return _parse_host_port(text)


def build_connection_payload(ip: str, port: int) -> str:
    validate_port(port)
    return json.dumps({"ip": ip, "port": port}, separators=(",", ":"))


def guess_local_ip(probe_host: str = "10.255.255.255") -> str:
    """LAN IPv4 address that routes toward ``probe_host``; loopback on failure.

    Connecting a UDP socket sends nothing; it only selects a route.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            sock.connect((probe_host, 1))
            ip = sock.getsockname()[0]
        except OSError:
            logger.warning("[NET] no routable interface found, advertising loopback")
            return "127.0.0.1"
    try:
        if ipaddress.ip_address(ip).is_unspecified:
            return "127.0.0.1"
    except ValueError:
        return "127.0.0.1"
    return ip
