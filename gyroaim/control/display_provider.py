"""Display providers for rendering receiver-side aim state."""

from __future__ import annotations

import logging
import math
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AimDisplayFrame:
    """Runtime frame data shared by all display providers."""

    connected: bool
    remote_address: str
    last_packet_age: float
    target: np.ndarray
    position: np.ndarray
    pitch_deg: float
    yaw_deg: float
    processing: bool
    stats: Dict[str, int] = field(default_factory=dict)


class DisplayProvider:
    """Base display provider interface."""

    def update(self, frame: AimDisplayFrame) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullDisplayProvider(DisplayProvider):
    def update(self, frame: AimDisplayFrame) -> None:
        pass


def connection_line(frame: AimDisplayFrame) -> str:
    if frame.connected:
        age = frame.last_packet_age
        age_text = f"{age:.1f}s ago" if math.isfinite(age) else "never"
        return f"Connected IP: {frame.remote_address or '-'} / LastPacket {age_text}"
    return "Waiting for packets..."


def _status_lines(frame: AimDisplayFrame) -> list[str]:
    t = frame.target
    p = frame.position
    s = frame.stats
    return [
        connection_line(frame),
        f"pitch/yaw       = ({frame.pitch_deg: 7.2f} deg, {frame.yaw_deg: 7.2f} deg)",
        f"target xy (px)  = [{t[0]: 8.1f}, {t[1]: 8.1f}]",
        f"aim xy (px)     = [{p[0]: 8.1f}, {p[1]: 8.1f}]",
        f"processing      = {frame.processing}",
        (
            f"packets         = {s.get('orientation_packets', 0)} orientation, "
            f"{s.get('command_packets', 0)} command, "
            f"{s.get('decode_errors', 0)} bad"
        ),
    ]


class _CliStatsSink:
    def __init__(self, mode: str):
        self.mode = "live" if mode == "live" else "scroll"
        self._is_tty = bool(getattr(sys.stderr, "isatty", lambda: False)())
        self._live_enabled = self.mode == "live" and self._is_tty
        self._line_count = 0

    def emit(self, lines: list[str], scroll_line: str) -> None:
        if not self._live_enabled:
            logger.info(scroll_line)
            return

        out = sys.stderr
        if self._line_count > 0:
            out.write(f"\x1b[{self._line_count}F")

        max_lines = max(self._line_count, len(lines))
        for i in range(max_lines):
            line = lines[i] if i < len(lines) else ""
            out.write("\x1b[2K")
            out.write(line)
            out.write("\n")
        out.flush()
        self._line_count = len(lines)


class TuiDisplayProvider(DisplayProvider):
    """Terminal status display, optionally mirrored into a UI status label."""

    def __init__(
        self,
        cli_output: str = "live",
        set_status: Optional[Callable[[str], None]] = None,
    ):
        self.cli_sink = _CliStatsSink(cli_output)
        self._set_status = set_status
        self.last_lines: list[str] = []

    def update(self, frame: AimDisplayFrame) -> None:
        lines = _status_lines(frame)
        self.last_lines = lines
        if self._set_status is not None:
            self._set_status("\n".join(lines))

        p = frame.position
        self.cli_sink.emit(
            lines=["GyroAim Receiver"] + lines,
            scroll_line=(
                "[DISPLAY] %s aim=(%.1f, %.1f) pitch/yaw=(%.2f, %.2f)"
                % (
                    connection_line(frame),
                    p[0],
                    p[1],
                    frame.pitch_deg,
                    frame.yaw_deg,
                )
            ),
        )
