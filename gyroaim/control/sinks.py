"""Consumer-side collaborators driven by the aim controller.

Implementations (crosshair widgets, game logic) are not thread-safe; the
controller only calls them from the consumer tick.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class AimSink:
    """Base interface for whatever displays the crosshair and reacts to commands."""

    def set_position(self, x: float, y: float) -> None:
        raise NotImplementedError

    def try_fire(self) -> bool:
        return False

    def restart(self) -> None:
        pass

    def calibrated(self) -> None:
        # Optional UI hook.
        pass


class LoggingAimSink(AimSink):
    """Keeps the last position and counts commands; logs instead of rendering."""

    def __init__(self):
        self.position = (0.0, 0.0)
        self.shots = 0
        self.restarts = 0
        self.calibrations = 0

    def set_position(self, x: float, y: float) -> None:
        self.position = (float(x), float(y))

    def try_fire(self) -> bool:
        self.shots += 1
        logger.info(
            "[AIM] fire #%d at (%.1f, %.1f)", self.shots, self.position[0], self.position[1]
        )
        return True

    def restart(self) -> None:
        self.restarts += 1
        logger.info("[AIM] restart requested")

    def calibrated(self) -> None:
        self.calibrations += 1
