"""Control plane for mapping received orientation -> crosshair updates."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..math3d.quaternion import q_identity
from ..net.receiver import OrientationReceiver
from ..net.wire import MessageKind
from .connection import ConnectionTracker
from .dispatcher import MainThreadDispatcher
from .display_provider import AimDisplayFrame, DisplayProvider, NullDisplayProvider
from .signal_pipeline import ScreenOffset, SignalPipeline, SmoothedTarget
from .sinks import AimSink

logger = logging.getLogger(__name__)


class AimController:
    """Single-threaded consumer side of the receiver.

    Network callbacks never touch the sink directly; commands and connection
    events are posted to the dispatcher and run from ``tick()``.
    """

    def __init__(
        self,
        receiver: OrientationReceiver,
        tracker: ConnectionTracker,
        pipeline: SignalPipeline,
        sink: AimSink,
        dispatcher: Optional[MainThreadDispatcher] = None,
        display_provider: Optional[DisplayProvider] = None,
        screen_width: float = 1920.0,
        screen_height: float = 1080.0,
        smooth_rate: float = 15.0,
        poll_s: float = 0.5,
        display_hz: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if smooth_rate <= 0.0:
            raise ValueError(f"--smooth-rate must be > 0, got {smooth_rate}")
        if screen_width <= 0 or screen_height <= 0:
            raise ValueError("--screen-width and --screen-height must be > 0")

        self.receiver = receiver
        self.tracker = tracker
        self.pipeline = pipeline
        self.sink = sink
        self.dispatcher = dispatcher or MainThreadDispatcher()
        self.display_provider = display_provider or NullDisplayProvider()
        self.half_width = float(screen_width) * 0.5
        self.half_height = float(screen_height) * 0.5
        self.smooth_rate = float(smooth_rate)
        self.poll_s = float(poll_s)
        self.display_interval = (1.0 / display_hz) if display_hz > 0.0 else 0.0
        self._clock = clock

        self.smoothed = SmoothedTarget()
        self.calibration = q_identity()
        self.last_offset = ScreenOffset(0.0, 0.0)
        self._processing = False
        self._last_tick_t: Optional[float] = None
        self._last_poll_t: Optional[float] = None
        self._last_display_t: Optional[float] = None

        self.receiver.on_command(self._on_network_command)
        self._unsubscribe = self.tracker.subscribe(
            on_connected=self._on_connected, on_disconnected=self._on_disconnected
        )

    # Network thread -> dispatcher

    def _on_network_command(self, kind: MessageKind, addr: tuple) -> None:
        self.dispatcher.post(lambda: self.handle_command(kind))

    def _on_connected(self, address: str) -> None:
        self.dispatcher.post(lambda: self._handle_connected(address))

    def _on_disconnected(self) -> None:
        self.dispatcher.post(self._handle_disconnected)

    # Consumer thread

    def handle_command(self, kind: MessageKind) -> None:
        if kind == MessageKind.CALIBRATE:
            self.recalibrate()
        elif kind == MessageKind.SHOOT:
            self.sink.try_fire()
        elif kind == MessageKind.RESTART:
            self.sink.restart()
        else:
            logger.warning("[AIM] ignoring non-command kind %r", kind)

    def _handle_connected(self, address: str) -> None:
        # Events are queued outside the tracker lock; trust the current state.
        if not self.tracker.is_connected:
            logger.debug("[AIM] stale connected event from %s ignored", address or "-")
            return
        logger.info("[AIM] device %s connected, processing input", address or "-")
        self.start_processing()

    def _handle_disconnected(self) -> None:
        if self.tracker.is_connected:
            logger.debug("[AIM] stale disconnected event ignored")
            return
        logger.info("[AIM] device lost, holding crosshair")
        self.stop_processing()

    def recalibrate(self) -> None:
        """The current orientation becomes neutral (screen center)."""
        self.calibration = self.receiver.latest_orientation().as_wxyz()
        self.smoothed.reset_velocity()
        self.sink.calibrated()
        logger.info(
            "[AIM] calibrated q=[%.4f, %.4f, %.4f, %.4f]",
            self.calibration[0],
            self.calibration[1],
            self.calibration[2],
            self.calibration[3],
        )

    def start_processing(self) -> None:
        self._processing = True

    def stop_processing(self) -> None:
        self._processing = False
        self.smoothed.reset_velocity()

    @property
    def processing(self) -> bool:
        return self._processing

    def disconnect(self) -> None:
        """Stop listening and return every piece of aim state to neutral."""
        self.receiver.stop()
        self.stop_processing()
        self.receiver.reset_orientation()
        self.calibration = q_identity()
        self.smoothed.reset()
        self.last_offset = ScreenOffset(0.0, 0.0)
        self.sink.set_position(0.0, 0.0)
        self.tracker.force_disconnect()
        discarded = self.dispatcher.clear()
        logger.info("[AIM] disconnected and reset (discarded %d queued actions)", discarded)

    def tick(self, now: Optional[float] = None, dt: Optional[float] = None) -> None:
        t = self._clock() if now is None else float(now)
        if dt is None:
            dt = 0.0 if self._last_tick_t is None else max(0.0, t - self._last_tick_t)
        self._last_tick_t = t

        self.dispatcher.drain()

        if self._last_poll_t is None or (t - self._last_poll_t) >= self.poll_s:
            self._last_poll_t = t
            self.tracker.tick(t)
            # Events raised by the poll run this tick, not next.
            self.dispatcher.drain()

        if self._processing:
            self.last_offset = self.pipeline.process(
                self.receiver.latest_orientation().as_wxyz(),
                self.calibration,
                self.half_width,
                self.half_height,
            )
            self.smoothed.set_target(self.last_offset.as_array())
            pos = self.smoothed.step(dt, self.smooth_rate)
            self.sink.set_position(float(pos[0]), float(pos[1]))

        if self.display_interval > 0.0 and (
            self._last_display_t is None or (t - self._last_display_t) >= self.display_interval
        ):
            self.display_provider.update(self.display_frame(t))
            self._last_display_t = t

    def display_frame(self, now: Optional[float] = None) -> AimDisplayFrame:
        return AimDisplayFrame(
            connected=self.tracker.is_connected,
            remote_address=self.tracker.last_remote_address,
            last_packet_age=self.tracker.last_packet_age(now),
            target=self.smoothed.target.copy(),
            position=self.smoothed.current.copy(),
            pitch_deg=self.last_offset.pitch_deg,
            yaw_deg=self.last_offset.yaw_deg,
            processing=self._processing,
            stats=self.receiver.stats,
        )

    def close(self) -> None:
        self._unsubscribe()
        self.display_provider.close()
