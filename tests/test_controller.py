import numpy as np
import pytest

from gyroaim.control.connection import ConnectionTracker
from gyroaim.control.controller import AimController
from gyroaim.control.display_provider import DisplayProvider
from gyroaim.control.signal_pipeline import AimConfig, SignalPipeline
from gyroaim.control.sinks import LoggingAimSink
from gyroaim.math3d.quaternion import euler_zxy_deg_to_q, q_identity
from gyroaim.net.wire import MessageKind, Orientation

DT = 1.0 / 60.0


class _FakeReceiver:
    def __init__(self):
        self.latest = Orientation.identity()
        self.command_callbacks = []
        self.stopped = False

    def on_command(self, callback):
        self.command_callbacks.append(callback)

    def send_command(self, kind):
        for cb in self.command_callbacks:
            cb(kind, ("10.0.0.7", 50000))

    def latest_orientation(self):
        return self.latest

    def reset_orientation(self):
        self.latest = Orientation.identity()

    def stop(self):
        self.stopped = True

    @property
    def stats(self):
        return {"orientation_packets": 0, "command_packets": 0, "decode_errors": 0}


class _RecordingDisplay(DisplayProvider):
    def __init__(self):
        self.frames = []
        self.closed = False

    def update(self, frame):
        self.frames.append(frame)

    def close(self):
        self.closed = True


def _controller(display=None, display_hz=0.0):
    receiver = _FakeReceiver()
    tracker = ConnectionTracker(timeout_s=5.0, clock=lambda: 0.0)
    sink = LoggingAimSink()
    controller = AimController(
        receiver=receiver,
        tracker=tracker,
        pipeline=SignalPipeline(AimConfig()),
        sink=sink,
        display_provider=display,
        screen_width=1920,
        screen_height=1080,
        smooth_rate=15.0,
        poll_s=0.5,
        display_hz=display_hz,
        clock=lambda: 0.0,
    )
    return controller, receiver, tracker, sink


def _run(controller, start, seconds):
    t = start
    for _ in range(int(round(seconds / DT))):
        t += DT
        controller.tick(now=t, dt=DT)
    return t


def test_idle_until_first_packet():
    controller, receiver, _, sink = _controller()
    receiver.latest = Orientation.from_wxyz(euler_zxy_deg_to_q(-25.0, 0.0, 0.0))
    _run(controller, 0.0, 0.5)
    assert not controller.processing
    assert sink.position == (0.0, 0.0)


def test_connected_device_drives_crosshair():
    controller, receiver, tracker, sink = _controller()
    receiver.latest = Orientation.from_wxyz(euler_zxy_deg_to_q(-25.0, 0.0, 0.0))
    tracker.notify_packet_received("10.0.0.7", now=0.0)
    assert not controller.processing

    controller.tick(now=0.0, dt=0.0)
    assert controller.processing

    t = 0.0
    for _ in range(10):
        tracker.notify_packet_received("10.0.0.7", now=t)
        t = _run(controller, t, 0.1)
    assert sink.position[0] == pytest.approx(0.0, abs=1e-6)
    assert sink.position[1] == pytest.approx(540.0 * 0.85, rel=1e-3)


def test_commands_run_on_tick_not_on_network_thread():
    controller, receiver, _, sink = _controller()
    receiver.send_command(MessageKind.SHOOT)
    receiver.send_command(MessageKind.SHOOT)
    receiver.send_command(MessageKind.RESTART)
    assert sink.shots == 0

    controller.tick(now=0.0, dt=0.0)
    assert sink.shots == 2
    assert sink.restarts == 1


def test_calibrate_command_recenters():
    controller, receiver, tracker, sink = _controller()
    q = euler_zxy_deg_to_q(20.0, 10.0, -15.0)
    receiver.latest = Orientation.from_wxyz(q)
    tracker.notify_packet_received("10.0.0.7", now=0.0)
    receiver.send_command(MessageKind.CALIBRATE)
    controller.tick(now=0.0, dt=0.0)

    np.testing.assert_allclose(controller.calibration, q, atol=1e-6)
    assert sink.calibrations == 1
    _run(controller, 0.0, 0.2)
    assert sink.position == pytest.approx((0.0, 0.0), abs=1e-6)


def test_timeout_stops_processing_and_holds_position():
    controller, receiver, tracker, sink = _controller()
    receiver.latest = Orientation.from_wxyz(euler_zxy_deg_to_q(0.0, 0.0, 20.0))
    tracker.notify_packet_received("10.0.0.7", now=0.0)
    _run(controller, 0.0, 1.0)
    held = sink.position

    controller.tick(now=6.0, dt=DT)
    assert not tracker.is_connected
    assert not controller.processing

    receiver.latest = Orientation.identity()
    _run(controller, 6.0, 0.5)
    assert sink.position == held


def test_disconnect_resets_everything():
    controller, receiver, tracker, sink = _controller()
    receiver.latest = Orientation.from_wxyz(euler_zxy_deg_to_q(10.0, 0.0, 10.0))
    tracker.notify_packet_received("10.0.0.7", now=0.0)
    receiver.send_command(MessageKind.CALIBRATE)
    _run(controller, 0.0, 0.5)

    controller.disconnect()
    assert receiver.stopped
    assert not controller.processing
    assert not tracker.is_connected
    assert tracker.last_remote_address == ""
    assert sink.position == (0.0, 0.0)
    np.testing.assert_allclose(controller.calibration, q_identity())
    np.testing.assert_allclose(controller.smoothed.current, np.zeros(2))
    np.testing.assert_allclose(controller.smoothed.velocity, np.zeros(2))


def test_display_refresh_rate():
    display = _RecordingDisplay()
    controller, _, tracker, _ = _controller(display=display, display_hz=5.0)
    tracker.notify_packet_received("10.0.0.7", now=0.0)
    _run(controller, 0.0, 1.0)
    assert 5 <= len(display.frames) <= 6
    assert display.frames[-1].connected
    assert display.frames[-1].remote_address == "10.0.0.7"

    controller.close()
    assert display.closed


def test_rejects_non_positive_smooth_rate():
    with pytest.raises(ValueError, match="--smooth-rate"):
        AimController(
            receiver=_FakeReceiver(),
            tracker=ConnectionTracker(),
            pipeline=SignalPipeline(AimConfig()),
            sink=LoggingAimSink(),
            smooth_rate=0.0,
        )


def test_packet_between_timeout_and_event_keeps_processing():
    receiver = _FakeReceiver()
    tracker = ConnectionTracker(timeout_s=5.0, clock=lambda: 0.0)
    late_packet_t = []

    # Network thread lands between the tracker's state change and the
    # controller's disconnected callback.
    tracker.subscribe(
        on_disconnected=lambda: tracker.notify_packet_received("10.0.0.7", now=late_packet_t[0])
    )
    sink = LoggingAimSink()
    controller = AimController(
        receiver=receiver,
        tracker=tracker,
        pipeline=SignalPipeline(AimConfig()),
        sink=sink,
        display_hz=0.0,
        clock=lambda: 0.0,
    )
    receiver.latest = Orientation.from_wxyz(euler_zxy_deg_to_q(0.0, 0.0, 20.0))
    tracker.notify_packet_received("10.0.0.7", now=0.0)
    _run(controller, 0.0, 0.5)
    assert controller.processing

    late_packet_t.append(6.0)
    controller.tick(now=6.0, dt=DT)
    assert tracker.is_connected
    assert controller.processing

    receiver.latest = Orientation.identity()
    t = 6.0
    for _ in range(5):
        tracker.notify_packet_received("10.0.0.7", now=t)
        t = _run(controller, t, 0.2)
    assert tracker.is_connected == controller.processing
    assert sink.position == pytest.approx((0.0, 0.0), abs=1.0)


def test_disconnect_discards_queued_actions():
    controller, receiver, tracker, sink = _controller()
    tracker.notify_packet_received("10.0.0.7", now=0.0)
    receiver.send_command(MessageKind.SHOOT)
    receiver.send_command(MessageKind.RESTART)

    controller.disconnect()
    assert controller.dispatcher.pending == 0

    controller.tick(now=0.1, dt=DT)
    assert sink.shots == 0
    assert sink.restarts == 0
    assert not controller.processing
