import socket

import numpy as np
import pytest

from gyroaim.control.orientation_source import OrientationSource, UnavailableOrientationSource
from gyroaim.math3d.device_frame import device_to_receiver
from gyroaim.math3d.quaternion import euler_zxy_deg_to_q
from gyroaim.net.sender import OrientationSender
from gyroaim.net.wire import (
    CommandMessage,
    MessageKind,
    OrientationMessage,
    decode,
)


class _StaticSource(OrientationSource):
    name = "static"

    def __init__(self, q):
        super().__init__()
        self._publish(q)

    def run(self, on_tick):
        on_tick()


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


@pytest.fixture
def device_q():
    return euler_zxy_deg_to_q(15.0, -30.0, 45.0)


def _sender(listener, q, **kwargs):
    sender = OrientationSender(_StaticSource(q), **kwargs)
    sender.set_destination("127.0.0.1", listener.getsockname()[1])
    return sender


def test_sends_tagged_receiver_orientation(listener, device_q):
    sender = _sender(listener, device_q)
    try:
        assert sender.send_orientation(device_q)
        data, _ = listener.recvfrom(64)
    finally:
        sender.stop()
    assert len(data) == 17
    message = decode(data)
    assert isinstance(message, OrientationMessage)
    np.testing.assert_allclose(message.orientation.as_wxyz(), device_to_receiver(device_q), atol=1e-6)


def test_legacy_wire_sends_16_bytes(listener, device_q):
    sender = _sender(listener, device_q, legacy_wire=True)
    try:
        assert sender.send_orientation(device_q)
        data, _ = listener.recvfrom(64)
    finally:
        sender.stop()
    assert len(data) == 16


def test_calibration_makes_current_attitude_identity(listener, device_q):
    sender = _sender(listener, device_q)
    try:
        assert sender.calibrate()
        sender.send_orientation(device_q)
        data, _ = listener.recvfrom(64)
    finally:
        sender.stop()
    np.testing.assert_allclose(decode(data).orientation.as_wxyz(), [1.0, 0.0, 0.0, 0.0], atol=1e-6)

    sender.reset_calibration()
    np.testing.assert_allclose(sender.receiver_orientation(device_q), device_to_receiver(device_q))


def test_commands_are_single_bytes(listener, device_q):
    sender = _sender(listener, device_q)
    try:
        assert sender.send_command(MessageKind.SHOOT)
        data, _ = listener.recvfrom(64)
        with pytest.raises(ValueError):
            sender.send_command(MessageKind.ORIENTATION)
    finally:
        sender.stop()
    assert data == b"\x02"
    assert decode(data) == CommandMessage(MessageKind.SHOOT)


def test_no_destination_is_a_no_op(device_q):
    sender = OrientationSender(_StaticSource(device_q))
    assert sender.destination is None
    assert not sender.send_orientation(device_q)
    assert not sender.send_command(MessageKind.CALIBRATE)
    assert sender.stats == {"sent": 0, "send_errors": 0}


def test_clearing_destination(listener, device_q):
    sender = _sender(listener, device_q)
    sender.set_destination("", 0)
    assert sender.destination is None
    assert not sender.send_orientation(device_q)


def test_unavailable_source_is_a_no_op(listener, device_q):
    sender = OrientationSender(UnavailableOrientationSource())
    sender.set_destination("127.0.0.1", listener.getsockname()[1])
    assert not sender.send_orientation(device_q)
    assert not sender.calibrate(device_q)
    assert sender.stats["sent"] == 0


def test_periodic_loop_streams_until_stopped(listener, device_q):
    sender = _sender(listener, device_q, send_hz=200.0)
    sender.start()
    try:
        assert sender.is_running
        for _ in range(3):
            data, _ = listener.recvfrom(64)
            assert len(data) == 17
    finally:
        sender.stop()
    assert not sender.is_running


def test_rejects_bad_settings(device_q):
    with pytest.raises(ValueError, match="--send-hz"):
        OrientationSender(_StaticSource(device_q), send_hz=0.0)
    sender = OrientationSender(_StaticSource(device_q))
    with pytest.raises(ValueError):
        sender.set_destination("127.0.0.1", 0)
