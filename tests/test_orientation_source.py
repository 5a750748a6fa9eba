import threading

import numpy as np
import pytest

from gyroaim.control.orientation_source import OrientationSource, UnavailableOrientationSource
from gyroaim.net.wire import MessageKind


def test_base_source_defaults():
    source = OrientationSource()
    assert source.is_available()
    np.testing.assert_allclose(source.get_quaternion(), np.array([1.0, 0.0, 0.0, 0.0]))
    with pytest.raises(NotImplementedError):
        source.run(lambda: None)


def test_publish_normalizes_and_copies():
    source = OrientationSource()
    source._publish(np.array([0.0, 0.0, 3.0, 0.0]))
    q = source.get_quaternion()
    np.testing.assert_allclose(q, np.array([0.0, 0.0, 1.0, 0.0]))
    q[0] = 5.0
    np.testing.assert_allclose(source.get_quaternion(), np.array([0.0, 0.0, 1.0, 0.0]))


def test_command_handler_receives_button_presses():
    source = OrientationSource()
    seen = []
    source._emit_command(MessageKind.SHOOT)
    source.set_command_handler(seen.append)
    source._emit_command(MessageKind.CALIBRATE)
    assert seen == [MessageKind.CALIBRATE]


def test_unavailable_source_ticks_until_closed():
    source = UnavailableOrientationSource(tick_s=0.01)
    assert not source.is_available()
    ticks = []

    def on_tick():
        ticks.append(1)
        if len(ticks) == 3:
            source.close()

    worker = threading.Thread(target=source.run, args=(on_tick,))
    worker.start()
    worker.join(timeout=2.0)
    assert not worker.is_alive()
    assert len(ticks) == 3
