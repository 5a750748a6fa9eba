import pytest

pytest.importorskip("tkinter")

from gyroaim.math3d.device_frame import device_to_receiver  # noqa: E402
from gyroaim.math3d.euler import q_to_euler_zxy_deg  # noqa: E402
from gyroaim.orientation_sources.toycv_tk import receiver_euler_to_device_q  # noqa: E402


def test_slider_angles_read_back_on_receiver():
    q_device = receiver_euler_to_device_q(12.0, -5.0, 33.0)
    angles = q_to_euler_zxy_deg(device_to_receiver(q_device))
    assert angles == pytest.approx((12.0, -5.0, 33.0), abs=1e-9)
