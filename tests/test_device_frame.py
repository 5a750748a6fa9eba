import numpy as np

from gyroaim.math3d.device_frame import (
    PHONE_FORWARD_Q,
    device_to_receiver,
    mirror_handedness,
    receiver_to_device,
)
from gyroaim.math3d.quaternion import euler_zxy_deg_to_q, q_identity, q_relative, q_rotate_vec


def test_mirror_negates_z_and_w():
    q = np.array([0.1, 0.2, 0.3, 0.4], dtype=np.float64)
    np.testing.assert_allclose(mirror_handedness(q), np.array([-0.1, 0.2, 0.3, -0.4]))
    np.testing.assert_allclose(mirror_handedness(mirror_handedness(q)), q)


def test_phone_forward_maps_screen_up_to_forward():
    v = q_rotate_vec(PHONE_FORWARD_Q, np.array([0.0, 1.0, 0.0], dtype=np.float64))
    np.testing.assert_allclose(v, np.array([0.0, 0.0, 1.0], dtype=np.float64), atol=1e-9)


def test_device_identity_rotates_like_phone_forward():
    q = device_to_receiver(q_identity())
    for axis in np.eye(3, dtype=np.float64):
        np.testing.assert_allclose(
            q_rotate_vec(q, axis), q_rotate_vec(PHONE_FORWARD_Q, axis), atol=1e-9
        )


def test_receiver_to_device_inverts_transform():
    q_device = euler_zxy_deg_to_q(17.0, -64.0, 121.0)
    np.testing.assert_allclose(receiver_to_device(device_to_receiver(q_device)), q_device, atol=1e-12)


def test_calibrated_attitude_reads_identity():
    q_device = euler_zxy_deg_to_q(40.0, 5.0, -80.0)
    reference = device_to_receiver(q_device)
    np.testing.assert_allclose(q_relative(reference, device_to_receiver(q_device)), q_identity(), atol=1e-12)
