import math

import numpy as np

from gyroaim.math3d.quaternion import (
    axis_angle_to_q,
    euler_zxy_deg_to_q,
    q_identity,
    q_inverse,
    q_mul,
    q_normalize,
    q_relative,
    q_rotate_vec,
)


def test_q_normalize_zero_returns_identity():
    q = q_normalize(np.zeros(4, dtype=np.float64))
    np.testing.assert_allclose(q, np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64))


def test_rotation_about_z_turns_x_into_y():
    q = axis_angle_to_q(np.array([0.0, 0.0, 1.0]), math.radians(90.0))
    v = q_rotate_vec(q, np.array([1.0, 0.0, 0.0], dtype=np.float64))
    np.testing.assert_allclose(v, np.array([0.0, 1.0, 0.0], dtype=np.float64), atol=1e-9)


def test_relative_to_itself_is_identity():
    q = euler_zxy_deg_to_q(12.0, -40.0, 75.0)
    np.testing.assert_allclose(q_relative(q, q), q_identity(), atol=1e-12)


def test_inverse_undoes_multiplication():
    a = euler_zxy_deg_to_q(30.0, 10.0, -20.0)
    b = euler_zxy_deg_to_q(-5.0, 60.0, 45.0)
    np.testing.assert_allclose(q_mul(q_inverse(a), q_mul(a, b)), b, atol=1e-12)


def test_euler_zxy_composition_is_unit():
    q = euler_zxy_deg_to_q(89.0, 179.0, -179.0)
    assert abs(float(np.linalg.norm(q)) - 1.0) < 1e-12
