"""Euler-angle helpers in degrees."""

from __future__ import annotations

import math

import numpy as np

_GIMBAL_EPS = 1e-9


def wrap_deg180(angle_deg: float) -> float:
    """Wrap an angle into (-180, 180]."""
    a = math.fmod(float(angle_deg), 360.0)
    if a <= -180.0:
        a += 360.0
    elif a > 180.0:
        a -= 360.0
    return a


def q_to_euler_zxy_deg(q: np.ndarray) -> tuple[float, float, float]:
    """
    Decompose q = q_y * q_x * q_z into (x, y, z) degrees, each in (-180, 180].

    With R = Ry * Rx * Rz:
      x: asin(-R[1,2])
      y: atan2(R[0,2], R[2,2])
      z: atan2(R[1,0], R[1,1])
    At gimbal lock (|x| = 90) z is pinned to 0 and the rotation is folded into y.
    """
    w, x, y, z = (float(c) for c in q)
    sin_x = 2.0 * (w * x - y * z)
    sin_x = max(-1.0, min(1.0, sin_x))
    ex = math.degrees(math.asin(sin_x))

    if 1.0 - abs(sin_x) < _GIMBAL_EPS:
        # y = atan2(-R[2,0], R[0,0]) once z is pinned.
        ey = math.degrees(math.atan2(-2.0 * (x * z - w * y), 1.0 - 2.0 * (y * y + z * z)))
        ez = 0.0
    else:
        ey = math.degrees(math.atan2(2.0 * (x * z + w * y), 1.0 - 2.0 * (x * x + y * y)))
        ez = math.degrees(math.atan2(2.0 * (x * y + w * z), 1.0 - 2.0 * (x * x + z * z)))

    return wrap_deg180(ex), wrap_deg180(ey), wrap_deg180(ez)


def q_to_pitch_yaw_deg(q: np.ndarray) -> tuple[float, float]:
    """Pitch (lateral axis) and yaw (vertical axis after phone-forward remap)."""
    pitch, _twist, yaw = q_to_euler_zxy_deg(q)
    return pitch, yaw
