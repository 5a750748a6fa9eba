"""Sensor-space to receiver-space mapping for handheld devices.

This module is the single place that maps a device attitude reading into the
receiver convention. Receivers decode orientation assuming exactly this
transform, so it is a fixed constant and not configurable:

1. Handedness mirror: (x, y, z, w) -> (x, y, -z, -w).
2. Phone-forward remap: a fixed +90 deg rotation about X composed on the left,
   so "flat on the table, screen up" becomes "screen facing forward".
"""

from __future__ import annotations

import math

import numpy as np

from .quaternion import axis_angle_to_q, q_inverse, q_mul

PHONE_FORWARD_Q = axis_angle_to_q(np.array([1.0, 0.0, 0.0]), math.radians(90.0))


def mirror_handedness(q_device: np.ndarray) -> np.ndarray:
    """Negate z and w of a ``[w, x, y, z]`` device attitude."""
    q = np.asarray(q_device, dtype=np.float64).reshape(4)
    return np.array([-q[0], q[1], q[2], -q[3]], dtype=np.float64)


def device_to_receiver(q_device: np.ndarray) -> np.ndarray:
    """Full device -> receiver transform: ``PHONE_FORWARD_Q * mirror(q)``."""
    return q_mul(PHONE_FORWARD_Q, mirror_handedness(q_device))


def receiver_to_device(q_receiver: np.ndarray) -> np.ndarray:
    """Inverse of ``device_to_receiver``; the mirror is its own inverse."""
    return mirror_handedness(q_mul(q_inverse(PHONE_FORWARD_Q), q_receiver))
