"""Quaternion utilities.

Arrays are ``[w, x, y, z]`` float64. The wire format uses ``(x, y, z, w)``;
conversion lives in ``net.wire.Orientation``.
"""

from __future__ import annotations

import math

import numpy as np


def q_identity() -> np.ndarray:
    return np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)


def q_normalize(q: np.ndarray) -> np.ndarray:
    q = np.asarray(q, dtype=np.float64)
    n = float(np.linalg.norm(q))
    if n < 1e-12:
        return q_identity()
    return q / n


def q_conj(q: np.ndarray) -> np.ndarray:
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def q_inverse(q: np.ndarray) -> np.ndarray:
    """Inverse of q. For unit quaternions this is the conjugate."""
    q = np.asarray(q, dtype=np.float64)
    n2 = float(np.dot(q, q))
    if n2 < 1e-24:
        return q_identity()
    return q_conj(q) / n2


def q_mul(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    aw, ax, ay, az = a
    bw, bx, by, bz = b
    return np.array(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ],
        dtype=np.float64,
    )


def q_relative(reference: np.ndarray, q: np.ndarray) -> np.ndarray:
    """``inverse(reference) * q``: q expressed relative to reference.

    No renormalization; composing unit quaternions keeps unit length.
    """
    return q_mul(q_inverse(reference), np.asarray(q, dtype=np.float64))


def q_rotate_vec(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate vector v by unit quaternion q: v' = q*(0,v)*q^{-1}."""
    q = q_normalize(q)
    vq = np.array([0.0, float(v[0]), float(v[1]), float(v[2])], dtype=np.float64)
    return q_mul(q_mul(q, vq), q_conj(q))[1:]


def axis_angle_to_q(axis: np.ndarray, angle_rad: float) -> np.ndarray:
    axis = np.asarray(axis, dtype=np.float64)
    axis = axis / (np.linalg.norm(axis) + 1e-12)
    s = math.sin(angle_rad / 2.0)
    return q_normalize(
        np.array(
            [math.cos(angle_rad / 2.0), axis[0] * s, axis[1] * s, axis[2] * s],
            dtype=np.float64,
        )
    )


def euler_zxy_deg_to_q(x_deg: float, y_deg: float, z_deg: float) -> np.ndarray:
    """
    Build q from Euler angles applied Z first, then X, then Y:
      q = q_y * q_x * q_z
    x is pitch (lateral axis), z is yaw after the phone-forward remap,
    y is the remaining twist. Inverse of ``euler.q_to_euler_zxy_deg``.
    """
    q_x = axis_angle_to_q(np.array([1.0, 0.0, 0.0]), math.radians(x_deg))
    q_y = axis_angle_to_q(np.array([0.0, 1.0, 0.0]), math.radians(y_deg))
    q_z = axis_angle_to_q(np.array([0.0, 0.0, 1.0]), math.radians(z_deg))
    return q_mul(q_mul(q_y, q_x), q_z)
