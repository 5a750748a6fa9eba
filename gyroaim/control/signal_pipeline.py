"""Orientation -> bounded 2D screen offset, plus critically damped smoothing.

Per sample, in order:
  1. calibrated = inverse(calibration) * orientation
  2. ZXY Euler pitch (X) and yaw (Z), each wrapped into (-180, 180]
  3. dead zone: abs(angle) <= dead_zone_deg -> 0
  4. clamp to +-max_tilt_deg, divide by max_tilt_deg
  5. optional curve: sign(v) * abs(v) ** curve_power
  6. multiply by sensitivity, clamp to [-1, 1]
  7. vertical = -pitch_n * half_height * vertical_range
     horizontal = -yaw_n * half_width * horizontal_range

Sign convention (applies to every consumer): both axes are negated, so
nose-up moves the target up and nose-left moves it left.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from ..math3d.euler import q_to_pitch_yaw_deg
from ..math3d.quaternion import q_relative


@dataclass(frozen=True)
class AimConfig:
    dead_zone_deg: float = 0.5
    max_tilt_deg: float = 30.0
    sensitivity: float = 1.5
    use_curve: bool = True
    curve_power: float = 2.0
    vertical_range: float = 0.85
    horizontal_range: float = 0.85


def validate_aim_config(cfg: AimConfig) -> None:
    if not math.isfinite(cfg.max_tilt_deg) or cfg.max_tilt_deg <= 0.0:
        raise ValueError(f"--max-tilt-deg must be > 0, got {cfg.max_tilt_deg}")
    if not math.isfinite(cfg.dead_zone_deg) or cfg.dead_zone_deg < 0.0:
        raise ValueError(f"--dead-zone-deg must be >= 0, got {cfg.dead_zone_deg}")
    if not math.isfinite(cfg.sensitivity) or cfg.sensitivity < 0.0:
        raise ValueError(f"--sensitivity must be >= 0, got {cfg.sensitivity}")
    if not math.isfinite(cfg.curve_power) or cfg.curve_power <= 0.0:
        raise ValueError(f"--curve-power must be > 0, got {cfg.curve_power}")
    if not (0.0 <= cfg.vertical_range <= 1.0):
        raise ValueError(f"--vertical-range must be in [0,1], got {cfg.vertical_range}")
    if not (0.0 <= cfg.horizontal_range <= 1.0):
        raise ValueError(f"--horizontal-range must be in [0,1], got {cfg.horizontal_range}")


@dataclass(frozen=True)
class ScreenOffset:
    """Target offset from screen center; +x right, +y up."""

    x: float
    y: float
    pitch_deg: float = 0.0
    yaw_deg: float = 0.0
    pitch_n: float = 0.0
    yaw_n: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)


def _clamp(v: float, lo: float, hi: float) -> float:
    return lo if v < lo else hi if v > hi else v


def shape_axis(angle_deg: float, cfg: AimConfig) -> float:
    """Steps 3-6 for one axis: degrees -> normalized value in [-1, 1]."""
    a = float(angle_deg)
    if abs(a) <= cfg.dead_zone_deg:
        a = 0.0
    a = _clamp(a, -cfg.max_tilt_deg, cfg.max_tilt_deg)
    v = a / cfg.max_tilt_deg
    if cfg.use_curve:
        v = math.copysign(abs(v) ** cfg.curve_power, v) if v != 0.0 else 0.0
    return _clamp(v * cfg.sensitivity, -1.0, 1.0)


class SignalPipeline:
    def __init__(self, config: AimConfig):
        validate_aim_config(config)
        self.config = config

    def angles(self, orientation: np.ndarray, calibration: np.ndarray) -> tuple[float, float]:
        calibrated = q_relative(calibration, orientation)
        return q_to_pitch_yaw_deg(calibrated)

    def process(
        self,
        orientation: np.ndarray,
        calibration: np.ndarray,
        half_width: float,
        half_height: float,
    ) -> ScreenOffset:
        cfg = self.config
        pitch, yaw = self.angles(orientation, calibration)
        pitch_n = shape_axis(pitch, cfg)
        yaw_n = shape_axis(yaw, cfg)
        return ScreenOffset(
            x=-yaw_n * float(half_width) * cfg.horizontal_range,
            y=-pitch_n * float(half_height) * cfg.vertical_range,
            pitch_deg=pitch,
            yaw_deg=yaw,
            pitch_n=pitch_n,
            yaw_n=yaw_n,
        )


def smooth_damp(
    current: np.ndarray,
    target: np.ndarray,
    velocity: np.ndarray,
    smooth_time: float,
    dt: float,
    max_speed: float = math.inf,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Critically damped spring toward target (2D).

    Returns (new_current, new_velocity). ``smooth_time`` is roughly the time to
    reach the target; the exponential uses the usual cubic Pade-style
    approximation. If a step would cross the target it lands on it instead,
    so a step input never overshoots.
    """
    current = np.asarray(current, dtype=np.float64)
    original_target = np.asarray(target, dtype=np.float64)
    velocity = np.asarray(velocity, dtype=np.float64)
    if dt <= 0.0:
        return current.copy(), velocity.copy()

    smooth_time = max(1e-4, float(smooth_time))
    omega = 2.0 / smooth_time
    x = omega * dt
    decay = 1.0 / (1.0 + x + 0.48 * x * x + 0.235 * x * x * x)

    change = current - original_target
    max_change = max_speed * smooth_time
    change_len = float(np.linalg.norm(change))
    if change_len > max_change:
        change = change / change_len * max_change
    target = current - change

    temp = (velocity + omega * change) * dt
    new_velocity = (velocity - omega * temp) * decay
    output = target + (change + temp) * decay

    if float(np.dot(original_target - current, output - original_target)) > 0.0:
        output = original_target.copy()
        new_velocity = np.zeros_like(new_velocity)

    return output, new_velocity


class SmoothedTarget:
    """Consumer-owned current/target/velocity state, stepped once per tick."""

    def __init__(self):
        self.current = np.zeros(2, dtype=np.float64)
        self.target = np.zeros(2, dtype=np.float64)
        self.velocity = np.zeros(2, dtype=np.float64)

    def set_target(self, target: np.ndarray) -> None:
        self.target = np.asarray(target, dtype=np.float64).reshape(2).copy()

    def step(self, dt: float, rate: float) -> np.ndarray:
        """Advance toward target; converges in roughly ``1 / rate`` seconds."""
        if rate <= 0.0:
            raise ValueError(f"smoothing rate must be > 0, got {rate}")
        self.current, self.velocity = smooth_damp(
            self.current, self.target, self.velocity, 1.0 / rate, dt
        )
        return self.current.copy()

    def reset_velocity(self) -> None:
        self.velocity = np.zeros(2, dtype=np.float64)

    def reset(self) -> None:
        self.current = np.zeros(2, dtype=np.float64)
        self.target = np.zeros(2, dtype=np.float64)
        self.velocity = np.zeros(2, dtype=np.float64)
