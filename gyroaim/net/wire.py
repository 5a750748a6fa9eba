"""Fixed-layout UDP message codec.

One datagram is exactly one message:

  1 byte   [tag]                      tag in {1,2,3}: calibrate / shoot / restart
  16 bytes [f32 x][f32 y][f32 z][f32 w]  legacy orientation, implicit tag 0
  17 bytes [tag=0][f32 x][f32 y][f32 z][f32 w]  current orientation format

Floats are little-endian IEEE-754 single precision.
"""

from __future__ import annotations

import enum
import math
import struct
from dataclasses import dataclass
from typing import Union

import numpy as np

_QUAT = struct.Struct("<4f")
_TAGGED_QUAT = struct.Struct("<B4f")

LEGACY_ORIENTATION_SIZE = _QUAT.size
ORIENTATION_SIZE = _TAGGED_QUAT.size
COMMAND_SIZE = 1
VALID_SIZES = frozenset({COMMAND_SIZE, LEGACY_ORIENTATION_SIZE, ORIENTATION_SIZE})


class MessageKind(enum.IntEnum):
    ORIENTATION = 0
    CALIBRATE = 1
    SHOOT = 2
    RESTART = 3


COMMAND_KINDS = frozenset({MessageKind.CALIBRATE, MessageKind.SHOOT, MessageKind.RESTART})


class DecodeError(ValueError):
    """Malformed datagram. ``reason`` is a short machine-readable code."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class Orientation:
    """Attitude quaternion in wire order (x, y, z, w)."""

    x: float
    y: float
    z: float
    w: float

    @classmethod
    def identity(cls) -> "Orientation":
        return cls(0.0, 0.0, 0.0, 1.0)

    @classmethod
    def from_wxyz(cls, q: np.ndarray) -> "Orientation":
        q = np.asarray(q, dtype=np.float64).reshape(4)
        return cls(float(q[1]), float(q[2]), float(q[3]), float(q[0]))

    def as_wxyz(self) -> np.ndarray:
        return np.array([self.w, self.x, self.y, self.z], dtype=np.float64)


@dataclass(frozen=True)
class OrientationMessage:
    orientation: Orientation
    kind: MessageKind = MessageKind.ORIENTATION


@dataclass(frozen=True)
class CommandMessage:
    kind: MessageKind

    def __post_init__(self) -> None:
        if self.kind not in COMMAND_KINDS:
            raise ValueError(f"not a command kind: {self.kind!r}")


Message = Union[OrientationMessage, CommandMessage]


def encode(message: Message) -> bytes:
    if isinstance(message, OrientationMessage):
        o = message.orientation
        return _TAGGED_QUAT.pack(int(MessageKind.ORIENTATION), o.x, o.y, o.z, o.w)
    if isinstance(message, CommandMessage):
        return bytes((int(message.kind),))
    raise TypeError(f"cannot encode {type(message).__name__}")


def encode_legacy(orientation: Orientation) -> bytes:
    """16-byte untagged layout understood by older receivers."""
    return _QUAT.pack(orientation.x, orientation.y, orientation.z, orientation.w)


def _orientation_from(values: tuple[float, ...]) -> Orientation:
    if not all(math.isfinite(v) for v in values):
        raise DecodeError("non_finite", "orientation contains non-finite values")
    x, y, z, w = values
    return Orientation(x, y, z, w)


def decode(data: bytes) -> Message:
    """Decode one datagram. Raises DecodeError; never reads past ``len(data)``."""
    n = len(data)
    if n not in VALID_SIZES:
        raise DecodeError("invalid_length", f"invalid datagram length {n}")

    if n == LEGACY_ORIENTATION_SIZE:
        return OrientationMessage(_orientation_from(_QUAT.unpack(data)))

    tag = data[0]
    if n == ORIENTATION_SIZE:
        if tag != MessageKind.ORIENTATION:
            raise DecodeError("unexpected_tag", f"17-byte datagram with tag {tag}")
        return OrientationMessage(_orientation_from(_TAGGED_QUAT.unpack(data)[1:]))

    if tag not in COMMAND_KINDS:
        raise DecodeError("unknown_tag", f"unknown command tag {tag}")
    return CommandMessage(MessageKind(tag))
