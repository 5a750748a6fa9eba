"""Orientation source implementations."""

from .sensor_bridge import SensorBridgeOrientationSource

__all__ = [
    "SensorBridgeOrientationSource",
]
