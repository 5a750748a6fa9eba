"""Quaternion and angle helpers."""
