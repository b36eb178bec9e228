"""Spherical Mercator projection onto the unit square and back."""

from __future__ import annotations

import numpy as np


def _unwrap(value: np.ndarray):
    """Return a plain float for 0-d results, the array otherwise."""
    if np.ndim(value) == 0:
        return float(value)
    return value


def lng_to_x(lng):
    """Project longitude (degrees) to x in [0, 1]."""
    return _unwrap(np.asarray(lng, dtype=np.float64) / 360.0 + 0.5)


def lat_to_y(lat):
    """Project latitude (degrees) to y in [0, 1], with north at 0.

    The poles project to infinity under Mercator; they are clamped to the
    edges of the unit square instead of raising.
    """
    lat = np.clip(np.asarray(lat, dtype=np.float64), -90.0, 90.0)
    sin = np.sin(np.radians(lat))
    with np.errstate(divide="ignore"):
        y = 0.5 - 0.25 * np.log((1.0 + sin) / (1.0 - sin)) / np.pi
    return _unwrap(np.clip(y, 0.0, 1.0))


def x_to_lng(x):
    """Inverse of :func:`lng_to_x`."""
    return _unwrap((np.asarray(x, dtype=np.float64) - 0.5) * 360.0)


def y_to_lat(y):
    """Inverse of :func:`lat_to_y`."""
    y2 = np.radians(180.0 - np.asarray(y, dtype=np.float64) * 360.0)
    return _unwrap(360.0 * np.arctan(np.exp(y2)) / np.pi - 90.0)


__all__ = ["lat_to_y", "lng_to_x", "x_to_lng", "y_to_lat"]
