"""Viewport geometry: bounding boxes and zoom levels from map regions."""

from .geometry import (
    Viewport,
    compute_bounding_box,
    compute_zoom,
    enclosing_bounding_box,
)

__all__ = [
    "Viewport",
    "compute_bounding_box",
    "compute_zoom",
    "enclosing_bounding_box",
]
