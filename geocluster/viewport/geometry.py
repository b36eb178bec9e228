"""
Viewport geometry: bounding boxes and integer zoom levels from map regions.

All functions are pure. Degenerate input (zero or negative spans, NaN)
degrades to a usable result instead of raising, since transient degenerate
regions are normal while a gesture is in progress.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np

from ..spatial.models import BoundingBox


WORLD_SPAN_DEG = 360.0


@dataclass(frozen=True)
class Viewport:
    """Visible map region: a centre plus the visible latitude/longitude spans."""

    latitude: float
    longitude: float
    latitude_span: float
    longitude_span: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @classmethod
    def from_region(cls, region) -> "Viewport":
        """
        Build from a map-widget region mapping.

        Accepts ``latitudeDelta``/``longitudeDelta`` (as emitted by map
        widgets) or ``latitude_span``/``longitude_span``.
        """
        if isinstance(region, Viewport):
            return region
        lat_span = region.get("latitudeDelta", region.get("latitude_span"))
        lng_span = region.get("longitudeDelta", region.get("longitude_span"))
        if lat_span is None or lng_span is None:
            raise ValueError(f"Region is missing its span: {dict(region)!r}")
        return cls(
            latitude=float(region["latitude"]),
            longitude=float(region["longitude"]),
            latitude_span=float(lat_span),
            longitude_span=float(lng_span),
        )


def compute_bounding_box(viewport: Viewport) -> BoundingBox:
    """
    Return the bounding box of ``viewport``.

    Edges are not wrapped into [-180, 180]: ``west < -180``, ``east > 180``
    or ``west > east`` (a negative longitude span) tells the index to split
    the box at the antimeridian.
    """
    half_lng = viewport.longitude_span / 2.0
    half_lat = viewport.latitude_span / 2.0
    return BoundingBox(
        west=viewport.longitude - half_lng,
        south=viewport.latitude - half_lat,
        east=viewport.longitude + half_lng,
        north=viewport.latitude + half_lat,
    )


def compute_zoom(
    viewport: Viewport,
    bbox: Optional[BoundingBox] = None,
    min_zoom: int = 1,
    max_zoom: Optional[int] = None,
) -> int:
    """
    Integer zoom level for ``viewport``: ``floor(log2(360 / longitude_span))``.

    Args:
        viewport: Visible region
        bbox: Bounding box of the region (unused; kept so callers can pass
            the box they already computed)
        min_zoom: Lower clamp; also the answer for degenerate spans
            (zero, negative or non-finite)
        max_zoom: Optional upper clamp

    Returns:
        Zoom level in [min_zoom, max_zoom]
    """
    span = viewport.longitude_span
    if not math.isfinite(span) or span <= 0:
        return min_zoom

    zoom = math.floor(math.log2(WORLD_SPAN_DEG / span))
    zoom = max(min_zoom, zoom)
    if max_zoom is not None:
        zoom = min(zoom, max_zoom)
    return int(zoom)


def enclosing_bounding_box(coordinates: Iterable[Tuple[float, float]]) -> Optional[BoundingBox]:
    """
    Return the smallest box containing every ``(latitude, longitude)`` pair.

    Longitudes take the shortest arc. When the widest gap between the sorted
    longitudes is not the one across the antimeridian, the box wraps and
    ``west > east``. Returns None for no coordinates.
    """
    coords = np.asarray(list(coordinates), dtype=np.float64)
    if coords.size == 0:
        return None
    coords = coords.reshape(-1, 2)

    lats = coords[:, 0]
    lngs = coords[:, 1]
    lngs = np.sort(np.where(np.abs(lngs) <= 180.0, lngs, ((lngs + 180.0) % 360.0) - 180.0))

    west, east = float(lngs[0]), float(lngs[-1])
    if len(lngs) > 1:
        gaps = np.diff(lngs)
        wrap_gap = lngs[0] + WORLD_SPAN_DEG - lngs[-1]
        widest = int(np.argmax(gaps))
        if gaps[widest] > wrap_gap:
            west, east = float(lngs[widest + 1]), float(lngs[widest])

    return BoundingBox(
        west=west,
        south=float(lats.min()),
        east=east,
        north=float(lats.max()),
    )


__all__ = [
    "Viewport",
    "WORLD_SPAN_DEG",
    "compute_bounding_box",
    "compute_zoom",
    "enclosing_bounding_box",
]
