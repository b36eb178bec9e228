"""Point and cluster records exchanged with the caller."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple


def wrap_longitude(lng: float) -> float:
    """Bring a longitude into [-180, 180]; values already inside are returned unchanged."""
    if -180.0 <= lng <= 180.0:
        return lng
    return ((lng + 180.0) % 360.0) - 180.0


@dataclass(frozen=True)
class BoundingBox:
    """Geographic rectangle in degrees. ``west > east`` means it wraps the antimeridian."""

    west: float
    south: float
    east: float
    north: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east or self.west < -180.0 or self.east > 180.0

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)

    def contains(self, latitude: float, longitude: float) -> bool:
        """Whether the coordinate lies inside the box (edges inclusive)."""
        if not self.south <= latitude <= self.north:
            return False
        if self.east - self.west >= 360.0:
            return True
        lng = wrap_longitude(longitude)
        west = wrap_longitude(self.west)
        east = wrap_longitude(self.east)
        if west <= east:
            return west <= lng <= east
        return lng >= west or lng <= east


@dataclass(frozen=True)
class Point:
    """An input point. ``source_index`` is its position in the caller's list."""

    latitude: float
    longitude: float
    source_index: int
    radius: Optional[float] = None
    properties: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def coordinate(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class Cluster:
    """
    A query result: either an aggregate of nearby points or a single leaf.

    Attributes:
        id: Identifier, valid only within ``generation``
        latitude: Centroid latitude
        longitude: Centroid longitude
        point_count: Number of original points represented (1 for a leaf)
        generation: Index build that produced this record
        point: The original point, for leaves only
    """

    id: int
    latitude: float
    longitude: float
    point_count: int
    generation: int
    point: Optional[Point] = None

    @property
    def coordinate(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @property
    def is_cluster(self) -> bool:
        return self.point_count > 1

    @property
    def source_index(self) -> Optional[int]:
        """Join key back to the caller's list, for leaves."""
        return self.point.source_index if self.point is not None else None


__all__ = ["BoundingBox", "Cluster", "Point", "wrap_longitude"]
