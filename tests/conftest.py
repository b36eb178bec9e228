"""
Pytest configuration and shared fixtures for geocluster tests.

This file provides:
- Sample point sets (city landmarks, dense blobs, antimeridian points)
- A prebuilt index over the blob points
- Helpers for checking partition/count invariants
"""

from typing import Dict, Iterable, List, Any

import numpy as np
import pytest

from geocluster.spatial import BoundingBox, ClusterConfig, ClusterIndex, Point


WORLD = BoundingBox(west=-180.0, south=-90.0, east=180.0, north=90.0)


# ==============================================================================
# Sample Points
# ==============================================================================

@pytest.fixture
def sample_places() -> List[Dict[str, Any]]:
    """Sample landmark records, as a caller would hand them over."""
    return [
        {"name": "Tokyo Station", "lat": 35.6812, "lng": 139.7671, "radius": 120.0},
        {"name": "Senso-ji Temple", "lat": 35.7148, "lng": 139.7967},
        {"name": "Shibuya Crossing", "lat": 35.6595, "lng": 139.7004},
        {"name": "Meiji Shrine", "lat": 35.6764, "lng": 139.6993, "radius": 300.0},
        {"name": "Sydney Opera House", "lat": -33.8568, "lng": 151.2153},
    ]


@pytest.fixture
def close_triplet() -> List[Point]:
    """Three points ~100m apart plus one far-away point."""
    return [
        Point(35.000, 139.000, 0),
        Point(35.001, 139.001, 1),
        Point(35.002, 139.000, 2),
        Point(-33.8568, 151.2153, 3),
    ]


@pytest.fixture
def antimeridian_points() -> List[Point]:
    """Two points either side of the 180° line and one at Greenwich."""
    return [
        Point(0.0, 179.5, 0),
        Point(0.0, -179.5, 1),
        Point(0.0, 0.0, 2),
    ]


@pytest.fixture
def blob_points() -> List[Point]:
    """300 scattered points plus three dense blobs of 40 points each."""
    rng = np.random.default_rng(7)
    coords = [
        (float(lat), float(lng))
        for lat, lng in zip(rng.uniform(-60, 60, 300), rng.uniform(-180, 180, 300))
    ]
    for center_lat, center_lng in ((48.85, 2.35), (35.68, 139.76), (-33.87, 151.21)):
        lats = rng.normal(center_lat, 0.01, 40)
        lngs = rng.normal(center_lng, 0.01, 40)
        coords.extend((float(a), float(b)) for a, b in zip(lats, lngs))
    return [Point(lat, lng, i) for i, (lat, lng) in enumerate(coords)]


# ==============================================================================
# Indexes
# ==============================================================================

@pytest.fixture
def blob_index(blob_points) -> ClusterIndex:
    return ClusterIndex.build(blob_points, ClusterConfig(radius=40.0))


# ==============================================================================
# Utilities
# ==============================================================================

def leaf_indices(index: ClusterIndex, clusters: Iterable) -> List[int]:
    """Source indices of every leaf under ``clusters``, in expansion order."""
    result: List[int] = []
    for cluster in clusters:
        result.extend(point.source_index for point in index.get_leaves(cluster.id))
    return result


def assert_partition(index: ClusterIndex, clusters, n: int) -> None:
    """Assert that ``clusters`` cover every point exactly once."""
    indices = leaf_indices(index, clusters)
    assert len(indices) == n
    assert sorted(indices) == list(range(n))
    assert sum(c.point_count for c in clusters) == n
