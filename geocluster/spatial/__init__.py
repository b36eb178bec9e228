"""
geocluster/spatial: Hierarchical point clustering and spatial indexing.

This module provides the multi-level cluster index, the KD-tree it is built
on, the Mercator projection and the point/cluster records.
"""

from .errors import (
    EmptyInputError,
    GeoClusterError,
    InvalidConfigurationError,
    UnknownClusterIdError,
)
from .frames import clusters_to_dataframe, coerce_points, points_from_dataframe
from .index import (
    ClusterConfig,
    ClusterIndex,
    build_index,
    radius_for_screen_width,
)
from .kdtree import KDTree
from .models import BoundingBox, Cluster, Point

__all__ = [
    # Index
    "ClusterConfig",
    "ClusterIndex",
    "build_index",
    "radius_for_screen_width",
    "KDTree",

    # Data models
    "BoundingBox",
    "Cluster",
    "Point",

    # Tabular helpers
    "clusters_to_dataframe",
    "coerce_points",
    "points_from_dataframe",

    # Errors
    "EmptyInputError",
    "GeoClusterError",
    "InvalidConfigurationError",
    "UnknownClusterIdError",
]
