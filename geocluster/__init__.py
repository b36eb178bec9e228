"""
geocluster: Viewport-driven clustering of large geographic point sets.

Build a :class:`ClusterIndex` once per point set, then ask it (directly or
through a :class:`RegionChangeCoordinator`) which clusters are visible for
each map viewport, and expand pressed clusters back into their points.
"""

from .coordinator import (
    ClusterExpansionHandler,
    ExpansionResult,
    RegionChangeCoordinator,
    RegionUpdate,
)
from .spatial import (
    BoundingBox,
    Cluster,
    ClusterConfig,
    ClusterIndex,
    EmptyInputError,
    GeoClusterError,
    InvalidConfigurationError,
    Point,
    UnknownClusterIdError,
    build_index,
    clusters_to_dataframe,
    coerce_points,
)
from .viewport import Viewport, compute_bounding_box, compute_zoom, enclosing_bounding_box

__version__ = "1.0.0"

__all__ = [
    "BoundingBox",
    "Cluster",
    "ClusterConfig",
    "ClusterExpansionHandler",
    "ClusterIndex",
    "EmptyInputError",
    "ExpansionResult",
    "GeoClusterError",
    "InvalidConfigurationError",
    "Point",
    "RegionChangeCoordinator",
    "RegionUpdate",
    "UnknownClusterIdError",
    "Viewport",
    "build_index",
    "clusters_to_dataframe",
    "coerce_points",
    "compute_bounding_box",
    "compute_zoom",
    "enclosing_bounding_box",
]
