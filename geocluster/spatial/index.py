"""
Hierarchical cluster index over geographic points.

This module provides:
1. ClusterConfig with eager validation
2. Bottom-up aggregation from max_zoom down to min_zoom, one KD-tree per level
3. Viewport queries with antimeridian splitting and an LRU result cache
4. Cluster expansion: children, leaves (with paging) and expansion zoom

An index is immutable once built. Any change to the points or the
configuration means building a new index; cluster ids from one build
(a "generation") are meaningless in another.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
import time
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from cachetools import LRUCache

from .errors import EmptyInputError, InvalidConfigurationError, UnknownClusterIdError
from .kdtree import KDTree
from .models import BoundingBox, Cluster, Point, wrap_longitude
from .projection import lat_to_y, lng_to_x, x_to_lng, y_to_lat


logger = logging.getLogger(__name__)


# -----------------------------
# Constants
# -----------------------------

# Default radius is a fraction of the screen width (reference width in points)
DEFAULT_SCREEN_WIDTH = 375.0
RADIUS_SCREEN_RATIO = 0.06

# Cluster ids pack the level they were formed at into the low 5 bits
ZOOM_BITS = 5
MAX_SUPPORTED_ZOOM = (1 << ZOOM_BITS) - 2

# Accepted spellings of the map component's prop names
_CONFIG_ALIASES = {
    "minZoom": "min_zoom",
    "maxZoom": "max_zoom",
    "minPoints": "min_points",
    "nodeSize": "node_size",
    "clusteringEnabled": "clustering_enabled",
    "queryCacheSize": "query_cache_size",
}

_generations = itertools.count(1)


def next_generation() -> int:
    """Allocate a generation number (one per index build or pass-through load)."""
    return next(_generations)


def radius_for_screen_width(width: float, ratio: float = RADIUS_SCREEN_RATIO) -> float:
    """Cluster radius in pixels for a screen ``width`` pixels wide."""
    return float(width) * ratio


# -----------------------------
# Configuration
# -----------------------------

@dataclass
class ClusterConfig:
    """Configuration for building a cluster index."""

    radius: float = DEFAULT_SCREEN_WIDTH * RADIUS_SCREEN_RATIO
    """Cluster radius in pixels, relative to ``extent``."""

    min_zoom: int = 1
    """Coarsest zoom level that gets its own clustering pass."""

    max_zoom: int = 20
    """Finest zoom level that gets its own clustering pass."""

    min_points: int = 3
    """Minimum number of points needed to form a cluster."""

    extent: int = 512
    """Tile extent in pixels (radius is calculated relative to it)."""

    node_size: int = 64
    """KD-tree leaf bucket size."""

    clustering_enabled: bool = True
    """When False, points are passed through without building an index."""

    query_cache_size: int = 128
    """Number of viewport query results cached per index (0 = no cache)."""

    @classmethod
    def for_screen_width(cls, width: float, **overrides: Any) -> "ClusterConfig":
        """Build a config whose radius is proportional to ``width``."""
        overrides.setdefault("radius", radius_for_screen_width(width))
        return cls(**overrides)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClusterConfig":
        """
        Build a config from a mapping (e.g. a YAML profile).

        Both snake_case field names and the map component's camelCase prop
        names are accepted. Unknown keys are rejected.

        Raises:
            InvalidConfigurationError: If keys are unknown or values invalid
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        unknown: List[str] = []

        for key, value in (data or {}).items():
            name = _CONFIG_ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                unknown.append(str(key))

        if unknown:
            raise InvalidConfigurationError(
                [f"Unknown configuration key(s): {', '.join(sorted(unknown))}"],
                [f"Use only: {', '.join(sorted(known))}"],
            )

        return cls(**values).validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def validate(self) -> "ClusterConfig":
        """
        Check the configuration invariants.

        Returns:
            self, so calls can be chained

        Raises:
            InvalidConfigurationError: Listing every violated invariant
        """
        problems: List[str] = []
        suggestions: List[str] = []

        for name in ("min_zoom", "max_zoom", "min_points", "extent", "node_size", "query_cache_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                problems.append(f"{name} must be an integer, got {value!r}")

        if problems:
            raise InvalidConfigurationError(problems)

        if not isinstance(self.radius, (int, float)) or not math.isfinite(self.radius) or self.radius <= 0:
            problems.append(f"radius must be a positive number, got {self.radius!r}")
            suggestions.append(
                f"Use radius_for_screen_width(width) (default {RADIUS_SCREEN_RATIO:.0%} of the width)"
            )
        if self.extent <= 0:
            problems.append(f"extent must be positive, got {self.extent}")
        if self.node_size <= 0:
            problems.append(f"node_size must be positive, got {self.node_size}")
        if self.min_points < 2:
            problems.append(f"min_points must be at least 2, got {self.min_points}")
            suggestions.append("Set clustering_enabled=False to show every point unclustered")
        if self.min_zoom > self.max_zoom:
            problems.append(f"min_zoom ({self.min_zoom}) is greater than max_zoom ({self.max_zoom})")
        if self.min_zoom < 0 or self.max_zoom > MAX_SUPPORTED_ZOOM:
            problems.append(
                f"zoom levels must lie in [0, {MAX_SUPPORTED_ZOOM}], "
                f"got [{self.min_zoom}, {self.max_zoom}]"
            )
        if self.query_cache_size < 0:
            problems.append(f"query_cache_size must be >= 0, got {self.query_cache_size}")

        if problems:
            raise InvalidConfigurationError(problems, suggestions)
        return self


# -----------------------------
# Index
# -----------------------------

class _Level:
    """Projected records of one zoom level plus the KD-tree over them."""

    __slots__ = ("zoom", "x", "y", "ids", "counts", "parents", "tree")

    def __init__(self, zoom: int, x, y, ids, counts, node_size: int):
        self.zoom = zoom
        self.x = np.asarray(x, dtype=np.float64)
        self.y = np.asarray(y, dtype=np.float64)
        self.ids = np.asarray(ids, dtype=np.int64)
        self.counts = np.asarray(counts, dtype=np.int64)
        self.parents = np.full(len(self.ids), -1, dtype=np.int64)
        self.tree = KDTree(self.x, self.y, node_size)

    def __len__(self) -> int:
        return len(self.ids)


class ClusterIndex:
    """
    Multi-level spatial index answering viewport and expansion queries.

    Build with :meth:`build`; the constructor is internal.
    """

    def __init__(
        self,
        points: Tuple[Point, ...],
        config: ClusterConfig,
        levels: Dict[int, _Level],
        generation: int,
    ):
        self.points = points
        self.config = config
        self.generation = generation
        self._levels = levels
        self._lock = threading.Lock()
        self._cache: Optional[LRUCache] = (
            LRUCache(maxsize=config.query_cache_size) if config.query_cache_size else None
        )

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        return (
            f"ClusterIndex(generation={self.generation}, points={len(self.points)}, "
            f"zooms={self.config.min_zoom}-{self.config.max_zoom})"
        )

    # ---- build ----

    @classmethod
    def build(
        cls,
        points: Iterable[Point],
        config: Optional[ClusterConfig] = None,
        *,
        allow_empty: bool = True,
    ) -> "ClusterIndex":
        """
        Build a new index generation.

        Args:
            points: Points to index; a point's position is its leaf id
            config: Clustering configuration (defaults if None)
            allow_empty: When False, an empty input raises instead of
                producing an index that always answers empty

        Returns:
            The built index

        Raises:
            InvalidConfigurationError: If the configuration is invalid
            EmptyInputError: If ``points`` is empty and ``allow_empty`` is False
            ValueError: If a coordinate is not a finite number
        """
        config = (config or ClusterConfig()).validate()
        points = tuple(points)
        n = len(points)

        if n == 0 and not allow_empty:
            raise EmptyInputError("Cannot build a cluster index from zero points.")

        started = time.perf_counter()

        lats = np.fromiter((p.latitude for p in points), dtype=np.float64, count=n)
        lngs = np.fromiter((p.longitude for p in points), dtype=np.float64, count=n)
        bad = ~(np.isfinite(lats) & np.isfinite(lngs))
        if bad.any():
            first = int(np.flatnonzero(bad)[0])
            raise ValueError(
                f"{int(bad.sum())} point(s) have non-finite coordinates "
                f"(first at position {first}: {points[first].coordinate})."
            )

        level = _Level(
            config.max_zoom + 1,
            lng_to_x(lngs),
            lat_to_y(lats),
            ids=np.arange(n),
            counts=np.ones(n),
            node_size=config.node_size,
        )
        levels = {level.zoom: level}

        for zoom in range(config.max_zoom, config.min_zoom - 1, -1):
            level = cls._cluster_level(level, zoom, n, config)
            levels[zoom] = level

        index = cls(points, config, levels, next_generation())

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Built cluster index generation %d: %d points, zooms %d-%d, "
                "%d top-level records in %.1f ms",
                index.generation,
                n,
                config.min_zoom,
                config.max_zoom,
                len(levels[config.min_zoom]),
                (time.perf_counter() - started) * 1000.0,
            )

        return index

    @staticmethod
    def _cluster_level(finer: _Level, zoom: int, n: int, config: ClusterConfig) -> _Level:
        """Aggregate the records of ``finer`` into the level for ``zoom``."""
        r = config.radius / (config.extent * 2 ** zoom)

        xs = finer.x.tolist()
        ys = finer.y.tolist()
        ids = finer.ids.tolist()
        counts = finer.counts.tolist()
        parents = finer.parents.tolist()
        visited = [False] * len(ids)

        next_x: List[float] = []
        next_y: List[float] = []
        next_ids: List[int] = []
        next_counts: List[int] = []

        for i in range(len(ids)):
            if visited[i]:
                continue
            visited[i] = True

            x, y = xs[i], ys[i]
            neighbors = finer.tree.within(x, y, r)

            origin_count = counts[i]
            num_points = origin_count
            for k in neighbors:
                if not visited[k]:
                    num_points += counts[k]

            if num_points > origin_count and num_points >= config.min_points:
                wx = x * origin_count
                wy = y * origin_count
                cluster_id = (i << ZOOM_BITS) + (zoom + 1) + n

                for k in neighbors:
                    if visited[k]:
                        continue
                    visited[k] = True
                    wx += xs[k] * counts[k]
                    wy += ys[k] * counts[k]
                    parents[k] = cluster_id

                parents[i] = cluster_id
                next_x.append(wx / num_points)
                next_y.append(wy / num_points)
                next_ids.append(cluster_id)
                next_counts.append(num_points)
            else:
                next_x.append(x)
                next_y.append(y)
                next_ids.append(ids[i])
                next_counts.append(origin_count)

                if num_points > 1:
                    for k in neighbors:
                        if visited[k]:
                            continue
                        visited[k] = True
                        next_x.append(xs[k])
                        next_y.append(ys[k])
                        next_ids.append(ids[k])
                        next_counts.append(counts[k])

        finer.parents = np.asarray(parents, dtype=np.int64)
        return _Level(zoom, next_x, next_y, next_ids, next_counts, config.node_size)

    # ---- queries ----

    def limit_zoom(self, zoom: float) -> int:
        """Floor ``zoom`` and clamp it to [min_zoom, max_zoom]."""
        try:
            zoom = float(zoom)
        except (TypeError, ValueError):
            return self.config.min_zoom
        if math.isnan(zoom):
            return self.config.min_zoom
        if math.isinf(zoom):
            return self.config.max_zoom if zoom > 0 else self.config.min_zoom
        return max(self.config.min_zoom, min(math.floor(zoom), self.config.max_zoom))

    def get_clusters(self, bbox: BoundingBox, zoom: float) -> Tuple[Cluster, ...]:
        """
        Return every cluster or leaf inside ``bbox`` at ``zoom``.

        Zoom is clamped silently. A box with ``west > east`` (or edges past
        ±180) is split at the antimeridian and the halves are unioned.
        """
        zoom = self.limit_zoom(zoom)
        boxes = _normalize_bbox(bbox)
        key = (boxes, zoom)

        if self._cache is not None:
            with self._lock:
                cached = self._cache.get(key)
            if cached is not None:
                return cached

        level = self._levels[zoom]
        seen = set()
        result: List[Cluster] = []
        for west, south, east, north in boxes:
            hits = level.tree.range(lng_to_x(west), lat_to_y(north), lng_to_x(east), lat_to_y(south))
            for k in hits:
                record_id = int(level.ids[k])
                if record_id in seen:
                    continue
                seen.add(record_id)
                result.append(self._record(level, k))

        clusters = tuple(result)
        if self._cache is not None:
            with self._lock:
                self._cache[key] = clusters
        return clusters

    def get_children(self, cluster_id: int) -> Tuple[Cluster, ...]:
        """
        Return the records one level finer that were merged into a cluster.

        Raises:
            UnknownClusterIdError: If the id is a leaf or not from this generation
        """
        cluster_id = self._check_id(cluster_id)
        if cluster_id < len(self.points):
            raise UnknownClusterIdError(cluster_id, "Leaf points have no children")

        origin, origin_zoom = self._decode(cluster_id)
        level = self._levels.get(origin_zoom)
        if (
            level is None
            or origin_zoom <= self.config.min_zoom
            or origin >= len(level)
        ):
            raise UnknownClusterIdError(cluster_id)

        r = self.config.radius / (self.config.extent * 2 ** (origin_zoom - 1))
        neighbors = level.tree.within(float(level.x[origin]), float(level.y[origin]), r)
        children = tuple(
            self._record(level, k) for k in neighbors if level.parents[k] == cluster_id
        )
        if not children:
            raise UnknownClusterIdError(cluster_id)
        return children

    def get_leaves(
        self,
        cluster_id: int,
        limit: Optional[float] = None,
        offset: int = 0,
    ) -> Tuple[Point, ...]:
        """
        Expand a cluster into its original points.

        Args:
            cluster_id: Id of a cluster or leaf from this generation
            limit: Maximum number of points (None or ``math.inf`` = all)
            offset: Number of points to skip, for paging

        Raises:
            UnknownClusterIdError: If the id is not from this generation
        """
        cluster_id = self._check_id(cluster_id)
        if limit is not None and math.isinf(limit):
            limit = None
        if limit is not None and limit <= 0:
            return ()
        offset = max(0, int(offset))

        if cluster_id < len(self.points):
            return (self.points[cluster_id],) if offset == 0 else ()

        leaves: List[Point] = []
        self._append_leaves(leaves, cluster_id, limit, offset, 0)
        return tuple(leaves)

    def get_cluster_expansion_zoom(self, cluster_id: int) -> int:
        """
        Return the zoom at which a cluster splits into more than one record.

        A result of ``max_zoom + 1`` means the cluster never splits inside
        the indexed zoom range.
        """
        cluster_id = self._check_id(cluster_id)
        if cluster_id < len(self.points):
            return self.config.max_zoom + 1

        _, origin_zoom = self._decode(cluster_id)
        expansion_zoom = origin_zoom - 1
        while expansion_zoom <= self.config.max_zoom:
            children = self.get_children(cluster_id)
            expansion_zoom += 1
            if len(children) != 1 or not children[0].is_cluster:
                break
            cluster_id = children[0].id
        return expansion_zoom

    def cache_stats(self) -> Dict[str, Any]:
        """Get query cache statistics."""
        if self._cache is None:
            return {"enabled": False, "size": 0, "maxsize": 0}
        with self._lock:
            return {"enabled": True, "size": len(self._cache), "maxsize": self._cache.maxsize}

    # ---- internals ----

    def _append_leaves(
        self,
        result: List[Point],
        cluster_id: int,
        limit: Optional[int],
        offset: int,
        skipped: int,
    ) -> int:
        for child in self.get_children(cluster_id):
            if child.is_cluster:
                if skipped + child.point_count <= offset:
                    skipped += child.point_count
                else:
                    skipped = self._append_leaves(result, child.id, limit, offset, skipped)
            elif skipped < offset:
                skipped += 1
            else:
                result.append(child.point)

            if limit is not None and len(result) >= limit:
                break
        return skipped

    def _record(self, level: _Level, k: int) -> Cluster:
        record_id = int(level.ids[k])
        count = int(level.counts[k])
        if count > 1:
            return Cluster(
                id=record_id,
                latitude=y_to_lat(level.y[k]),
                longitude=x_to_lng(level.x[k]),
                point_count=count,
                generation=self.generation,
            )
        point = self.points[record_id]
        return Cluster(
            id=record_id,
            latitude=point.latitude,
            longitude=point.longitude,
            point_count=1,
            generation=self.generation,
            point=point,
        )

    def _check_id(self, cluster_id: Any) -> int:
        if isinstance(cluster_id, bool) or not isinstance(cluster_id, (int, np.integer)):
            raise UnknownClusterIdError(cluster_id, "Cluster ids are integers")
        cluster_id = int(cluster_id)
        if cluster_id < 0:
            raise UnknownClusterIdError(cluster_id)
        return cluster_id

    def _decode(self, cluster_id: int) -> Tuple[int, int]:
        offset = cluster_id - len(self.points)
        return offset >> ZOOM_BITS, offset % (1 << ZOOM_BITS)


def _normalize_bbox(bbox: BoundingBox) -> Tuple[Tuple[float, float, float, float], ...]:
    """
    Split a bounding box into one or two boxes inside [-180, 180].

    Non-finite edges yield no boxes (an empty result, not an error).
    """
    values = tuple(float(v) for v in bbox.as_tuple())
    if not all(math.isfinite(v) for v in values):
        return ()

    west, south, east, north = values
    south = max(-90.0, min(90.0, south))
    north = max(-90.0, min(90.0, north))

    if east - west >= 360.0:
        west, east = -180.0, 180.0
    else:
        west = wrap_longitude(west)
        east = wrap_longitude(east)

    if west > east:
        return ((west, south, 180.0, north), (-180.0, south, east, north))
    return ((west, south, east, north),)


def build_index(
    points: Sequence[Point],
    config: Optional[ClusterConfig] = None,
    *,
    allow_empty: bool = True,
) -> ClusterIndex:
    """Convenience function for :meth:`ClusterIndex.build`."""
    return ClusterIndex.build(points, config, allow_empty=allow_empty)


__all__ = [
    "ClusterConfig",
    "ClusterIndex",
    "DEFAULT_SCREEN_WIDTH",
    "MAX_SUPPORTED_ZOOM",
    "RADIUS_SCREEN_RATIO",
    "build_index",
    "next_generation",
    "radius_for_screen_width",
]
