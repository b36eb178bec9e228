"""
Region change coordination: from viewport events to cluster lists.

The coordinator owns the current index generation. It has two states:

- Unbuilt: no points loaded yet; region changes return the viewport only.
- Ready: an index (or a pass-through point list when clustering is
  disabled) is available; region changes return the visible clusters.

Loading builds a complete snapshot first and swaps it in under a lock, so a
query never sees a half-built index. When loads overlap, the most recently
requested one wins and superseded builds are discarded.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from ..spatial.errors import EmptyInputError, UnknownClusterIdError
from ..spatial.frames import coerce_points
from ..spatial.index import ClusterConfig, ClusterIndex, next_generation
from ..spatial.models import BoundingBox, Cluster, Point
from ..viewport.geometry import (
    Viewport,
    compute_bounding_box,
    compute_zoom,
    enclosing_bounding_box,
)
from .expansion import ClusterExpansionHandler, ExpansionResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionUpdate:
    """
    Result of a region change ("region change complete").

    Attributes:
        viewport: The region the clusters were computed for
        clusters: Visible clusters and leaves (empty while Unbuilt)
        bbox: Bounding box used for the query
        zoom: Zoom level used for the query
        generation: Index generation, None while Unbuilt
        markers_changed: Whether the cluster list differs from the last one
            delivered ("markers changed")
    """
    viewport: Viewport
    clusters: Tuple[Cluster, ...] = ()
    bbox: Optional[BoundingBox] = None
    zoom: Optional[int] = None
    generation: Optional[int] = None
    markers_changed: bool = False

    @property
    def is_ready(self) -> bool:
        return self.generation is not None


@dataclass(frozen=True)
class _Snapshot:
    """Everything a query needs from one generation."""
    generation: int
    config: ClusterConfig
    points: Tuple[Point, ...]
    index: Optional[ClusterIndex] = None
    passthrough: Tuple[Cluster, ...] = ()


class RegionChangeCoordinator:
    """
    Recompute the visible clusters on every viewport change.

    Example:
        >>> coordinator = RegionChangeCoordinator(ClusterConfig(radius=40))
        >>> coordinator.load([(35.68, 139.76), (35.69, 139.70)])
        >>> update = coordinator.on_region_change(Viewport(35.68, 139.7, 0.5, 0.5))
        >>> [c.point_count for c in update.clusters]
    """

    def __init__(
        self,
        config: Optional[ClusterConfig] = None,
        region: Optional[Any] = None,
        *,
        allow_empty: bool = True,
    ):
        """
        Initialize the coordinator.

        Args:
            config: Clustering configuration (defaults if None)
            region: Initial viewport, if the map already shows one
            allow_empty: When False, loading zero points raises EmptyInputError
        """
        self.config = (config or ClusterConfig()).validate()
        self.allow_empty = allow_empty

        self._lock = threading.Lock()
        self._delivery_lock = threading.Lock()
        self._snapshot: Optional[_Snapshot] = None
        self._region: Optional[Viewport] = Viewport.from_region(region) if region is not None else None
        self._last_delivered: Optional[Tuple] = None
        self._requested = 0
        self._executor: Optional[ThreadPoolExecutor] = None

    # ---- state ----

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    @property
    def state(self) -> str:
        return "ready" if self.is_ready else "unbuilt"

    @property
    def generation(self) -> Optional[int]:
        snapshot = self._snapshot
        return snapshot.generation if snapshot is not None else None

    @property
    def index(self) -> Optional[ClusterIndex]:
        """Current index, or None while Unbuilt or when clustering is disabled."""
        snapshot = self._snapshot
        return snapshot.index if snapshot is not None else None

    @property
    def points(self) -> Tuple[Point, ...]:
        snapshot = self._snapshot
        return snapshot.points if snapshot is not None else ()

    @property
    def region(self) -> Optional[Viewport]:
        return self._region

    # ---- loading ----

    def load(self, points: Any, config: Optional[ClusterConfig] = None) -> Optional[RegionUpdate]:
        """
        Build a new generation from ``points`` and make it current.

        Returns:
            The cluster list for the last known region, or None when no
            region is known yet or this load was superseded by a newer one

        Raises:
            InvalidConfigurationError: If the configuration is invalid
            EmptyInputError: If ``points`` is empty and ``allow_empty`` is False
        """
        config = (config or self.config).validate()
        return self._load(self._next_request(), points, config)

    def load_in_background(
        self,
        points: Any,
        config: Optional[ClusterConfig] = None,
        executor: Optional[Executor] = None,
    ) -> "Future[Optional[RegionUpdate]]":
        """
        Run :meth:`load` on a worker; the current generation keeps serving
        queries until the new one is swapped in.
        """
        config = (config or self.config).validate()
        request = self._next_request()
        if executor is None:
            executor = self._default_executor()
        return executor.submit(self._load, request, points, config)

    def set_config(self, config: ClusterConfig) -> Optional[RegionUpdate]:
        """Rebuild the current points with a new configuration."""
        config = config.validate()
        if not self.is_ready:
            self.config = config
            return None
        return self.load(self.points, config)

    def close(self) -> None:
        """Shut down the background build worker, if one was started."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def _default_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="geocluster-build")
            return self._executor

    def _next_request(self) -> int:
        with self._lock:
            self._requested += 1
            return self._requested

    def _load(self, request: int, points: Any, config: ClusterConfig) -> Optional[RegionUpdate]:
        snapshot = self._build_snapshot(points, config)

        # No region change may be delivered between the swap and the replay
        with self._delivery_lock:
            with self._lock:
                if request != self._requested:
                    logger.debug(
                        "Discarding generation %d: superseded by a newer load request",
                        snapshot.generation,
                    )
                    return None
                self._snapshot = snapshot
                self.config = config
                region = self._region

            logger.debug("Generation %d is now current (%d points)", snapshot.generation, len(snapshot.points))
            if region is None:
                return None
            return self._deliver(snapshot, region)

    def _build_snapshot(self, points: Any, config: ClusterConfig) -> _Snapshot:
        try:
            points = tuple(coerce_points(points))
            if not config.clustering_enabled:
                generation = next_generation()
                passthrough = tuple(
                    Cluster(
                        id=i,
                        latitude=point.latitude,
                        longitude=point.longitude,
                        point_count=1,
                        generation=generation,
                        point=point,
                    )
                    for i, point in enumerate(points)
                )
                return _Snapshot(generation, config, points, passthrough=passthrough)

            index = ClusterIndex.build(points, config, allow_empty=self.allow_empty)
            return _Snapshot(index.generation, config, index.points, index=index)
        except EmptyInputError:
            raise
        except Exception:
            logger.exception("Cluster index build failed; serving an empty cluster list")
            return _Snapshot(next_generation(), config, ())

    # ---- events ----

    def on_region_change(self, region: Any) -> RegionUpdate:
        """
        Compute the clusters visible in ``region``.

        Never raises for geometry or query problems: those are logged and
        answered with an empty cluster list.
        """
        viewport = Viewport.from_region(region)

        with self._delivery_lock:
            snapshot = self._snapshot
            if snapshot is None:
                with self._lock:
                    self._region = viewport
                return RegionUpdate(viewport=viewport)
            return self._deliver(snapshot, viewport)

    def _deliver(self, snapshot: _Snapshot, viewport: Viewport) -> RegionUpdate:
        # Caller holds _delivery_lock
        config = snapshot.config
        bbox: Optional[BoundingBox] = None
        zoom: Optional[int] = None
        clusters: Tuple[Cluster, ...] = ()
        try:
            bbox = compute_bounding_box(viewport)
            zoom = compute_zoom(viewport, bbox, config.min_zoom, config.max_zoom)
            if not config.clustering_enabled:
                clusters = snapshot.passthrough
            elif snapshot.index is not None:
                clusters = snapshot.index.get_clusters(bbox, zoom)
        except Exception:
            logger.exception("Cluster query failed for %r; serving an empty cluster list", viewport)
            clusters = ()

        delivered = (snapshot.generation, tuple((c.id, c.point_count) for c in clusters))
        with self._lock:
            markers_changed = delivered != self._last_delivered
            self._last_delivered = delivered
            self._region = viewport

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Region change: zoom=%s, %d clusters (generation %d, changed=%s)",
                zoom,
                len(clusters),
                snapshot.generation,
                markers_changed,
            )

        return RegionUpdate(
            viewport=viewport,
            clusters=clusters,
            bbox=bbox,
            zoom=zoom,
            generation=snapshot.generation,
            markers_changed=markers_changed,
        )

    def expand(self, cluster: Cluster) -> ExpansionResult:
        """
        Expand a pressed cluster into its leaves ("cluster pressed").

        Raises:
            UnknownClusterIdError: If ``cluster`` is not from the current generation
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise UnknownClusterIdError(cluster.id, "No points have been loaded")

        if snapshot.index is not None:
            return ClusterExpansionHandler(snapshot.index).expand(cluster)

        if cluster.generation != snapshot.generation or not 0 <= cluster.id < len(snapshot.passthrough):
            raise UnknownClusterIdError(cluster.id)

        point = snapshot.points[cluster.id]
        return ExpansionResult(
            cluster=cluster,
            leaves=(point,),
            bbox=enclosing_bounding_box([point.coordinate]),
        )


__all__ = ["RegionChangeCoordinator", "RegionUpdate"]
