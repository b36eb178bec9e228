"""Cluster expansion: from a pressed cluster to its original points."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..spatial.errors import UnknownClusterIdError
from ..spatial.index import ClusterIndex
from ..spatial.models import BoundingBox, Cluster, Point
from ..viewport.geometry import enclosing_bounding_box


@dataclass(frozen=True)
class ExpansionResult:
    """
    Result of expanding a cluster ("cluster pressed").

    Attributes:
        cluster: The expanded cluster
        leaves: Its original points
        bbox: Smallest box containing every leaf (for fitting the view)
        expansion_zoom: Zoom at which the cluster splits, for aggregates
    """
    cluster: Cluster
    leaves: Tuple[Point, ...]
    bbox: Optional[BoundingBox]
    expansion_zoom: Optional[int] = None

    @property
    def coordinates(self) -> List[Tuple[float, float]]:
        return [leaf.coordinate for leaf in self.leaves]

    @property
    def source_indices(self) -> List[int]:
        return [leaf.source_index for leaf in self.leaves]


class ClusterExpansionHandler:
    """Expands clusters of one index generation. Performs no mutation."""

    def __init__(self, index: ClusterIndex):
        self.index = index

    def expand(self, cluster: Cluster) -> ExpansionResult:
        """
        Return every leaf under ``cluster`` and the box enclosing them.

        Raises:
            UnknownClusterIdError: If ``cluster`` comes from another generation
        """
        if cluster.generation != self.index.generation:
            raise UnknownClusterIdError(
                cluster.id,
                f"Cluster belongs to generation {cluster.generation}, "
                f"current index is generation {self.index.generation}",
            )

        leaves = self.index.get_leaves(cluster.id)
        expansion_zoom = (
            self.index.get_cluster_expansion_zoom(cluster.id) if cluster.is_cluster else None
        )
        return ExpansionResult(
            cluster=cluster,
            leaves=leaves,
            bbox=enclosing_bounding_box(leaf.coordinate for leaf in leaves),
            expansion_zoom=expansion_zoom,
        )


__all__ = ["ClusterExpansionHandler", "ExpansionResult"]
