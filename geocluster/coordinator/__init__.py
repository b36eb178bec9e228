"""Region change coordination and cluster expansion."""

from .expansion import ClusterExpansionHandler, ExpansionResult
from .region import RegionChangeCoordinator, RegionUpdate

__all__ = [
    "ClusterExpansionHandler",
    "ExpansionResult",
    "RegionChangeCoordinator",
    "RegionUpdate",
]
