"""
Exception hierarchy for the clustering engine.

Configuration problems are raised eagerly. Geometry edge cases are never
raised; they are normalised by the viewport and index code instead.
"""

from typing import List, Optional


class GeoClusterError(Exception):
    """Base class for all clustering errors."""


class EmptyInputError(GeoClusterError, ValueError):
    """Raised when a non-empty index is required but no points were given."""


class UnknownClusterIdError(GeoClusterError, KeyError):
    """Raised when a cluster id does not belong to the current index generation."""

    def __init__(self, cluster_id: int, reason: str = "No cluster with the specified id"):
        self.cluster_id = cluster_id
        self.reason = reason
        super().__init__(cluster_id)

    def __str__(self) -> str:
        return f"{self.reason}: {self.cluster_id}"


class InvalidConfigurationError(GeoClusterError, ValueError):
    """Raised when a ClusterConfig violates its invariants."""

    def __init__(self, problems: List[str], suggestions: Optional[List[str]] = None):
        self.problems = list(problems)
        self.suggestions = list(suggestions or [])

        msg_parts = ["Invalid clustering configuration:"]
        msg_parts.extend(f"  - {problem}" for problem in self.problems)
        if self.suggestions:
            msg_parts.extend(["", "Suggestions to fix this:"])
            msg_parts.extend(f"  {i}. {tip}" for i, tip in enumerate(self.suggestions, 1))

        super().__init__("\n".join(msg_parts))
