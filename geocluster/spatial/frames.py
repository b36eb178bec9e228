"""Point ingestion from tabular/mapping input and cluster export to pandas."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .models import Cluster, Point


_LAT_KEYS = ("lat", "latitude")
_LNG_KEYS = ("lng", "lon", "longitude")

CLUSTER_COLUMNS = ["id", "lat", "lng", "point_count", "is_cluster", "source_index", "radius"]


def _first_present(record: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    coordinate = record.get("coordinate")
    if isinstance(coordinate, Mapping):
        for key in keys:
            if key in coordinate:
                return coordinate[key]
    return None


def _record_to_point(record: Any, index: int) -> Point:
    if isinstance(record, Point):
        return Point(record.latitude, record.longitude, index, record.radius, record.properties)

    if isinstance(record, Mapping):
        lat = _first_present(record, _LAT_KEYS)
        lng = _first_present(record, _LNG_KEYS)
        radius = record.get("radius")
        properties = {
            key: value
            for key, value in record.items()
            if key not in _LAT_KEYS + _LNG_KEYS + ("coordinate", "radius")
        }
    elif isinstance(record, (tuple, list)) and len(record) == 2:
        lat, lng = record
        radius = None
        properties = {}
    else:
        raise ValueError(f"Cannot read a point from {type(record).__name__} at position {index}.")

    if lat is None or lng is None:
        raise ValueError(f"Point at position {index} is missing its latitude or longitude.")

    lat, lng = float(lat), float(lng)
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValueError(f"Point at position {index} has non-finite coordinates ({lat}, {lng}).")

    if radius is not None:
        radius = float(radius)
        if math.isnan(radius):
            radius = None

    return Point(lat, lng, index, radius, properties)


def points_from_dataframe(
    df: pd.DataFrame,
    lat_col: str = "lat",
    lng_col: str = "lng",
    radius_col: str = "radius",
) -> List[Point]:
    """
    Convert a DataFrame into points, one per row in row order.

    Columns other than the coordinate/radius columns are kept as the
    point's ``properties``.

    Raises:
        ValueError: If coordinate columns are missing or hold non-finite values
    """
    missing = {lat_col, lng_col} - set(df.columns)
    if missing:
        raise ValueError(f"Missing required coordinate columns: {sorted(missing)}")

    lats = df[lat_col].astype(float).to_numpy()
    lngs = df[lng_col].astype(float).to_numpy()
    bad = ~(np.isfinite(lats) & np.isfinite(lngs))
    if bad.any():
        raise ValueError(f"{int(bad.sum())} row(s) have missing or non-finite coordinates.")

    radii = df[radius_col].astype(float).to_numpy() if radius_col in df.columns else None
    extra = [c for c in df.columns if c not in (lat_col, lng_col, radius_col)]
    records = df[extra].to_dict(orient="records") if extra else [{} for _ in range(len(df))]

    points = []
    for i in range(len(df)):
        radius = None
        if radii is not None and not np.isnan(radii[i]):
            radius = float(radii[i])
        points.append(Point(float(lats[i]), float(lngs[i]), i, radius, records[i]))
    return points


def coerce_points(data: Any) -> List[Point]:
    """
    Return ``data`` as a list of points whose ``source_index`` is their position.

    Accepts a DataFrame, or any iterable of :class:`Point`, mappings with
    ``lat``/``lng`` (or ``latitude``/``longitude``, or a nested
    ``coordinate``) or ``(latitude, longitude)`` pairs.
    """
    if data is None:
        return []
    if isinstance(data, pd.DataFrame):
        return points_from_dataframe(data)
    return [_record_to_point(record, i) for i, record in enumerate(data)]


def clusters_to_dataframe(clusters: Sequence[Cluster]) -> pd.DataFrame:
    """Export a cluster list with one row per cluster or leaf."""
    rows: List[Dict[str, Any]] = []
    for cluster in clusters:
        rows.append(
            {
                "id": cluster.id,
                "lat": cluster.latitude,
                "lng": cluster.longitude,
                "point_count": cluster.point_count,
                "is_cluster": cluster.is_cluster,
                "source_index": cluster.source_index,
                "radius": cluster.point.radius if cluster.point is not None else None,
            }
        )

    if not rows:
        return pd.DataFrame(columns=CLUSTER_COLUMNS)

    df = pd.DataFrame(rows, columns=CLUSTER_COLUMNS)
    df.attrs["generation"] = clusters[0].generation
    return df


__all__ = [
    "CLUSTER_COLUMNS",
    "clusters_to_dataframe",
    "coerce_points",
    "points_from_dataframe",
]
