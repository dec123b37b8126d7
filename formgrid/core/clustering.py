"""
Coordinate clustering for grid-line discovery.

Ruled forms rarely draw a boundary at exactly one coordinate: strokes are
split into segments, doubled, or jittered by rasterization. Clustering merges
those near-duplicates into a single grid line per boundary.
"""

from typing import Iterable, List
import math

from formgrid.utils.exceptions import ConfigurationError, ValidationError


def cluster_coordinates(values: Iterable[float], threshold: float) -> List[float]:
    """Merge near-duplicate coordinates into ascending grid-line positions.

    The first value of each cluster is kept; a new cluster starts whenever the
    next sorted value exceeds the last kept value by more than ``threshold``.

    Args:
        values: Unordered coordinates along one axis
        threshold: Maximum distance still considered the same line

    Returns:
        Ascending list where consecutive values differ by more than threshold
    """
    if values is None:
        raise ValidationError("values must not be None")
    if threshold is None or threshold < 0 or math.isnan(threshold):
        raise ConfigurationError(f"Cluster threshold must be non-negative, got {threshold}")

    ordered = sorted(_check_coordinate(v) for v in values)
    if not ordered:
        return []

    merged = [ordered[0]]
    for value in ordered[1:]:
        if value - merged[-1] > threshold:
            merged.append(value)
    return merged


def _check_coordinate(value) -> float:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Coordinates must be numbers, got {value!r}")
    if math.isnan(value):
        raise ValidationError("Coordinates must not be NaN")
    return float(value)


def grid_pairs(boundaries: List[float]) -> List[tuple]:
    """Consecutive (start, end) pairs of a grid-line set."""
    return list(zip(boundaries, boundaries[1:]))
