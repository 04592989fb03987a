"""Planar ring handling: simplification and ear-clipping triangulation.

Both steps run in raw longitude/latitude degrees. The distortion this
introduces is corrected later by spherical subdivision.
"""

import logging

import numpy as np
import mapbox_earcut as earcut
from shapely.geometry import LineString

logger = logging.getLogger(__name__)


def ring_to_array(ring) -> np.ndarray:
    """Convert a GeoJSON ring to an ``(N, 2)`` float array of (lon, lat).

    Extra ordinates (altitude) are dropped. Raises ``ValueError`` for
    anything that is not a list of coordinate pairs.
    """
    try:
        coords = np.array([(float(p[0]), float(p[1])) for p in ring], dtype=np.float64)
    except (TypeError, IndexError) as e:
        raise ValueError(f"Malformed ring: {e}") from e
    return coords.reshape(-1, 2)


def _is_closed(coords: np.ndarray) -> bool:
    return len(coords) > 1 and np.array_equal(coords[0], coords[-1])


def open_ring(coords: np.ndarray) -> np.ndarray:
    """Drop the closing duplicate vertex, if present."""
    if _is_closed(coords):
        return coords[:-1]
    return coords


def simplify_ring(coords, tolerance: float) -> np.ndarray:
    """Douglas-Peucker simplification of a closed ring.

    The ring is simplified as a closed polyline, so the first vertex and
    the closing vertex are kept as endpoints. A tolerance of 0 returns the
    input unchanged. The result keeps the closure of the input.
    """
    coords = np.asarray(coords, dtype=np.float64).reshape(-1, 2)
    if tolerance <= 0 or len(coords) < 3:
        return coords

    closed = _is_closed(coords)
    line = coords if closed else np.vstack([coords, coords[:1]])
    simplified = np.asarray(
        LineString(line).simplify(tolerance, preserve_topology=False).coords,
        dtype=np.float64,
    ).reshape(-1, 2)

    if not closed:
        simplified = open_ring(simplified)
    return simplified


def triangulate_ring(coords: np.ndarray) -> np.ndarray:
    """Ear-clip an open ``(N, 2)`` ring into ``(T, 3)`` vertex indices.

    Holes are not modeled. Self-intersecting rings give undefined (but
    non-crashing) output. Degenerate rings return an empty array.
    """
    coords = np.ascontiguousarray(coords, dtype=np.float64).reshape(-1, 2)
    if len(coords) < 3:
        return np.zeros((0, 3), dtype=np.int64)

    ring_ends = np.array([len(coords)], dtype=np.uint32)
    indices = earcut.triangulate_float64(coords, ring_ends)
    return np.asarray(indices, dtype=np.int64).reshape(-1, 3)
