"""Spherical projection, recursive subdivision, and radial extrusion.

Triangles are carried as ``(T, 3, 3)`` arrays: triangle, corner, xyz.
"""

import math
import logging

import numpy as np

from .constants import VERY_LARGE_REGIONS, LARGE_REGIONS

logger = logging.getLogger(__name__)


# ── Projection ──────────────────────────────────────────────────────────

def lat_lng_to_vector3(lat: float, lng: float, radius: float = 1.0) -> np.ndarray:
    """Project a single (lat, lng) in degrees onto a sphere of ``radius``.

    phi is the polar angle from the north pole; theta is the azimuth,
    negated and offset by 180 degrees. Label placement and camera framing
    in the viewer use the same convention, so it must not change.
    """
    phi = (90.0 - lat) * math.pi / 180.0
    theta = -(lng + 180.0) * math.pi / 180.0
    return np.array([
        radius * math.sin(phi) * math.cos(theta),
        radius * math.cos(phi),
        radius * math.sin(phi) * math.sin(theta),
    ])


def project_lon_lat(coords, radius: float = 1.0) -> np.ndarray:
    """Vectorized ``lat_lng_to_vector3`` over an ``(N, 2)`` (lon, lat) array."""
    coords = np.asarray(coords, dtype=np.float64).reshape(-1, 2)
    phi = (90.0 - coords[:, 1]) * np.pi / 180.0
    theta = -(coords[:, 0] + 180.0) * np.pi / 180.0
    return np.column_stack([
        radius * np.sin(phi) * np.cos(theta),
        radius * np.cos(phi),
        radius * np.sin(phi) * np.sin(theta),
    ])


def project_to_sphere(points: np.ndarray, radius: float) -> np.ndarray:
    """Rescale points (last axis xyz) so each lies at ``radius``."""
    lengths = np.linalg.norm(points, axis=-1, keepdims=True)
    return points / lengths * radius


# ── Triangles ───────────────────────────────────────────────────────────

def triangles_from_indices(vertices: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Gather ``(T, 3)`` index triples into a ``(T, 3, 3)`` triangle array."""
    return np.asarray(vertices)[np.asarray(indices, dtype=np.int64)].reshape(-1, 3, 3)


def orient_outward(triangles: np.ndarray) -> np.ndarray:
    """Rewind triangles whose geometric normal points toward the origin."""
    triangles = np.array(triangles, dtype=np.float64).reshape(-1, 3, 3)
    v0, v1, v2 = triangles[:, 0], triangles[:, 1], triangles[:, 2]
    normals = np.cross(v1 - v0, v2 - v0)
    inward = np.einsum('ij,ij->i', normals, v0 + v1 + v2) < 0
    triangles[inward] = triangles[inward][:, [0, 2, 1]]
    return triangles


def subdivide_triangles(triangles: np.ndarray, level: int, radius: float) -> np.ndarray:
    """Split every triangle into four, ``level`` times.

    Edge midpoints are pushed back out to ``radius``; a straight midpoint
    sits inside the sphere and large triangles would visibly sag. Children
    of one parent stay adjacent and keep the parent's winding.
    """
    current = np.asarray(triangles, dtype=np.float64).reshape(-1, 3, 3)

    for _ in range(level):
        v0, v1, v2 = current[:, 0], current[:, 1], current[:, 2]
        m01 = project_to_sphere((v0 + v1) * 0.5, radius)
        m12 = project_to_sphere((v1 + v2) * 0.5, radius)
        m20 = project_to_sphere((v2 + v0) * 0.5, radius)

        children = np.stack([
            np.stack([v0, m01, m20], axis=1),
            np.stack([m01, v1, m12], axis=1),
            np.stack([m20, m12, v2], axis=1),
            np.stack([m01, m12, m20], axis=1),
        ], axis=1)
        current = children.reshape(-1, 3, 3)

    return current


# ── Subdivision level selection ─────────────────────────────────────────

def size_class(region_name: str) -> str:
    key = region_name.strip().lower()
    if key in VERY_LARGE_REGIONS:
        return 'very_large'
    if key in LARGE_REGIONS:
        return 'large'
    return 'default'


def subdivision_level(region_name: str, levels: dict) -> int:
    """Static subdivision level for a region's declared size class."""
    return int(levels.get(size_class(region_name), levels.get('default', 0)))


def max_edge_angle(triangles: np.ndarray) -> float:
    """Largest angle in degrees subtended at the origin by any triangle edge."""
    triangles = np.asarray(triangles, dtype=np.float64).reshape(-1, 3, 3)
    if len(triangles) == 0:
        return 0.0
    unit = triangles / np.linalg.norm(triangles, axis=-1, keepdims=True)
    worst = 0.0
    for a, b in ((0, 1), (1, 2), (2, 0)):
        cos = np.clip(np.einsum('ij,ij->i', unit[:, a], unit[:, b]), -1.0, 1.0)
        worst = max(worst, float(np.degrees(np.arccos(cos)).max()))
    return worst


def adaptive_subdivision_level(triangles: np.ndarray, max_edge_degrees: float,
                               max_level: int) -> int:
    """Levels needed so the largest edge falls below ``max_edge_degrees``.

    Each level roughly halves edge angles.
    """
    angle = max_edge_angle(triangles)
    if angle <= max_edge_degrees or max_edge_degrees <= 0:
        return 0
    level = math.ceil(math.log2(angle / max_edge_degrees))
    return int(min(max(level, 0), max_level))


# ── Extrusion ───────────────────────────────────────────────────────────

def extrude_triangles(triangles: np.ndarray, height: float):
    """Offset every vertex outward by ``height`` along its radial direction.

    Returns ``(positions, normals, indices)`` for the top face only, three
    unshared vertices per triangle. Normals are the pre-extrusion radial
    directions.
    """
    triangles = np.asarray(triangles, dtype=np.float64).reshape(-1, 3, 3)
    vertices = triangles.reshape(-1, 3)
    normals = vertices / np.linalg.norm(vertices, axis=1, keepdims=True)
    positions = vertices + normals * height
    indices = np.arange(len(vertices), dtype=np.int64).reshape(-1, 3)
    return positions, normals, indices
