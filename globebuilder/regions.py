"""Region loading, color resolution, and feature-to-fragment assembly."""

import json
import logging
import pathlib
import random
from typing import Optional

import numpy as np

from .constants import FALLBACK_PALETTE
from .models import BuildSettings, MeshFragment, Region, RegionResult
from .geometry import ring_to_array, simplify_ring, open_ring, triangulate_ring
from .sphere import (project_lon_lat, triangles_from_indices, orient_outward,
                     subdivide_triangles, extrude_triangles, subdivision_level,
                     adaptive_subdivision_level)

logger = logging.getLogger(__name__)

SUPPORTED_GEOMETRIES = ('Polygon', 'MultiPolygon')


class RegionLoadError(ValueError):
    """A region file could not be read or is not a feature collection."""


# ── Loading ─────────────────────────────────────────────────────────────

def load_region(path) -> Region:
    """Read one feature-collection file. The file stem is the region key."""
    path = pathlib.Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise RegionLoadError(f"Cannot read {path.name}: {e}") from e

    if not isinstance(data, dict) or data.get('type') != 'FeatureCollection':
        raise RegionLoadError(f"{path.name} is not a FeatureCollection")
    features = data.get('features')
    if not isinstance(features, list):
        raise RegionLoadError(f"{path.name} has no feature list")

    return Region(name=path.stem, features=features)


def load_color_map(path) -> dict:
    """Load the optional display-name → RGB sidecar.

    Key order from the file is kept; it decides ties in ``match_color``.
    A missing or unreadable file yields an empty mapping.
    """
    if path is None:
        return {}
    path = pathlib.Path(path)
    if not path.exists():
        logger.info(f"No color map at {path}, using fallback palette")
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable color map {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring color map {path}: expected an object")
        return {}

    colors = {}
    for name, rgb in data.items():
        try:
            r, g, b = (float(c) for c in rgb)
        except (TypeError, ValueError):
            logger.warning(f"Skipping color for {name!r}: {rgb!r}")
            continue
        colors[name] = (r, g, b)
    return colors


# ── Colors ──────────────────────────────────────────────────────────────

def _normalize_name(name: str) -> str:
    return ''.join(name.replace('_', ' ').lower().split())


def match_color(region_name: str, color_map: dict) -> Optional[tuple]:
    """First mapping entry whose name contains, or is contained in, the region key.

    Comparison ignores case, whitespace and underscores. Entries are
    tried in the mapping's own order.
    """
    key = _normalize_name(region_name)
    if not key:
        return None
    for name, rgb in color_map.items():
        candidate = _normalize_name(name)
        if candidate and (candidate in key or key in candidate):
            return tuple(rgb)
    return None


def resolve_region_color(region_name: str, color_map: dict,
                         rng: random.Random) -> tuple:
    """Custom color for the region, else a random palette tone."""
    color = match_color(region_name, color_map)
    if color is not None:
        logger.debug(f"{region_name}: custom color {color}")
        return color
    return tuple(rng.choice(FALLBACK_PALETTE))


# ── Assembly ────────────────────────────────────────────────────────────

def process_polygon(coordinates, settings: BuildSettings, level: Optional[int],
                    color=(0.8, 0.8, 0.8)) -> Optional[MeshFragment]:
    """Run one polygon's outer ring through the full mesh pipeline.

    Inner rings are ignored. Returns ``None`` when the ring degenerates.
    ``level`` of ``None`` derives the subdivision level from triangle size.
    """
    if not coordinates:
        return None
    ring = ring_to_array(coordinates[0])
    if len(ring) < 3:
        return None

    simplified = open_ring(simplify_ring(ring, settings.tolerance))
    if len(simplified) < 3:
        logger.debug(f"Ring collapsed to {len(simplified)} points")
        return None

    indices = triangulate_ring(simplified)
    if len(indices) == 0:
        logger.debug("Triangulation produced no triangles")
        return None

    vertices = project_lon_lat(simplified, settings.radius)
    triangles = orient_outward(triangles_from_indices(vertices, indices))

    if level is None:
        level = adaptive_subdivision_level(triangles,
                                           settings.adaptive_max_edge_degrees,
                                           settings.adaptive_max_level)
    triangles = subdivide_triangles(triangles, level, settings.radius)

    positions, normals, faces = extrude_triangles(triangles, settings.extrusion_height)
    return MeshFragment(positions, normals, faces, tuple(color))


def merge_fragments(fragments) -> Optional[MeshFragment]:
    """Concatenate fragments, re-basing each one's indices by the vertices before it."""
    fragments = [f for f in fragments if f is not None]
    if not fragments:
        return None

    offset = 0
    indices = []
    for frag in fragments:
        indices.append(frag.indices + offset)
        offset += frag.vertex_count

    return MeshFragment(
        positions=np.concatenate([f.positions for f in fragments]),
        normals=np.concatenate([f.normals for f in fragments]),
        indices=np.concatenate(indices),
        color=fragments[0].color,
    )


def process_feature(feature, settings: BuildSettings, level: Optional[int],
                    color) -> Optional[MeshFragment]:
    """Build the fragment for one Polygon or MultiPolygon feature.

    Other geometry types, and features with no geometry, give ``None``.
    """
    geometry = (feature or {}).get('geometry') or {}
    geom_type = geometry.get('type')
    coordinates = geometry.get('coordinates')

    if geom_type == 'Polygon':
        return process_polygon(coordinates, settings, level, color)
    if geom_type == 'MultiPolygon':
        parts = [process_polygon(polygon, settings, level, color)
                 for polygon in coordinates or []]
        return merge_fragments(parts)
    return None


def process_region(region: Region, settings: BuildSettings, color) -> RegionResult:
    """Turn every feature of a region into named fragments.

    A failing feature is logged and skipped; it never fails the region.
    """
    logger.info(f"Processing {region.name}...")
    level = None if settings.adaptive_subdivision else \
        subdivision_level(region.name, settings.subdivision_levels)

    result = RegionResult(name=region.name, color=tuple(color))
    for feature_idx, feature in enumerate(region.features):
        try:
            fragment = process_feature(feature, settings, level, color)
        except Exception as e:
            logger.warning(f"  Skipping {region.name}_{feature_idx}: {e}")
            continue
        if fragment is not None:
            result.fragments.append((f"{region.name}_{feature_idx}", fragment))

    logger.info(f"  ✓ {region.name}: {len(result.fragments)} geometries, "
                f"{result.vertex_count} vertices")
    return result


def process_region_file(path, settings: BuildSettings, color) -> RegionResult:
    """Load and process one region file, converting load failures to a result."""
    path = pathlib.Path(path)
    try:
        region = load_region(path)
    except RegionLoadError as e:
        logger.error(f"  ✗ Error processing {path.name}: {e}")
        return RegionResult(name=path.stem, color=tuple(color), error=str(e))
    return process_region(region, settings, color)
