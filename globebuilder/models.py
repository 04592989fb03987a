"""Data classes for regions, mesh fragments, and build settings."""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .constants import (GLOBE_RADIUS, EXTRUSION_HEIGHT, SIMPLIFICATION_TOLERANCE,
                        SUBDIVISION_LEVELS, QUANTIZE_BITS,
                        ADAPTIVE_MAX_EDGE_DEGREES, ADAPTIVE_MAX_LEVEL)


@dataclass
class BuildSettings:
    """Per-run knobs. Defaults come from ``constants``."""
    radius: float = GLOBE_RADIUS
    extrusion_height: float = EXTRUSION_HEIGHT
    tolerance: float = SIMPLIFICATION_TOLERANCE
    subdivision_levels: dict = field(default_factory=lambda: dict(SUBDIVISION_LEVELS))
    adaptive_subdivision: bool = False
    adaptive_max_edge_degrees: float = ADAPTIVE_MAX_EDGE_DEGREES
    adaptive_max_level: int = ADAPTIVE_MAX_LEVEL
    quantize: bool = True
    quantize_bits: dict = field(default_factory=lambda: dict(QUANTIZE_BITS))
    seed: Optional[int] = None
    workers: int = 1


@dataclass
class Region:
    """A named geographic entity read from one feature-collection file."""
    name: str
    features: list


@dataclass(frozen=True)
class MeshFragment:
    """Unshared-vertex triangle mesh for one polygon feature.

    ``positions`` and ``normals`` are ``(N, 3)`` float arrays, ``indices``
    is ``(T, 3)`` over the local vertices, ``color`` is one RGB triple in
    0-1 shared by every vertex.
    """
    positions: np.ndarray
    normals: np.ndarray
    indices: np.ndarray
    color: tuple = (0.8, 0.8, 0.8)

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def face_count(self) -> int:
        return len(self.indices)

    def vertex_colors(self) -> np.ndarray:
        """Broadcast the flat color to every vertex."""
        return np.tile(np.asarray(self.color, dtype=np.float64), (self.vertex_count, 1))


@dataclass
class RegionResult:
    """Fragments produced for one region, in feature order."""
    name: str
    color: tuple
    fragments: list = field(default_factory=list)   # [(node_name, MeshFragment)]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def vertex_count(self) -> int:
        return sum(frag.vertex_count for _, frag in self.fragments)


@dataclass
class BuildResult:
    """Run-wide accumulator threaded through the build."""
    regions_processed: int = 0
    regions_failed: int = 0
    total_vertices: int = 0
    fragments: list = field(default_factory=list)   # [(node_name, MeshFragment)]
    regions: list = field(default_factory=list)     # [RegionResult]
    output_path: Optional[str] = None
    manifest_path: Optional[str] = None
    file_size: int = 0

    def add(self, result: RegionResult) -> None:
        self.regions.append(result)
        if not result.ok:
            self.regions_failed += 1
            return
        self.regions_processed += 1
        self.fragments.extend(result.fragments)
        self.total_vertices += result.vertex_count
