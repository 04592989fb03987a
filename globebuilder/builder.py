"""GlobeBuilder: thin orchestrator that delegates to focused modules."""

import logging
import pathlib
import random
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .models import BuildSettings, BuildResult, RegionResult
from .regions import process_region_file, resolve_region_color
from . import glb as glb_mod

logger = logging.getLogger(__name__)

REGION_SUFFIXES = ('.json', '.geojson')


def discover_region_files(directory) -> list:
    """Sorted region files (one feature collection each) in ``directory``."""
    directory = pathlib.Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Region directory not found: {directory}")
    return sorted(p for p in directory.iterdir()
                  if p.is_file() and p.suffix.lower() in REGION_SUFFIXES)


def _safe_process(path: pathlib.Path, settings: BuildSettings, color) -> RegionResult:
    """Process one region; any failure becomes a failed result."""
    try:
        return process_region_file(path, settings, color)
    except Exception as e:
        logger.error(f"  ✗ Error processing {path.name}: {e}")
        return RegionResult(name=path.stem, color=tuple(color), error=str(e))


class GlobeBuilder:
    def __init__(self, settings: Optional[BuildSettings] = None):
        self.settings = settings or BuildSettings()

    def assign_colors(self, region_files, color_map: dict) -> list:
        """One color per region, in region order, from a run-scoped RNG.

        ``settings.seed`` of ``None`` leaves the fallback choice unseeded.
        """
        rng = random.Random(self.settings.seed)
        return [resolve_region_color(pathlib.Path(p).stem, color_map, rng)
                for p in region_files]

    def process_regions(self, region_files, colors) -> list:
        """Run every region through the mesh pipeline.

        With more than one worker, regions fan out to a thread pool;
        ``map`` hands results back in region order either way.
        """
        paths = [pathlib.Path(p) for p in region_files]
        settings = [self.settings] * len(paths)
        if self.settings.workers <= 1:
            return list(map(_safe_process, paths, settings, colors))
        with ThreadPoolExecutor(max_workers=self.settings.workers) as executor:
            return list(executor.map(_safe_process, paths, settings, colors))

    def build(self, region_files, output_path, color_map: Optional[dict] = None,
              progress_callback=None) -> BuildResult:
        """Build the globe asset. Returns the run's ``BuildResult``.

        Region failures are recorded and skipped; a packing or write
        failure raises ``SceneWriteError``.
        """
        def _progress(pct, msg):
            if progress_callback:
                progress_callback(pct, msg)

        t0 = time.perf_counter()
        region_files = list(region_files)
        logger.info(f"Found {len(region_files)} regions")

        _progress(0, "Assigning region colors...")
        colors = self.assign_colors(region_files, color_map or {})

        _progress(5, f"Meshing {len(region_files)} regions...")
        result = BuildResult()
        for region_result in self.process_regions(region_files, colors):
            result.add(region_result)

        logger.info(f"✓ Processed {result.regions_processed} regions "
                    f"({result.regions_failed} failed)")
        logger.info(f"✓ Total vertices: {result.total_vertices:,}")

        _progress(80, "Packing scene...")
        scene, _ = glb_mod.build_scene(result.fragments,
                                       quantize=self.settings.quantize,
                                       bits=self.settings.quantize_bits)

        _progress(90, "Writing GLB...")
        bits = self.settings.quantize_bits if self.settings.quantize else None
        path = glb_mod.write_scene(scene, output_path, bits=bits)
        result.output_path = str(path)
        result.file_size = path.stat().st_size
        result.manifest_path = str(glb_mod.write_manifest(
            result.regions, path, self.settings.radius))

        _progress(100, "Done")
        logger.info(f"Globe build finished in {time.perf_counter() - t0:.1f}s")
        return result
