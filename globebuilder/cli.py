"""Click CLI commands for GlobeBuilder."""

import logging
from typing import Optional

import click

from .builder import GlobeBuilder, discover_region_files
from .constants import COUNTRIES_DIR, COLOR_MAP_FILE, OUTPUT_FILE
from .glb import SceneWriteError, inspect_asset
from .models import BuildSettings
from .regions import load_color_map

logger = logging.getLogger(__name__)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def cli(verbose: bool):
    """GlobeBuilder CLI for packing country polygons into a 3D globe asset."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
@click.argument('countries_dir', required=False, type=click.Path(file_okay=False),
                default=str(COUNTRIES_DIR))
@click.option('--output', '-o', default=str(OUTPUT_FILE), help='Output GLB file path')
@click.option('--colors', default=str(COLOR_MAP_FILE),
              help='Optional JSON mapping of country names to RGB (0-1)')
@click.option('--radius', type=float, default=None, help='Globe radius')
@click.option('--height', type=float, default=None, help='Extrusion height')
@click.option('--tolerance', type=float, default=None,
              help='Simplification tolerance in degrees')
@click.option('--seed', type=int, default=None,
              help='Seed for fallback colors (unseeded by default)')
@click.option('--workers', '-j', type=int, default=1, help='Parallel region workers')
@click.option('--adaptive/--static', default=False,
              help='Pick subdivision from triangle size instead of size class')
@click.option('--no-quantize', is_flag=True, help='Keep full attribute precision')
def build(countries_dir: str, output: str, colors: str, radius: Optional[float],
          height: Optional[float], tolerance: Optional[float], seed: Optional[int],
          workers: int, adaptive: bool, no_quantize: bool):
    """Build the globe GLB from a directory of country GeoJSON files."""
    settings = BuildSettings(seed=seed, workers=workers,
                             adaptive_subdivision=adaptive,
                             quantize=not no_quantize)
    if radius is not None:
        settings.radius = radius
    if height is not None:
        settings.extrusion_height = height
    if tolerance is not None:
        settings.tolerance = tolerance

    def _progress(pct, msg):
        click.echo(f"[{pct:3.0f}%] {msg}")

    try:
        region_files = discover_region_files(countries_dir)
        color_map = load_color_map(colors)
        result = GlobeBuilder(settings).build(region_files, output,
                                              color_map=color_map,
                                              progress_callback=_progress)
    except (FileNotFoundError, SceneWriteError) as e:
        logger.error(f"Build failed: {e}")
        raise click.ClickException(str(e))

    click.echo(f"\n{'='*50}")
    click.echo(f"Regions: {result.regions_processed} processed, "
               f"{result.regions_failed} failed")
    click.echo(f"Meshes:  {len(result.fragments)}, {result.total_vertices:,} vertices")
    click.echo(f"Output:  {result.output_path} "
               f"({result.file_size / 1024 / 1024:.2f} MB)")
    click.echo(f"Manifest: {result.manifest_path}")
    click.echo(f"{'='*50}")


@cli.command()
@click.argument('asset', type=click.Path(exists=True, dir_okay=False))
def inspect(asset: str):
    """List the nodes of a built globe asset."""
    rows = inspect_asset(asset)
    for node, name, vertices, faces in rows:
        click.echo(f"{node:40s} {name:32s} {vertices:8d} verts {faces:8d} faces")
    click.echo(f"{len(rows)} nodes")
