import json

import numpy as np
import pytest

from globebuilder.builder import GlobeBuilder, discover_region_files
from globebuilder.glb import SceneWriteError, inspect_asset

from conftest import SQUARE, polygon, multipolygon, write_region, box


@pytest.fixture
def countries(tmp_path):
    directory = tmp_path / 'countries'
    directory.mkdir()
    write_region(directory, 'Alpha', [polygon(SQUARE)])
    write_region(directory, 'Beta', [
        multipolygon(box(10, 10, 1), box(12, 10, 1)),
        {'type': 'Feature', 'geometry': {'type': 'Point', 'coordinates': [0, 0]}},
        polygon(box(20, 20, 2)),
    ])
    write_region(directory, 'Gamma', [
        {'type': 'Feature', 'geometry': {'type': 'LineString', 'coordinates': [[0, 0], [1, 1]]}},
    ])
    (directory / 'Delta.json').write_text('{"type": "FeatureCollection", "features": [')
    (directory / 'notes.txt').write_text('not a region')
    return directory


def test_discover_region_files(countries):
    names = [p.name for p in discover_region_files(countries)]
    assert names == ['Alpha.json', 'Beta.json', 'Delta.json', 'Gamma.json']


def test_discover_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        discover_region_files(tmp_path / 'missing')


def test_build_end_to_end(countries, tmp_path, flat_settings):
    output = tmp_path / 'out' / 'world.glb'
    progress = []
    result = GlobeBuilder(flat_settings).build(
        discover_region_files(countries), output,
        color_map={'alpha': (0.9, 0.1, 0.1)},
        progress_callback=lambda pct, msg: progress.append(pct))

    assert result.regions_processed == 3
    assert result.regions_failed == 1
    assert [name for name, _ in result.fragments] == ['Alpha_0', 'Beta_0', 'Beta_2']
    assert result.total_vertices == 6 + 12 + 6
    assert output.exists()
    assert result.file_size == output.stat().st_size
    assert progress[0] == 0 and progress[-1] == 100

    nodes = [row[0] for row in inspect_asset(output)]
    assert nodes == ['Alpha_0', 'Beta_0', 'Beta_2']

    manifest = json.loads((tmp_path / 'out' / 'world.manifest.json').read_text())
    by_region = {r['region']: r for r in manifest['regions']}
    assert set(by_region) == {'Alpha', 'Beta'}
    assert by_region['Alpha']['color'] == [0.9, 0.1, 0.1]


def test_region_color_is_shared_by_all_fragments(countries, tmp_path, flat_settings):
    result = GlobeBuilder(flat_settings).build(discover_region_files(countries),
                                               tmp_path / 'world.glb')
    beta = [frag.color for name, frag in result.fragments if name.startswith('Beta')]
    assert len(beta) == 2
    assert beta[0] == beta[1]


def test_seeded_colors_repeat(countries, flat_settings):
    files = discover_region_files(countries)
    first = GlobeBuilder(flat_settings).assign_colors(files, {})
    second = GlobeBuilder(flat_settings).assign_colors(files, {})
    assert first == second


def test_parallel_matches_sequential(countries, tmp_path, flat_settings):
    files = discover_region_files(countries)
    sequential = GlobeBuilder(flat_settings).build(files, tmp_path / 'a.glb')

    flat_settings.workers = 4
    parallel = GlobeBuilder(flat_settings).build(files, tmp_path / 'b.glb')

    assert [n for n, _ in parallel.fragments] == [n for n, _ in sequential.fragments]
    for (_, a), (_, b) in zip(sequential.fragments, parallel.fragments):
        assert np.array_equal(a.positions, b.positions)
        assert a.color == b.color


def test_all_regions_degenerate_is_fatal_only_at_write(tmp_path, flat_settings):
    directory = tmp_path / 'countries'
    directory.mkdir()
    write_region(directory, 'Specks', [polygon(box(0, 0, 0.001))])
    flat_settings.tolerance = 1.0

    builder = GlobeBuilder(flat_settings)
    results = builder.process_regions(discover_region_files(directory), [(1, 1, 1)])
    assert results[0].ok and results[0].fragments == []

    with pytest.raises(SceneWriteError):
        builder.build(discover_region_files(directory), tmp_path / 'world.glb')


def test_degenerate_region_beside_valid_one(tmp_path, flat_settings):
    directory = tmp_path / 'countries'
    directory.mkdir()
    write_region(directory, 'Land', [polygon(box(30, 10, 10))])
    write_region(directory, 'Specks', [polygon(box(0, 0, 0.001))])
    flat_settings.tolerance = 1.0

    output = tmp_path / 'world.glb'
    result = GlobeBuilder(flat_settings).build(discover_region_files(directory), output)

    assert result.regions_processed == 2
    assert result.regions_failed == 0
    assert [name for name, _ in result.fragments] == ['Land_0']
    assert [row[0] for row in inspect_asset(output)] == ['Land_0']

    manifest = json.loads((tmp_path / 'world.manifest.json').read_text())
    assert [r['region'] for r in manifest['regions']] == ['Land']


def test_write_failure_aborts(countries, tmp_path, flat_settings):
    blocker = tmp_path / 'blocker'
    blocker.write_text('')
    with pytest.raises(SceneWriteError):
        GlobeBuilder(flat_settings).build(discover_region_files(countries),
                                          blocker / 'world.glb')
