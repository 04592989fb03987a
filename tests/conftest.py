import json

import pytest

from globebuilder.models import BuildSettings


SQUARE = [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]


def polygon(ring, *holes):
    return {'type': 'Feature', 'properties': {},
            'geometry': {'type': 'Polygon', 'coordinates': [ring, *holes]}}


def multipolygon(*rings):
    return {'type': 'Feature', 'properties': {},
            'geometry': {'type': 'MultiPolygon',
                         'coordinates': [[ring] for ring in rings]}}


def write_region(directory, name, features):
    path = directory / f"{name}.json"
    path.write_text(json.dumps({'type': 'FeatureCollection', 'features': features}))
    return path


def box(x, y, size):
    return [[x, y], [x + size, y], [x + size, y + size], [x, y + size], [x, y]]


@pytest.fixture
def flat_settings():
    """Tolerance 0, no subdivision, unit sphere."""
    return BuildSettings(radius=1.0, extrusion_height=0.02, tolerance=0.0,
                         subdivision_levels={'default': 0, 'large': 0, 'very_large': 0},
                         seed=7)
