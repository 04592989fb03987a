"""GlobeBuilder package: extruded spherical globe meshes from country polygons.

Import constants FIRST so logging and ``.env`` overrides are in place
before any other module reads configuration.
"""

from globebuilder import constants as _constants  # noqa: F401

from globebuilder.builder import GlobeBuilder
from globebuilder.models import BuildSettings, MeshFragment
