"""Configuration constants, paths, size classes, and logging setup."""

import os
import pathlib
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_path(name: str, default: pathlib.Path) -> pathlib.Path:
    value = os.environ.get(name, "").strip()
    return pathlib.Path(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name, "").strip()
    return float(value) if value else default


# Configure base paths
BASE_DIR = pathlib.Path(__file__).parent.parent.absolute()
DATA_DIR = BASE_DIR / "data"
ASSETS_DIR = BASE_DIR / "assets"

COUNTRIES_DIR = _env_path("GLOBE_COUNTRIES_DIR", DATA_DIR / "countries")
COLOR_MAP_FILE = _env_path("GLOBE_COLOR_MAP", DATA_DIR / "country_colors.json")
OUTPUT_FILE = _env_path("GLOBE_OUTPUT", ASSETS_DIR / "world.glb")

# ── Geometry ────────────────────────────────────────────────────────────
GLOBE_RADIUS = _env_float("GLOBE_RADIUS", 1.0)
EXTRUSION_HEIGHT = _env_float("GLOBE_EXTRUSION_HEIGHT", 0.02)
SIMPLIFICATION_TOLERANCE = _env_float("GLOBE_SIMPLIFY_TOLERANCE", 0.002)  # degrees

# Subdivision level per region size class
SUBDIVISION_LEVELS = {
    'default': 0,
    'large': 1,
    'very_large': 2,
}

# Adaptive mode: split until no triangle edge spans more than this
ADAPTIVE_MAX_EDGE_DEGREES = 4.0
ADAPTIVE_MAX_LEVEL = 2

# Region keys are the source file stems; matched case-insensitively
VERY_LARGE_REGIONS = frozenset({
    'russia', 'canada', 'usa', 'united_states', 'china', 'brazil',
    'australia', 'antarctica',
})

LARGE_REGIONS = frozenset({
    'india', 'argentina', 'kazakhstan', 'algeria',
    'democratic_republic_of_the_congo', 'greenland', 'saudi_arabia',
    'mexico', 'indonesia', 'sudan', 'libya', 'iran', 'mongolia', 'peru',
    'chad', 'niger', 'angola', 'mali', 'south_africa', 'colombia',
    'ethiopia', 'bolivia', 'mauritania', 'egypt',
})

# ── Colors ──────────────────────────────────────────────────────────────
# Muted fallback tones for regions without a custom color (RGB 0-1)
FALLBACK_PALETTE = (
    (0.36, 0.52, 0.38),   # sage
    (0.44, 0.58, 0.36),   # moss
    (0.55, 0.60, 0.42),   # olive
    (0.62, 0.56, 0.44),   # khaki
    (0.50, 0.46, 0.38),   # umber
    (0.40, 0.50, 0.52),   # slate teal
    (0.58, 0.50, 0.50),   # dusty rose
    (0.47, 0.55, 0.47),   # lichen
)

# ── Packing ─────────────────────────────────────────────────────────────
QUANTIZE_BITS = {
    'position': 14,
    'normal': 8,
    'color': 8,
}

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)
