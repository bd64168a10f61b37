"""Module-level defaults for the terrain grid builder."""

import tempfile

# Terrarium elevation tiles (Mapzen / AWS open data)
TERRARIUM_URL_TEMPLATE = (
    'https://s3.amazonaws.com/elevation-tiles-prod/terrarium/{z}/{x}/{y}.png'
)

# Tile size of the elevation source (px)
TILE_WIDTH_PX = 256
TILE_HEIGHT_PX = 256

# Number of zoom levels of the elevation source (0..14)
TILE_NUM_LEVELS = 15

# Radius of the Web Mercator sphere (metres)
EARTH_RADIUS_M = 6378137.0

# Half extent of the Web Mercator square (metres)
WEB_MERCATOR_HALF_EXTENT_M = 20037508.342789244

# Latitude limit of Web Mercator (degrees)
WEB_MERCATOR_MAX_LAT_DEG = 85.05112878

WGS84_CODE = 4326
WEB_MERCATOR_CODE = 3857

# Maximum number of tiles downloading at the same time
MAX_CONCURRENT_DOWNLOADS = 10

# Wall-clock budget of one tile download (seconds)
DOWNLOAD_TIMEOUT_S = 10.0

# Idle wait of the scheduler when a round finished no tile (seconds)
SCHEDULER_POLL_INTERVAL_S = 0.1

# Default on-disk tile cache location
ELEVATION_CACHE_DIR_ENV = 'ELEVATION_CACHE_DIR'
ELEVATION_CACHE_DIR = f'{tempfile.gettempdir()}/ElevationCache'
ELEVATION_CACHE_FILE_PATTERN = 'elevation_{z}_{x}_{y}.png'

# Terrarium encoding: raw = R*256 + G + B/256, elevation = raw - offset
TERRARIUM_OFFSET = 32768.0

# Upper bound of a valid raw value (offset + 9000 m, roughly above Everest).
# Known approximation: it cannot tell no-data from genuine extremes.
TERRARIUM_VALID_RAW_MAX = 41768.0

# Image modes accepted for the 8-bit RGB encoding
TERRARIUM_IMAGE_MODES = ('RGB', 'RGBA')

# Lanczos kernel radius (taps are laid out for this exact value)
LANCZOS_FILTER_SIZE = 3

# |d| below this evaluates the kernel to exactly 1
LANCZOS_EPSILON = 1e-4

# Pixels kept clear of each tile edge so the 5x5 stencil stays inside the tile
SAMPLE_MARGIN_LOW_PX = 2
SAMPLE_MARGIN_HIGH_PX = 3

# uint16 quantization
HEIGHT_MAX_VALUE = 65535
HEIGHT_NO_DATA = 32768

# Downstream terrain constants
METRES_TO_CENTIMETRES = 100.0
DEFAULT_TERRAIN_SCALE_XY = 128.0
DEFAULT_TERRAIN_SCALE_Z = 256.0
# At Z scale 100 the terrain spans -256 m..256 m
TERRAIN_INTERNAL_SCALE_Z = 512.0 / 100.0

# Sub-sections per component edge used to derive the sub-tiling factor
SUBSECTION_DIVISOR = 16

# Blend weights
BLEND_WEIGHT_FULL = 255
BLEND_EMPTY_LAYER_MARKER = 1
BLEND_GAUGE_EPSILON = 1e-8
DEFAULT_BLEND_GAUGE_M = 10.0

# Land-use layers and the (way type, category) pairs they claim
DEFAULT_LAYER_MATCHES: dict[str, list[tuple[str, str]]] = {
    'Grass': [
        ('landuse', 'grass'),
        ('landuse', 'village_green'),
        ('landuse', 'meadow'),
        ('landuse', 'farmland'),
        ('leisure', 'park'),
    ],
    'Wood': [
        ('landuse', 'forest'),
        ('natural', 'wood'),
        ('natural', 'nature_reserve'),
    ],
}

# Progress phases
PHASE_DOWNLOAD = 'Downloading Elevation Model'
PHASE_REPROJECT = 'Reprojecting Elevation Model'
PHASE_BLEND = 'Rasterizing Blend Weights'

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
