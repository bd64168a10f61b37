from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from shared.constants import (
    DEFAULT_BLEND_GAUGE_M,
    DEFAULT_LAYER_MATCHES,
    DOWNLOAD_TIMEOUT_S,
    MAX_CONCURRENT_DOWNLOADS,
    TERRARIUM_URL_TEMPLATE,
    TILE_HEIGHT_PX,
    TILE_NUM_LEVELS,
    TILE_WIDTH_PX,
)


class TileSourceSettings(BaseModel):
    """Remote elevation tile source."""

    model_config = {'extra': 'ignore'}

    url_template: str = TERRARIUM_URL_TEMPLATE
    tile_width: int = TILE_WIDTH_PX
    tile_height: int = TILE_HEIGHT_PX
    num_levels: int = TILE_NUM_LEVELS

    @field_validator('url_template')
    @classmethod
    def validate_url_template(cls, v: str) -> str:
        for placeholder in ('{z}', '{x}', '{y}'):
            if placeholder not in v:
                msg = f'url_template must contain {placeholder}'
                raise ValueError(msg)
        return v

    @field_validator('tile_width', 'tile_height', 'num_levels')
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if int(v) <= 0:
            msg = 'Value must be positive'
            raise ValueError(msg)
        return int(v)


class LayerSettings(BaseModel):
    """
    One blend layer.

    ``matches`` lists the (way type, category) pairs the layer claims. When
    omitted, the built-in mapping for the layer name is used (none for
    unknown names).
    """

    model_config = {'extra': 'ignore'}

    name: str
    matches: list[tuple[str, str]] | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = 'Layer name must not be empty'
            raise ValueError(msg)
        return v

    @model_validator(mode='after')
    def fill_default_matches(self) -> LayerSettings:
        if self.matches is None:
            self.matches = list(DEFAULT_LAYER_MATCHES.get(self.name, []))
        return self


def default_layers() -> list[LayerSettings]:
    return [
        LayerSettings(name='Base'),
        LayerSettings(name='Grass'),
        LayerSettings(name='Wood'),
    ]


class TerrainBuildSettings(BaseModel):
    """All parameters of one terrain grid build."""

    model_config = {
        'extra': 'ignore',  # unknown keys in profiles are skipped
    }

    # Origin of the local projection (WGS84 degrees)
    origin_lon: float
    origin_lat: float

    # Half extent of the square output area (m)
    radius_m: float
    # Distance between grid vertices (m)
    quad_size_m: float = 100.0
    # Width of the soft edge of land-use polygons (m)
    blend_gauge_m: float = DEFAULT_BLEND_GAUGE_M

    # Blend layers in priority order; the first one is the base layer
    layers: list[LayerSettings] = Field(default_factory=default_layers)
    # Mark layers without polygons with a single non-zero cell
    keep_empty_layers: bool = True

    max_concurrent_downloads: int = MAX_CONCURRENT_DOWNLOADS
    download_timeout_s: float = DOWNLOAD_TIMEOUT_S
    # None: $ELEVATION_CACHE_DIR or <tempdir>/ElevationCache
    cache_dir: str | None = None

    tile_source: TileSourceSettings = Field(default_factory=TileSourceSettings)

    @field_validator('origin_lon')
    @classmethod
    def validate_lon(cls, v: float) -> float:
        v = float(v)
        if not (-180.0 <= v <= 180.0):
            msg = 'Longitude must be within [-180, 180]'
            raise ValueError(msg)
        return v

    @field_validator('origin_lat')
    @classmethod
    def validate_lat(cls, v: float) -> float:
        v = float(v)
        if not (-90.0 <= v <= 90.0):
            msg = 'Latitude must be within [-90, 90]'
            raise ValueError(msg)
        return v

    @field_validator('radius_m', 'quad_size_m', 'download_timeout_s')
    @classmethod
    def validate_positive(cls, v: float) -> float:
        v = float(v)
        if v <= 0.0:
            msg = 'Value must be positive'
            raise ValueError(msg)
        return v

    @field_validator('blend_gauge_m')
    @classmethod
    def validate_gauge(cls, v: float) -> float:
        v = float(v)
        if v < 0.0:
            msg = 'blend_gauge_m must not be negative'
            raise ValueError(msg)
        return v

    @field_validator('max_concurrent_downloads')
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if int(v) < 1:
            msg = 'max_concurrent_downloads must be at least 1'
            raise ValueError(msg)
        return int(v)

    @field_validator('layers')
    @classmethod
    def validate_layers(cls, v: list[LayerSettings]) -> list[LayerSettings]:
        if not v:
            msg = 'At least one layer is required'
            raise ValueError(msg)
        names = [layer.name for layer in v]
        if len(set(names)) != len(names):
            msg = f'Layer names must be unique: {names}'
            raise ValueError(msg)
        return v

    @property
    def layer_names(self) -> list[str]:
        return [layer.name for layer in self.layers]
