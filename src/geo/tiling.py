"""Web Mercator tile pyramid math for the elevation source."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from shared.constants import (
    ELEVATION_CACHE_FILE_PATTERN,
    TERRARIUM_URL_TEMPLATE,
    TILE_HEIGHT_PX,
    TILE_NUM_LEVELS,
    TILE_WIDTH_PX,
    WEB_MERCATOR_HALF_EXTENT_M,
)
from shared.errors import InvalidBounds

if TYPE_CHECKING:
    from geo.grid import OutputGrid
    from geo.projection import Projection


@dataclass(frozen=True)
class TileKey:
    """Identifies one raster tile of the pyramid."""

    zoom: int
    x: int
    y: int

    def cache_name(self) -> str:
        return ELEVATION_CACHE_FILE_PATTERN.format(z=self.zoom, x=self.x, y=self.y)

    def __str__(self) -> str:
        return f'{self.zoom}/{self.x}/{self.y}'


@dataclass(frozen=True)
class TileSource:
    """Immutable description of a remote elevation tile source."""

    url_template: str = TERRARIUM_URL_TEMPLATE
    tile_width: int = TILE_WIDTH_PX
    tile_height: int = TILE_HEIGHT_PX
    num_levels: int = TILE_NUM_LEVELS

    def __post_init__(self) -> None:
        if self.tile_width <= 0 or self.tile_height <= 0:
            msg = f'Tile size must be positive, got {self.tile_width}x{self.tile_height}'
            raise ValueError(msg)
        if self.num_levels <= 0:
            msg = f'Tile source needs at least one level, got {self.num_levels}'
            raise ValueError(msg)

    @property
    def max_level(self) -> int:
        """Highest resolution level, the one a job downloads."""
        return self.num_levels - 1

    def url(self, key: TileKey) -> str:
        return self.url_template.format(z=key.zoom, x=key.x, y=key.y)

    @staticmethod
    def tiles_per_axis(level: int) -> int:
        return 1 << level

    def tile_fraction(self, mx, my, level: int):
        """Web Mercator metres -> continuous tile coordinates (origin top-left)."""
        n = self.tiles_per_axis(level)
        span = 2.0 * WEB_MERCATOR_HALF_EXTENT_M
        fx = (np.asarray(mx, dtype=np.float64) + WEB_MERCATOR_HALF_EXTENT_M) / span * n
        fy = (WEB_MERCATOR_HALF_EXTENT_M - np.asarray(my, dtype=np.float64)) / span * n
        return fx, fy

    def tile_xy(self, mx: float, my: float, level: int) -> tuple[int, int]:
        fx, fy = self.tile_fraction(mx, my, level)
        return math.floor(float(fx)), math.floor(float(fy))

    def locate(self, mx: float, my: float, level: int) -> tuple[TileKey, float, float]:
        """Return the tile holding a Web Mercator point and the fractional pixel in it."""
        fx, fy = self.tile_fraction(mx, my, level)
        fx, fy = float(fx), float(fy)
        tx, ty = math.floor(fx), math.floor(fy)
        px = (fx - tx) * self.tile_width
        py = (fy - ty) * self.tile_height
        return TileKey(level, tx, ty), px, py


def tiles_for_region(
    projection: Projection,
    source: TileSource,
    grid: OutputGrid,
    level: int | None = None,
) -> list[TileKey]:
    """
    Collect the tiles needed to cover the output grid.

    The projected corners are ordered (the source may count rows in either
    direction), padded by one tile on every side for the filter footprint
    and clamped to the valid index range. Keys are returned row by row.
    """
    if level is None:
        level = source.max_level
    radius = grid.radius
    south_west = projection.to_source(-radius, radius)
    north_east = projection.to_source(radius, -radius)
    if south_west is None or north_east is None:
        msg = 'Chosen elevation bounds are invalid. Stay within WebMercator bounds!'
        raise InvalidBounds(msg)

    sw_x, sw_y = source.tile_xy(*south_west, level)
    ne_x, ne_y = source.tile_xy(*north_east, level)
    last = source.tiles_per_axis(level) - 1

    min_x = max(min(sw_x, ne_x) - 1, 0)
    min_y = max(min(sw_y, ne_y) - 1, 0)
    max_x = min(max(sw_x, ne_x) + 1, last)
    max_y = min(max(sw_y, ne_y) + 1, last)
    if min_x > max_x or min_y > max_y:
        msg = f'Elevation bounds fall outside the tile pyramid at level {level}'
        raise InvalidBounds(msg)

    return [
        TileKey(level, x, y)
        for y in range(min_y, max_y + 1)
        for x in range(min_x, max_x + 1)
    ]
