"""
Reprojection of decoded tiles onto the output height grid.

Every output cell centre is mapped local -> Web Mercator -> tile pixel,
sampled with the Lanczos stencil and quantized to uint16 over the global
elevation range. Cells that cannot be sampled keep HEIGHT_NO_DATA.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from elevation.lanczos import sample_lanczos
from geo.projection import project_to_source
from geo.tiling import TileKey
from shared.constants import (
    DEFAULT_TERRAIN_SCALE_XY,
    DEFAULT_TERRAIN_SCALE_Z,
    HEIGHT_MAX_VALUE,
    HEIGHT_NO_DATA,
    METRES_TO_CENTIMETRES,
    PHASE_REPROJECT,
    SAMPLE_MARGIN_HIGH_PX,
    SAMPLE_MARGIN_LOW_PX,
    TERRAIN_INTERNAL_SCALE_Z,
)
from shared.errors import UserCancelled
from shared.progress import PhaseProgress

if TYPE_CHECKING:
    from collections.abc import Mapping

    from elevation.decoder import ElevationTile
    from geo.grid import OutputGrid
    from geo.projection import Projection
    from geo.tiling import TileSource
    from shared.progress import CancelToken, ProgressSink

logger = logging.getLogger(__name__)


def quantize(values, elevation_min: float, elevation_max: float) -> np.ndarray:
    """
    Map elevations linearly onto 0..65535.

    Results are rounded half up and clamped, so filter overshoot beyond the
    global range saturates. A degenerate range maps everything to 32768.
    """
    values = np.asarray(values, dtype=np.float64)
    elevation_range = float(elevation_max) - float(elevation_min)
    if not elevation_range > 0.0:
        return np.full(values.shape, HEIGHT_NO_DATA, dtype=np.uint16)
    scaled = (values - float(elevation_min)) * (HEIGHT_MAX_VALUE / elevation_range)
    return np.clip(np.floor(scaled + 0.5), 0, HEIGHT_MAX_VALUE).astype(np.uint16)


@dataclass(frozen=True)
class TerrainTransform:
    """Scale-only transform placing the height grid in the terrain system."""

    scale_x: float
    scale_y: float
    scale_z: float

    def as_tuple(self) -> tuple[float, float, float]:
        return self.scale_x, self.scale_y, self.scale_z


def compute_transform(
    grid: OutputGrid, elevation_min: float, elevation_max: float
) -> TerrainTransform:
    """
    Scale of the height grid in terrain units.

    XY converts quad size to centimetres relative to the default terrain
    scale. Z maps the 0..65535 range back onto the elevation range, given
    that at Z scale 100 the terrain spans -256 m..256 m.
    """
    scale_xy = METRES_TO_CENTIMETRES * grid.quad_size / DEFAULT_TERRAIN_SCALE_XY
    scale_z = (elevation_max - elevation_min) / DEFAULT_TERRAIN_SCALE_Z / TERRAIN_INTERNAL_SCALE_Z
    return TerrainTransform(scale_x=scale_xy, scale_y=scale_xy, scale_z=scale_z)


class Reprojector:
    """Samples resident elevation tiles onto an OutputGrid row by row."""

    def __init__(
        self,
        projection: Projection,
        source: TileSource,
        level: int | None = None,
        *,
        progress: ProgressSink | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        self.projection = projection
        self.source = source
        self.level = source.max_level if level is None else int(level)
        self.progress = progress
        self.cancel = cancel
        self.missing_tiles: set[TileKey] = set()

    def reproject(
        self,
        tiles: Mapping[TileKey, ElevationTile],
        grid: OutputGrid,
        elevation_min: float,
        elevation_max: float,
    ) -> np.ndarray:
        """
        Build the quantized height grid.

        Returns:
            uint16 array of ``grid.shape``, row 0 at local y = -radius.

        Raises:
            UserCancelled: the cancel token was set between rows.
        """
        heights = np.full(grid.shape, HEIGHT_NO_DATA, dtype=np.uint16)
        xs = grid.column_coords()
        self.missing_tiles = set()

        phase = PhaseProgress(self.progress, PHASE_REPROJECT, grid.size)
        phase.start()
        logger.info(
            'Reprojecting %d tiles onto a %dx%d grid (quad %.2f m)',
            len(tiles),
            grid.size,
            grid.size,
            grid.quad_size,
        )

        for row in range(grid.size):
            if self.cancel is not None and self.cancel.is_cancelled():
                msg = 'Elevation reprojection cancelled by user'
                raise UserCancelled(msg)
            ys = np.full(xs.shape, grid.row_coord(row), dtype=np.float64)
            mx, my, valid = project_to_source(self.projection, xs, ys)
            heights[row] = self.sample_row(tiles, mx, my, valid, elevation_min, elevation_max)
            phase.step()

        phase.finish()
        if self.missing_tiles:
            logger.warning(
                '%d tiles needed for sampling were not resident; cells left at %d',
                len(self.missing_tiles),
                HEIGHT_NO_DATA,
            )
        return heights

    def sample_row(
        self,
        tiles: Mapping[TileKey, ElevationTile],
        mx: np.ndarray,
        my: np.ndarray,
        valid: np.ndarray,
        elevation_min: float,
        elevation_max: float,
    ) -> np.ndarray:
        """Quantized heights for a run of Web Mercator points."""
        out = np.full(mx.shape, HEIGHT_NO_DATA, dtype=np.uint16)
        if not np.any(valid):
            return out

        width = self.source.tile_width
        height = self.source.tile_height
        fx, fy = self.source.tile_fraction(
            np.where(valid, mx, 0.0), np.where(valid, my, 0.0), self.level
        )
        tx = np.floor(fx).astype(np.int64)
        ty = np.floor(fy).astype(np.int64)
        px = (fx - tx) * width
        py = (fy - ty) * height

        supported = (
            valid
            & (px >= SAMPLE_MARGIN_LOW_PX)
            & (py >= SAMPLE_MARGIN_LOW_PX)
            & (px < width - SAMPLE_MARGIN_HIGH_PX)
            & (py < height - SAMPLE_MARGIN_HIGH_PX)
        )
        idx = np.flatnonzero(supported)
        if idx.size == 0:
            return out

        pairs = np.unique(np.stack([tx[idx], ty[idx]], axis=1), axis=0)
        for tile_x, tile_y in pairs:
            key = TileKey(self.level, int(tile_x), int(tile_y))
            tile = tiles.get(key)
            if tile is None:
                self.missing_tiles.add(key)
                continue
            sel = idx[(tx[idx] == tile_x) & (ty[idx] == tile_y)]
            values = sample_lanczos(tile.sampling_surface(), px[sel], py[sel])
            out[sel] = quantize(values, elevation_min, elevation_max)
        return out
