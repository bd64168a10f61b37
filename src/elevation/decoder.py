"""
Terrarium raster decoding.

Each pixel packs the elevation into three 8-bit channels::

    raw = R * 256 + G + B / 256
    elevation = raw - 32768

A sample counts as valid only when ``0 < raw < 41768``. Invalid samples are
kept in the array, flagged in ``ElevationTile.valid`` and left out of the
tile min/max.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from shared.constants import (
    TERRARIUM_IMAGE_MODES,
    TERRARIUM_OFFSET,
    TERRARIUM_VALID_RAW_MAX,
)
from shared.errors import DecodeFormatMismatch

if TYPE_CHECKING:
    from geo.tiling import TileKey, TileSource

logger = logging.getLogger(__name__)


@dataclass
class ElevationTile:
    """Decoded tile: elevation in metres, validity mask and valid-sample range."""

    key: TileKey
    elevation: np.ndarray
    valid: np.ndarray
    elevation_min: float | None
    elevation_max: float | None
    _surface: np.ndarray | None = field(default=None, init=False, repr=False)

    @property
    def width(self) -> int:
        return int(self.elevation.shape[1])

    @property
    def height(self) -> int:
        return int(self.elevation.shape[0])

    @property
    def has_valid_samples(self) -> bool:
        return self.elevation_min is not None

    def sampling_surface(self) -> np.ndarray:
        """Elevation with invalid samples replaced by the tile minimum (0 if none)."""
        if self._surface is None:
            fill = self.elevation_min if self.elevation_min is not None else 0.0
            self._surface = np.where(self.valid, self.elevation, np.float32(fill)).astype(
                np.float32
            )
        return self._surface


def _has_16bit_channels(img: Image.Image) -> bool:
    # Pillow narrows 16-bit RGB PNGs to 8-bit 'RGB'; only the raw mode tells.
    for tile in getattr(img, 'tile', None) or []:
        rawmode = tile[3]
        if isinstance(rawmode, tuple):
            rawmode = rawmode[0] if rawmode else ''
        if isinstance(rawmode, str) and ';16' in rawmode:
            return True
    return False


def open_raster(data: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(data))
        sixteen_bit = _has_16bit_channels(img)
        img.load()
    except (OSError, SyntaxError, ValueError) as e:
        msg = f'Tile is not a decodable image: {e}'
        raise DecodeFormatMismatch(msg) from e
    if sixteen_bit:
        msg = f'Tile contains 16-bit channels ({img.mode}); expected 8 bits per channel'
        raise DecodeFormatMismatch(msg)
    return img


def decode_terrarium(
    img: Image.Image, key: TileKey, width: int, height: int
) -> ElevationTile:
    """
    Decode a Terrarium image into an ElevationTile.

    Raises:
        DecodeFormatMismatch: wrong dimensions or a mode other than 8-bit RGB/RGBA.
    """
    if img.size != (width, height):
        msg = (
            f'Tile {key} has wrong dimensions {img.size[0]}x{img.size[1]}. '
            f'Expected {width}x{height}'
        )
        raise DecodeFormatMismatch(msg)
    if img.mode not in TERRARIUM_IMAGE_MODES:
        msg = f'Tile {key} contains elevation data in an unsupported format ({img.mode})'
        raise DecodeFormatMismatch(msg)

    arr = np.asarray(img, dtype=np.float32)
    r = arr[:, :, 0]
    g = arr[:, :, 1]
    b = arr[:, :, 2]

    raw = r * 256.0 + g + b / 256.0
    valid = (raw > 0.0) & (raw < TERRARIUM_VALID_RAW_MAX)
    elevation = (raw - TERRARIUM_OFFSET).astype(np.float32)

    if np.any(valid):
        elevation_min = float(elevation[valid].min())
        elevation_max = float(elevation[valid].max())
    else:
        elevation_min = elevation_max = None
        logger.warning('Tile %s has no valid elevation samples', key)

    return ElevationTile(
        key=key,
        elevation=elevation,
        valid=valid,
        elevation_min=elevation_min,
        elevation_max=elevation_max,
    )


class ElevationDecoder:
    """Validates raw tile bytes against a TileSource and decodes them."""

    def __init__(self, source: TileSource) -> None:
        self.source = source

    def decode(self, key: TileKey, data: bytes) -> ElevationTile:
        img = open_raster(data)
        return decode_terrarium(img, key, self.source.tile_width, self.source.tile_height)
