"""Pytest configuration and fixtures for terrain grid tests."""

import sys
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from shared.constants import WEB_MERCATOR_HALF_EXTENT_M  # noqa: E402


def encode_terrarium(elevation) -> np.ndarray:
    """Elevation (m) -> HxWx3 uint8 Terrarium pixels."""
    raw = np.asarray(elevation, dtype=np.float64) + 32768.0
    r = np.floor(raw / 256.0)
    g = np.floor(raw - r * 256.0)
    b = np.floor((raw - r * 256.0 - g) * 256.0)
    return np.stack([r, g, b], axis=-1).astype(np.uint8)


def png_bytes(pixels: np.ndarray, mode: str | None = None) -> bytes:
    from PIL import Image

    img = Image.fromarray(pixels)
    if mode is not None and img.mode != mode:
        img = img.convert(mode)
    buf = BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


@pytest.fixture
def terrarium_png():
    """Factory: terrarium_png(elevation, size=(w, h), mode='RGB') -> PNG bytes."""

    def _make(elevation=0.0, size=(256, 256), mode='RGB') -> bytes:
        w, h = size
        elev = np.broadcast_to(np.asarray(elevation, dtype=np.float64), (h, w))
        return png_bytes(encode_terrarium(elev), mode)

    return _make


class AffineProjection:
    """Local metres -> Web Mercator by a plain shift (local +y is south)."""

    def __init__(self, origin_mx: float, origin_my: float, *, invalid: bool = False) -> None:
        self.origin_mx = origin_mx
        self.origin_my = origin_my
        self.invalid = invalid

    def to_source(self, x, y):
        if self.invalid:
            return None
        return self.origin_mx + x, self.origin_my - y

    def from_source(self, mx, my):
        if self.invalid:
            return None
        return mx - self.origin_mx, self.origin_my - my


def tile_center_mercator(level: int, tx: int, ty: int) -> tuple[float, float]:
    n = 1 << level
    span = 2.0 * WEB_MERCATOR_HALF_EXTENT_M
    mx = (tx + 0.5) / n * span - WEB_MERCATOR_HALF_EXTENT_M
    my = WEB_MERCATOR_HALF_EXTENT_M - (ty + 0.5) / n * span
    return mx, my


@pytest.fixture
def affine_projection():
    """Factory: affine_projection(level, tx, ty) centred on that tile."""

    def _make(level: int = 14, tx: int = 8192, ty: int = 8192, *, invalid: bool = False):
        mx, my = tile_center_mercator(level, tx, ty)
        return AffineProjection(mx, my, invalid=invalid)

    return _make
