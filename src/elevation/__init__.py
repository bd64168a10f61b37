"""Elevation module - Terrarium decoding, Lanczos sampling and reprojection."""

from .decoder import ElevationDecoder, ElevationTile, decode_terrarium, open_raster
from .lanczos import TAPS, eval_lanczos, lanczos_tap_weights, sample_lanczos
from .reprojector import Reprojector, TerrainTransform, compute_transform, quantize

__all__ = [
    'TAPS',
    'ElevationDecoder',
    'ElevationTile',
    'Reprojector',
    'TerrainTransform',
    'compute_transform',
    'decode_terrarium',
    'eval_lanczos',
    'lanczos_tap_weights',
    'open_raster',
    'quantize',
    'sample_lanczos',
]
