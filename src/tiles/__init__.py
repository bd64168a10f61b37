"""Elevation tile acquisition.

This module provides:
- TileCache: file-backed store of raw tile bytes
- TileAcquisition: per-tile cache -> download -> decode state machine
- AcquisitionScheduler: bounded, fail-fast pool of acquisitions
"""

from tiles.acquisition import (
    AcquisitionContext,
    AcquisitionState,
    TileAcquisition,
)
from tiles.cache import CacheStats, TileCache
from tiles.scheduler import (
    AcquisitionResult,
    AcquisitionScheduler,
    global_elevation_range,
)

__all__ = [
    'AcquisitionContext',
    'AcquisitionResult',
    'AcquisitionScheduler',
    'AcquisitionState',
    'CacheStats',
    'TileAcquisition',
    'TileCache',
    'global_elevation_range',
]
