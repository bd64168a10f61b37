"""Geo module - tiling math, projection and output grid geometry."""

from .grid import OutputGrid, round_up_pow2, vertices_for_radius
from .projection import LocalProjection, Projection, project_to_source
from .tiling import TileKey, TileSource, tiles_for_region

__all__ = [
    'LocalProjection',
    'OutputGrid',
    'Projection',
    'TileKey',
    'TileSource',
    'project_to_source',
    'round_up_pow2',
    'tiles_for_region',
    'vertices_for_radius',
]
