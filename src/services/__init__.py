"""Services package - terrain build orchestration and output writing."""

from services.outputs import save_outputs
from services.terrain_job import (
    TerrainBuildResult,
    acquire_tiles,
    build_terrain,
    layer_polygons,
    make_tile_source,
    run_terrain_job,
    run_terrain_job_async,
)

__all__ = [
    'TerrainBuildResult',
    'acquire_tiles',
    'build_terrain',
    'layer_polygons',
    'make_tile_source',
    'run_terrain_job',
    'run_terrain_job_async',
    'save_outputs',
]
