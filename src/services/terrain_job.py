"""
Front-end agnostic entry point of the terrain grid build.

Runs the three phases (acquire tiles, reproject heights, rasterize blend
weights) and reports the outcome as a TerrainBuildResult. Job-level errors
become ``success=False`` with a readable message; anything else propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from blend.classification import select_layer_polygons
from blend.rasterizer import rasterize_blend_weights
from elevation.decoder import ElevationDecoder
from elevation.reprojector import Reprojector, compute_transform
from geo.grid import OutputGrid
from geo.projection import LocalProjection
from geo.tiling import TileSource, tiles_for_region
from infrastructure.http.client import make_http_session, make_tile_fetch
from shared.diagnostics import log_memory_usage
from shared.errors import ElevationError
from tiles.acquisition import AcquisitionContext
from tiles.cache import TileCache
from tiles.scheduler import AcquisitionResult, AcquisitionScheduler

if TYPE_CHECKING:
    import numpy as np

    from blend.classification import Polygon, VectorWay
    from domain.models import TerrainBuildSettings, TileSourceSettings
    from elevation.reprojector import TerrainTransform
    from geo.projection import Projection
    from geo.tiling import TileKey
    from infrastructure.http.client import TileFetch
    from shared.errors import ErrorKind
    from shared.progress import CancelToken, ProgressSink

logger = logging.getLogger(__name__)


@dataclass
class TerrainBuildResult:
    """Outcome of one build. Arrays are set only when ``success`` is True."""

    success: bool
    message: str
    heights: np.ndarray | None = None
    transform: TerrainTransform | None = None
    weights: dict[str, np.ndarray] = field(default_factory=dict)
    elevation_min: float = 0.0
    elevation_max: float = 0.0
    grid: OutputGrid | None = None
    error_kind: ErrorKind | None = None
    tile_count: int = 0


def make_tile_source(settings: TileSourceSettings) -> TileSource:
    return TileSource(
        url_template=settings.url_template,
        tile_width=settings.tile_width,
        tile_height=settings.tile_height,
        num_levels=settings.num_levels,
    )


async def acquire_tiles(
    keys: Sequence[TileKey],
    source: TileSource,
    settings: TerrainBuildSettings,
    *,
    fetch: TileFetch | None = None,
    cache: TileCache | None = None,
    sink: ProgressSink | None = None,
    cancel: CancelToken | None = None,
) -> AcquisitionResult:
    """Download phase. Opens an aiohttp session unless ``fetch`` is given."""

    async def _run(tile_fetch: TileFetch) -> AcquisitionResult:
        context = AcquisitionContext(
            source=source,
            fetch=tile_fetch,
            decoder=ElevationDecoder(source),
            cache=cache,
            max_concurrent_downloads=settings.max_concurrent_downloads,
            timeout_s=settings.download_timeout_s,
        )
        scheduler = AcquisitionScheduler(context, progress=sink, cancel=cancel)
        return await scheduler.run(keys)

    if fetch is not None:
        return await _run(fetch)
    async with make_http_session(settings.max_concurrent_downloads) as session:
        return await _run(make_tile_fetch(session))


def layer_polygons(
    settings: TerrainBuildSettings, ways: Iterable[VectorWay]
) -> list[tuple[str, list[Polygon]]]:
    """(name, polygons) per layer; the base layer never takes polygons."""
    ways = list(ways)
    result: list[tuple[str, list[Polygon]]] = []
    for index, layer in enumerate(settings.layers):
        polygons = [] if index == 0 else select_layer_polygons(layer, ways)
        result.append((layer.name, polygons))
    return result


async def build_terrain(
    settings: TerrainBuildSettings,
    *,
    ways: Iterable[VectorWay] = (),
    projection: Projection | None = None,
    fetch: TileFetch | None = None,
    cache: TileCache | None = None,
    sink: ProgressSink | None = None,
    cancel: CancelToken | None = None,
) -> TerrainBuildResult:
    """
    Run all phases and return a successful result.

    Raises:
        ElevationError: any job-level failure.
    """
    if projection is None:
        projection = LocalProjection(settings.origin_lon, settings.origin_lat)
    source = make_tile_source(settings.tile_source)
    grid = OutputGrid.from_radius(settings.radius_m, settings.quad_size_m)
    keys = tiles_for_region(projection, source, grid)
    logger.info(
        'Terrain grid %dx%d (quad %.2f m, sub-section %d quads) needs %d tiles at level %d',
        grid.size,
        grid.size,
        grid.quad_size,
        grid.subsection_size_quads,
        len(keys),
        source.max_level,
    )
    if cache is None:
        cache = TileCache(settings.cache_dir)

    log_memory_usage('before elevation download')
    acquisition = await acquire_tiles(
        keys, source, settings, fetch=fetch, cache=cache, sink=sink, cancel=cancel
    )
    gmin, gmax = acquisition.elevation_min, acquisition.elevation_max

    log_memory_usage('before reprojection')
    reprojector = Reprojector(projection, source, progress=sink, cancel=cancel)
    heights = reprojector.reproject(acquisition.tiles, grid, gmin, gmax)
    transform = compute_transform(grid, gmin, gmax)

    log_memory_usage('before blend weights')
    weights = rasterize_blend_weights(
        grid,
        layer_polygons(settings, ways),
        settings.blend_gauge_m,
        keep_empty_layers=settings.keep_empty_layers,
        progress=sink,
        cancel=cancel,
    )
    log_memory_usage('after blend weights')

    message = (
        f'Built {grid.size}x{grid.size} terrain grid from {len(acquisition.tiles)} tiles, '
        f'elevation {gmin:.1f}..{gmax:.1f} m'
    )
    logger.info(message)
    return TerrainBuildResult(
        success=True,
        message=message,
        heights=heights,
        transform=transform,
        weights=weights,
        elevation_min=gmin,
        elevation_max=gmax,
        grid=grid,
        tile_count=len(acquisition.tiles),
    )


async def run_terrain_job_async(
    settings: TerrainBuildSettings,
    *,
    ways: Iterable[VectorWay] = (),
    projection: Projection | None = None,
    fetch: TileFetch | None = None,
    cache: TileCache | None = None,
    sink: ProgressSink | None = None,
    cancel: CancelToken | None = None,
) -> TerrainBuildResult:
    """build_terrain with job-level errors turned into a failed result."""
    try:
        return await build_terrain(
            settings,
            ways=ways,
            projection=projection,
            fetch=fetch,
            cache=cache,
            sink=sink,
            cancel=cancel,
        )
    except ElevationError as e:
        logger.error('Terrain build failed (%s): %s', e.kind.value, e.message)
        return TerrainBuildResult(success=False, message=e.message, error_kind=e.kind)


def run_terrain_job(
    settings: TerrainBuildSettings,
    *,
    ways: Iterable[VectorWay] = (),
    projection: Projection | None = None,
    fetch: TileFetch | None = None,
    cache: TileCache | None = None,
    sink: ProgressSink | None = None,
    cancel: CancelToken | None = None,
) -> TerrainBuildResult:
    """Front-end agnostic synchronous entry point; runs the job via ``asyncio.run``."""
    return asyncio.run(
        run_terrain_job_async(
            settings,
            ways=ways,
            projection=projection,
            fetch=fetch,
            cache=cache,
            sink=sink,
            cancel=cancel,
        )
    )
