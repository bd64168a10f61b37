"""
Acquisition scheduler: runs every required tile as a task, fail-fast.

Downloads are capped by the context semaphore; cache hits skip it. The
scheduler consumes completions in rounds, checks the user cancel flag each
round and, on the first failed tile, cancels everything still pending.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shared.constants import PHASE_DOWNLOAD, SCHEDULER_POLL_INTERVAL_S
from shared.errors import ElevationError, IncompleteTileSet, UserCancelled
from shared.progress import PhaseProgress
from tiles.acquisition import AcquisitionState, TileAcquisition

if TYPE_CHECKING:
    from collections.abc import Iterable

    from elevation.decoder import ElevationTile
    from geo.tiling import TileKey
    from shared.progress import CancelToken, ProgressSink
    from tiles.acquisition import AcquisitionContext

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionResult:
    """Resident tile set of a finished acquisition phase."""

    tiles: dict[TileKey, ElevationTile] = field(default_factory=dict)
    elevation_min: float = 0.0
    elevation_max: float = 0.0
    cache_hits: int = 0
    downloads: int = 0
    peak_downloads: int = 0

    @property
    def elevation_range(self) -> float:
        return self.elevation_max - self.elevation_min


def global_elevation_range(tiles: Iterable[ElevationTile]) -> tuple[float, float]:
    """Min/max over all valid samples of the given tiles, (0, 0) when there are none."""
    mins = [t.elevation_min for t in tiles if t.elevation_min is not None]
    maxs = [t.elevation_max for t in tiles if t.elevation_max is not None]
    if not mins:
        return 0.0, 0.0
    return float(min(mins)), float(max(maxs))


class AcquisitionScheduler:
    """Bounded, fail-fast pool of tile acquisitions for one job."""

    def __init__(
        self,
        context: AcquisitionContext,
        *,
        progress: ProgressSink | None = None,
        cancel: CancelToken | None = None,
        poll_interval: float = SCHEDULER_POLL_INTERVAL_S,
    ) -> None:
        self.context = context
        self.progress = progress
        self.cancel = cancel
        self.poll_interval = poll_interval
        self.acquisitions: list[TileAcquisition] = []

    async def run(self, keys: Iterable[TileKey]) -> AcquisitionResult:
        """
        Acquire and decode every tile in ``keys``.

        Returns:
            AcquisitionResult with all tiles decoded.

        Raises:
            ElevationError: the error of the first failed tile, UserCancelled
                when the cancel token was set, or IncompleteTileSet when a
                tile finished without decoding.
        """
        unique_keys = list(dict.fromkeys(keys))
        self.acquisitions = [TileAcquisition(key, self.context) for key in unique_keys]
        total = len(self.acquisitions)
        logger.info('Acquiring %d elevation tiles', total)

        phase = PhaseProgress(self.progress, PHASE_DOWNLOAD, total)
        phase.start()

        order: dict[asyncio.Task, int] = {}
        owners: dict[asyncio.Task, TileAcquisition] = {}
        for i, acq in enumerate(self.acquisitions):
            task = asyncio.create_task(acq.run(), name=f'tile-{acq.key}')
            order[task] = i
            owners[task] = acq

        pending: set[asyncio.Task] = set(owners)
        tiles: dict[TileKey, ElevationTile] = {}
        failure: ElevationError | None = None
        try:
            while pending:
                if self.cancel is not None and self.cancel.is_cancelled():
                    failure = UserCancelled('Elevation download cancelled by user')
                    break
                done, pending = await asyncio.wait(
                    pending,
                    timeout=self.poll_interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in sorted(done, key=order.__getitem__):
                    # run() only raises on programming errors
                    task.result()
                    acq = owners[task]
                    phase.step()
                    if acq.succeeded and acq.tile is not None:
                        tiles[acq.key] = acq.tile
                    elif failure is None:
                        failure = acq.error or IncompleteTileSet(
                            f'Tile {acq.key} finished as {acq.state.value}'
                        )
                if failure is not None:
                    break
        finally:
            if pending:
                await self._cancel_pending(pending, owners)

        if failure is not None:
            logger.error('Elevation acquisition aborted: %s', failure.message)
            raise failure
        if len(tiles) < total:
            msg = f'Only {len(tiles)} of {total} elevation tiles were decoded'
            raise IncompleteTileSet(msg)

        phase.finish()
        gmin, gmax = global_elevation_range(tiles.values())
        if not any(t.has_valid_samples for t in tiles.values()):
            logger.warning('No valid elevation samples in %d tiles', total)

        cache_hits = sum(1 for a in self.acquisitions if AcquisitionState.CACHE_HIT in a.history)
        result = AcquisitionResult(
            tiles=tiles,
            elevation_min=gmin,
            elevation_max=gmax,
            cache_hits=cache_hits,
            downloads=total - cache_hits,
            peak_downloads=self.context.peak_downloads,
        )
        logger.info(
            'Acquired %d tiles (%d from cache, peak %d concurrent downloads), '
            'elevation %.1f..%.1f m',
            total,
            result.cache_hits,
            result.peak_downloads,
            gmin,
            gmax,
        )
        return result

    @staticmethod
    async def _cancel_pending(
        pending: set[asyncio.Task], owners: dict[asyncio.Task, TileAcquisition]
    ) -> None:
        logger.info('Cancelling %d pending tile acquisitions', len(pending))
        for task in pending:
            # Tasks cancelled before their first step never reach run()'s handler
            owners[task].cancel()
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
