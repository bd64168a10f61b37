"""Per-tile acquisition: cache lookup -> download -> decode.

Each acquisition is a small state machine run as one asyncio task. States
only move forward::

    NOT_STARTED -> CACHE_HIT -> DECODED
    NOT_STARTED -> DOWNLOADING -> DECODED | FAILED | CANCELLED
    NOT_STARTED -> FAILED | CANCELLED

Failures are recorded on the acquisition (``state`` + ``error``) and never
raised out of ``run()``; only task cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from shared.constants import DOWNLOAD_TIMEOUT_S, MAX_CONCURRENT_DOWNLOADS
from shared.errors import (
    DecodeFormatMismatch,
    ElevationError,
    InvalidStateTransition,
    NetworkFailure,
    TileTimeout,
)

if TYPE_CHECKING:
    from elevation.decoder import ElevationDecoder, ElevationTile
    from geo.tiling import TileKey, TileSource
    from infrastructure.http.client import TileFetch
    from tiles.cache import TileCache

logger = logging.getLogger(__name__)


class AcquisitionState(str, Enum):
    NOT_STARTED = 'not_started'
    CACHE_HIT = 'cache_hit'
    DOWNLOADING = 'downloading'
    DECODED = 'decoded'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


FINISHED_STATES = frozenset(
    {AcquisitionState.DECODED, AcquisitionState.FAILED, AcquisitionState.CANCELLED}
)

_ALLOWED_TRANSITIONS: dict[AcquisitionState, frozenset[AcquisitionState]] = {
    AcquisitionState.NOT_STARTED: frozenset(
        {
            AcquisitionState.CACHE_HIT,
            AcquisitionState.DOWNLOADING,
            AcquisitionState.FAILED,
            AcquisitionState.CANCELLED,
        }
    ),
    AcquisitionState.CACHE_HIT: frozenset({AcquisitionState.DECODED}),
    AcquisitionState.DOWNLOADING: frozenset(
        {AcquisitionState.DECODED, AcquisitionState.FAILED, AcquisitionState.CANCELLED}
    ),
    AcquisitionState.DECODED: frozenset(),
    AcquisitionState.FAILED: frozenset(),
    AcquisitionState.CANCELLED: frozenset(),
}


@dataclass
class AcquisitionContext:
    """
    Everything the acquisitions of one job share.

    The download slot semaphore and the pending-download counter live here
    rather than at module level, so several jobs can run side by side.
    """

    source: TileSource
    fetch: TileFetch
    decoder: ElevationDecoder
    cache: TileCache | None = None
    max_concurrent_downloads: int = MAX_CONCURRENT_DOWNLOADS
    timeout_s: float = DOWNLOAD_TIMEOUT_S
    pending_downloads: int = 0
    peak_downloads: int = 0
    semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrent_downloads < 1:
            msg = f'max_concurrent_downloads must be >= 1, got {self.max_concurrent_downloads}'
            raise ValueError(msg)
        self.semaphore = asyncio.Semaphore(self.max_concurrent_downloads)

    def download_started(self) -> None:
        self.pending_downloads += 1
        self.peak_downloads = max(self.peak_downloads, self.pending_downloads)

    def download_finished(self) -> None:
        self.pending_downloads -= 1


class TileAcquisition:
    """Drives one tile from cache or network to a decoded ElevationTile."""

    def __init__(self, key: TileKey, context: AcquisitionContext) -> None:
        self.key = key
        self.context = context
        self.state = AcquisitionState.NOT_STARTED
        self.history: list[AcquisitionState] = [AcquisitionState.NOT_STARTED]
        self.tile: ElevationTile | None = None
        self.error: ElevationError | None = None
        self.started_at: float | None = None

    def __repr__(self) -> str:
        return f'TileAcquisition({self.key}, {self.state.value})'

    @property
    def has_finished(self) -> bool:
        return self.state in FINISHED_STATES

    @property
    def succeeded(self) -> bool:
        return self.state is AcquisitionState.DECODED

    @property
    def elapsed_s(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at

    def _transition(self, new_state: AcquisitionState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            msg = f'Tile {self.key}: illegal transition {self.state.value} -> {new_state.value}'
            raise InvalidStateTransition(msg)
        self.state = new_state
        self.history.append(new_state)

    def _fail(self, error: ElevationError) -> None:
        if self.state is AcquisitionState.CANCELLED:
            return
        self.error = error
        self.tile = None
        self._transition(AcquisitionState.FAILED)

    def _decoded(self, tile: ElevationTile) -> None:
        # Late results of a tile cancelled mid-download are dropped
        if self.state is AcquisitionState.CANCELLED:
            return
        self.tile = tile
        self._transition(AcquisitionState.DECODED)

    def cancel(self) -> bool:
        """Mark an unfinished tile as cancelled. Returns False if it had already finished."""
        if self.has_finished:
            return False
        self.tile = None
        self._transition(AcquisitionState.CANCELLED)
        return True

    async def run(self) -> None:
        if self.has_finished:
            return
        try:
            if self._load_from_cache():
                return
            await self._download()
        except asyncio.CancelledError:
            self.cancel()
            raise

    def _load_from_cache(self) -> bool:
        cache = self.context.cache
        if cache is None:
            return False
        data = cache.load(self.key)
        if data is None:
            return False
        try:
            tile = self.context.decoder.decode(self.key, data)
        except DecodeFormatMismatch as e:
            logger.warning('Ignoring invalid cached tile %s: %s', self.key, e)
            return False
        self._transition(AcquisitionState.CACHE_HIT)
        self._decoded(tile)
        return True

    async def _download(self) -> None:
        ctx = self.context
        url = ctx.source.url(self.key)
        async with ctx.semaphore:
            if self.has_finished:
                return
            self._transition(AcquisitionState.DOWNLOADING)
            self.started_at = time.monotonic()
            ctx.download_started()
            try:
                data = await asyncio.wait_for(ctx.fetch(url), timeout=ctx.timeout_s)
            except asyncio.TimeoutError:
                logger.error(
                    'Download time-out for tile %s after %.1f s. Check your internet connection!',
                    self.key,
                    ctx.timeout_s,
                )
                self._fail(TileTimeout(f'Tile {self.key} timed out after {ctx.timeout_s:g} s'))
                return
            except NetworkFailure as e:
                logger.error('Download failure for tile %s: %s', self.key, e)
                self._fail(e)
                return
            except OSError as e:
                logger.error('Download connection failure for tile %s: %s', self.key, e)
                self._fail(NetworkFailure(f'Tile {self.key}: {e}'))
                return
            finally:
                ctx.download_finished()

        try:
            tile = ctx.decoder.decode(self.key, data)
        except DecodeFormatMismatch as e:
            logger.error('Downloaded tile %s is invalid: %s', self.key, e)
            self._fail(e)
            return

        if ctx.cache is not None:
            ctx.cache.store(self.key, data)
        self._decoded(tile)
