"""Tests for AcquisitionScheduler."""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import pytest

from elevation.decoder import ElevationDecoder
from geo.tiling import TileKey, TileSource
from shared.constants import PHASE_DOWNLOAD
from shared.errors import ErrorKind, IncompleteTileSet, NetworkFailure, TileTimeout, UserCancelled
from shared.progress import CancelToken
from tiles.acquisition import AcquisitionContext, AcquisitionState
from tiles.scheduler import AcquisitionScheduler, global_elevation_range

SOURCE = TileSource(url_template='mem://{z}/{x}/{y}', tile_width=8, tile_height=8)


def keys(n: int) -> list[TileKey]:
    return [TileKey(14, i, 0) for i in range(n)]


def key_from_url(url: str) -> TileKey:
    z, x, y = url.removeprefix('mem://').split('/')
    return TileKey(int(z), int(x), int(y))


class RecordingSink:
    def __init__(self):
        self.calls = []

    def on_progress(self, phase, fraction):
        self.calls.append((phase, fraction))


class FakeServer:
    """In-memory tile server with per-tile behaviour and concurrency tracking."""

    def __init__(self, terrarium_png, delay: float = 0.0):
        self.terrarium_png = terrarium_png
        self.delay = delay
        self.fail: set[TileKey] = set()
        self.hang: set[TileKey] = set()
        self.delays: dict[TileKey, float] = {}
        self.requests: list[TileKey] = []
        self.completed: list[TileKey] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, url: str) -> bytes:
        key = key_from_url(url)
        self.requests.append(key)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if key in self.delays:
                await asyncio.sleep(self.delays[key])
            if key in self.fail:
                raise NetworkFailure(f'HTTP 500 while downloading {url}', status=500)
            if key in self.hang:
                await asyncio.Event().wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            data = self.terrarium_png(float(10 * key.x), size=(8, 8))
            self.completed.append(key)
            return data
        finally:
            self.active -= 1


def make_scheduler(server, cache=None, *, progress=None, cancel=None, **kwargs):
    context = AcquisitionContext(
        source=SOURCE,
        fetch=server.fetch,
        decoder=ElevationDecoder(SOURCE),
        cache=cache,
        **kwargs,
    )
    return AcquisitionScheduler(context, progress=progress, cancel=cancel, poll_interval=0.01)


@pytest.fixture
def cache():
    from tiles.cache import TileCache

    with tempfile.TemporaryDirectory() as tmpdir:
        yield TileCache(cache_dir=Path(tmpdir))


class TestAcquisitionScheduler:
    """Tests for AcquisitionScheduler.run."""

    @pytest.mark.asyncio
    async def test_all_tiles_decoded(self, terrarium_png):
        server = FakeServer(terrarium_png)
        scheduler = make_scheduler(server)

        result = await scheduler.run(keys(9))

        assert set(result.tiles) == set(keys(9))
        assert result.elevation_min == 0.0
        assert result.elevation_max == 80.0
        assert result.elevation_range == 80.0
        assert all(a.succeeded for a in scheduler.acquisitions)

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, terrarium_png):
        server = FakeServer(terrarium_png, delay=0.02)
        scheduler = make_scheduler(server, max_concurrent_downloads=3)

        await scheduler.run(keys(12))

        assert server.max_active <= 3
        assert scheduler.context.peak_downloads <= 3
        assert scheduler.context.pending_downloads == 0

    @pytest.mark.asyncio
    async def test_default_cap_is_ten(self, terrarium_png):
        server = FakeServer(terrarium_png, delay=0.02)
        scheduler = make_scheduler(server)

        result = await scheduler.run(keys(25))

        assert server.max_active <= 10
        assert result.peak_downloads == scheduler.context.peak_downloads <= 10

    @pytest.mark.asyncio
    async def test_cache_hits_skip_network(self, terrarium_png, cache):
        for key in keys(4):
            cache.store(key, terrarium_png(5.0, size=(8, 8)))
        server = FakeServer(terrarium_png)
        scheduler = make_scheduler(server, cache)

        result = await scheduler.run(keys(4))

        assert server.requests == []
        assert result.cache_hits == 4
        assert result.downloads == 0
        assert result.peak_downloads == 0

    @pytest.mark.asyncio
    async def test_downloads_populate_cache(self, terrarium_png, cache):
        scheduler = make_scheduler(FakeServer(terrarium_png), cache)
        await scheduler.run(keys(3))
        assert all(cache.exists(k) for k in keys(3))

    @pytest.mark.asyncio
    async def test_fail_fast_cancels_pending(self, terrarium_png):
        server = FakeServer(terrarium_png)
        all_keys = keys(15)
        server.fail = {all_keys[0]}
        server.hang = set(all_keys[1:])
        scheduler = make_scheduler(server, max_concurrent_downloads=4)

        with pytest.raises(NetworkFailure) as exc_info:
            await scheduler.run(all_keys)

        assert exc_info.value.kind is ErrorKind.NETWORK_FAILURE
        states = {a.key: a.state for a in scheduler.acquisitions}
        assert states[all_keys[0]] is AcquisitionState.FAILED
        assert all(states[k] is AcquisitionState.CANCELLED for k in all_keys[1:])
        assert scheduler.context.pending_downloads == 0

    @pytest.mark.asyncio
    async def test_middle_tile_failure_cancels_slower_tiles(self, terrarium_png):
        server = FakeServer(terrarium_png)
        all_keys = keys(9)
        failing = all_keys[4]
        server.fail = {failing}
        server.delays = {failing: 0.05}
        server.delays.update({k: 0.5 for k in all_keys[5:]})
        scheduler = make_scheduler(server)

        with pytest.raises(NetworkFailure):
            await scheduler.run(all_keys)

        states = {a.key: a.state for a in scheduler.acquisitions}
        assert all(states[k] is AcquisitionState.DECODED for k in all_keys[:4])
        assert states[failing] is AcquisitionState.FAILED
        assert all(states[k] is AcquisitionState.CANCELLED for k in all_keys[5:])

        # Slow downloads were aborted, not left to finish in the background
        await asyncio.sleep(0.6)
        assert not set(server.completed) & set(all_keys[5:])
        assert {a.key: a.state for a in scheduler.acquisitions} == states
        assert all(a.tile is None for a in scheduler.acquisitions if a.key in all_keys[4:])
        assert scheduler.context.pending_downloads == 0

    @pytest.mark.asyncio
    async def test_timeout_aborts_job(self, terrarium_png):
        server = FakeServer(terrarium_png)
        server.hang = {keys(3)[1]}
        scheduler = make_scheduler(server, timeout_s=0.05)

        with pytest.raises(TileTimeout):
            await scheduler.run(keys(3))

    @pytest.mark.asyncio
    async def test_user_cancel_before_start(self, terrarium_png):
        cancel = CancelToken()
        cancel.cancel()
        scheduler = make_scheduler(FakeServer(terrarium_png), cancel=cancel)

        with pytest.raises(UserCancelled):
            await scheduler.run(keys(5))

        assert all(a.state is AcquisitionState.CANCELLED for a in scheduler.acquisitions)

    @pytest.mark.asyncio
    async def test_user_cancel_while_downloading(self, terrarium_png):
        server = FakeServer(terrarium_png)
        server.hang = set(keys(3))
        cancel = CancelToken()
        scheduler = make_scheduler(server, cancel=cancel)
        asyncio.get_running_loop().call_later(0.05, cancel.cancel)

        with pytest.raises(UserCancelled) as exc_info:
            await scheduler.run(keys(3))

        assert exc_info.value.kind is ErrorKind.USER_CANCELLED
        assert all(a.state is AcquisitionState.CANCELLED for a in scheduler.acquisitions)

    @pytest.mark.asyncio
    async def test_externally_cancelled_tile_is_incomplete(self, terrarium_png):
        server = FakeServer(terrarium_png)
        scheduler = make_scheduler(server)
        async def run_with_one_cancelled():
            task = asyncio.ensure_future(scheduler.run(keys(2)))
            while not scheduler.acquisitions:
                await asyncio.sleep(0)
            scheduler.acquisitions[1].cancel()
            return await task

        with pytest.raises(IncompleteTileSet):
            await run_with_one_cancelled()

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, terrarium_png):
        sink = RecordingSink()
        scheduler = make_scheduler(FakeServer(terrarium_png), progress=sink)

        await scheduler.run(keys(6))

        fractions = [f for phase, f in sink.calls if phase == PHASE_DOWNLOAD]
        assert fractions[0] == 0.0
        assert fractions[-1] == 1.0
        assert fractions == sorted(fractions)
        assert all(0.0 <= f <= 1.0 for f in fractions)

    @pytest.mark.asyncio
    async def test_duplicate_keys_acquired_once(self, terrarium_png):
        server = FakeServer(terrarium_png)
        scheduler = make_scheduler(server)
        result = await scheduler.run(keys(2) + keys(2))
        assert len(result.tiles) == 2
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_no_valid_samples_gives_zero_range(self, terrarium_png):
        class NoDataServer(FakeServer):
            async def fetch(self, url):
                return self.terrarium_png(-32768.0, size=(8, 8))

        result = await make_scheduler(NoDataServer(terrarium_png)).run(keys(2))
        assert (result.elevation_min, result.elevation_max) == (0.0, 0.0)

    @pytest.mark.asyncio
    async def test_empty_key_list(self, terrarium_png):
        result = await make_scheduler(FakeServer(terrarium_png)).run([])
        assert result.tiles == {}


class TestGlobalElevationRange:
    """Tests for global_elevation_range."""

    def test_empty(self):
        assert global_elevation_range([]) == (0.0, 0.0)
