"""File-backed elevation tile cache.

One file per tile, ``elevation_<zoom>_<x>_<y>.png`` under the cache
directory. Files hold the raw fetched bytes and are re-decoded on every
load; entries never expire.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from infrastructure.http.client import resolve_cache_dir

if TYPE_CHECKING:
    from geo.tiling import TileKey

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics about the tile cache."""

    total_tiles: int
    total_size_bytes: int


class TileCache:
    """Disk cache of raw tile bytes keyed by TileKey.

    Loaded bytes are not trusted: the caller still decodes and validates
    them. Writes are best effort and never raise.

    Usage:
        cache = TileCache()
        cache.store(key, tile_bytes)
        data = cache.load(key)
    """

    def __init__(self, cache_dir: str | Path | None = None) -> None:
        """Initialize tile cache.

        Args:
            cache_dir: Directory for cache files. Defaults to resolve_cache_dir().
        """
        self.cache_dir = Path(cache_dir) if cache_dir is not None else resolve_cache_dir()
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning('Cannot create tile cache dir %s: %s', self.cache_dir, e)
        logger.info('TileCache initialized at %s', self.cache_dir)

    def path_for(self, key: TileKey) -> Path:
        return self.cache_dir / key.cache_name()

    def load(self, key: TileKey) -> bytes | None:
        """Read cached bytes for a tile, or None when absent or unreadable."""
        path = self.path_for(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.debug('Cache miss for tile %s', key)
            return None
        except OSError as e:
            logger.warning('Failed to read cached tile %s: %s', path, e)
            return None
        if not data:
            return None
        logger.debug('Cache hit for tile %s (%d bytes)', key, len(data))
        return data

    def store(self, key: TileKey, data: bytes) -> bool:
        """Write tile bytes; returns False instead of raising on I/O errors."""
        path = self.path_for(key)
        tmp_path = path.with_name(path.name + '.part')
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning('Failed to write tile %s to cache: %s', key, e)
            return False
        return True

    def exists(self, key: TileKey) -> bool:
        return self.path_for(key).is_file()

    def delete(self, key: TileKey) -> bool:
        """Delete a tile from cache. Returns True if a file was removed."""
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            return False
        return True

    def stats(self) -> CacheStats:
        total_tiles = 0
        total_size = 0
        for path in self.cache_dir.glob('elevation_*_*_*.png'):
            try:
                total_size += path.stat().st_size
            except OSError:
                continue
            total_tiles += 1
        return CacheStats(total_tiles=total_tiles, total_size_bytes=total_size)

    def __enter__(self) -> TileCache:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        return None
