from __future__ import annotations

import logging
import os
import ssl
from collections.abc import Awaitable, Callable
from http import HTTPStatus
from pathlib import Path

import aiohttp
import certifi

from shared.constants import (
    ELEVATION_CACHE_DIR,
    ELEVATION_CACHE_DIR_ENV,
    MAX_CONCURRENT_DOWNLOADS,
)
from shared.errors import NetworkFailure

logger = logging.getLogger(__name__)

TileFetch = Callable[[str], Awaitable[bytes]]


def resolve_cache_dir() -> Path:
    """Tile cache directory: $ELEVATION_CACHE_DIR, else <tempdir>/ElevationCache."""
    override = os.getenv(ELEVATION_CACHE_DIR_ENV)
    if override:
        return Path(override).expanduser().resolve()
    return Path(ELEVATION_CACHE_DIR).resolve()


def make_http_session(max_connections: int = MAX_CONCURRENT_DOWNLOADS) -> aiohttp.ClientSession:
    # SSL context with certifi certificates
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context, limit=max(1, int(max_connections)))
    return aiohttp.ClientSession(connector=connector)


def _path_only(url: str) -> str:
    # Keep tokens out of logs and error messages
    return url.split('?', 1)[0]


async def fetch_tile_bytes(client: aiohttp.ClientSession, url: str) -> bytes:
    """
    GET one tile and return the body.

    No retries: the caller treats any failure as final for the job.

    Raises:
        NetworkFailure: connection error or a non-200 status.
    """
    path = _path_only(url)
    try:
        async with client.get(url) as resp:
            sc = resp.status
            if sc != HTTPStatus.OK:
                msg = f'HTTP {sc} while downloading {path}'
                raise NetworkFailure(msg, status=sc)
            return await resp.read()
    except aiohttp.ClientError as e:
        msg = f'Download connection failure for {path}: {e}'
        raise NetworkFailure(msg) from e


def make_tile_fetch(client: aiohttp.ClientSession) -> TileFetch:
    """Bind a session into the ``fetch(url) -> bytes`` primitive used by acquisitions."""

    async def fetch(url: str) -> bytes:
        return await fetch_tile_bytes(client, url)

    return fetch
