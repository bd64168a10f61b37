"""HTTP client infrastructure."""
from infrastructure.http.client import (
    TileFetch,
    fetch_tile_bytes,
    make_http_session,
    make_tile_fetch,
    resolve_cache_dir,
)

__all__ = [
    'TileFetch',
    'fetch_tile_bytes',
    'make_http_session',
    'make_tile_fetch',
    'resolve_cache_dir',
]
