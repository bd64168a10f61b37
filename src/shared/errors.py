"""Error kinds raised by the terrain grid builder.

Per-tile errors are stored on the acquisition that produced them; the
scheduler re-raises the first one and the job boundary turns it into a
failed result with a readable message.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_BOUNDS = 'invalid_bounds'
    DECODE_FORMAT_MISMATCH = 'decode_format_mismatch'
    NETWORK_FAILURE = 'network_failure'
    TIMEOUT = 'timeout'
    USER_CANCELLED = 'user_cancelled'
    INCOMPLETE_TILE_SET = 'incomplete_tile_set'


class ElevationError(Exception):
    """Base class for all job-level failures."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidBounds(ElevationError):
    kind = ErrorKind.INVALID_BOUNDS


class DecodeFormatMismatch(ElevationError):
    kind = ErrorKind.DECODE_FORMAT_MISMATCH


class NetworkFailure(ElevationError):
    kind = ErrorKind.NETWORK_FAILURE

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TileTimeout(ElevationError):
    kind = ErrorKind.TIMEOUT


class UserCancelled(ElevationError):
    kind = ErrorKind.USER_CANCELLED


class IncompleteTileSet(ElevationError):
    kind = ErrorKind.INCOMPLETE_TILE_SET


class InvalidStateTransition(RuntimeError):
    """Raised when an acquisition would revisit or skip a state."""
