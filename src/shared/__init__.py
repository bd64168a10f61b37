"""Shared utilities and helpers."""
from shared.diagnostics import get_memory_info, log_memory_usage
from shared.errors import (
    DecodeFormatMismatch,
    ElevationError,
    ErrorKind,
    IncompleteTileSet,
    InvalidBounds,
    InvalidStateTransition,
    NetworkFailure,
    TileTimeout,
    UserCancelled,
)
from shared.progress import (
    CancelToken,
    ConsoleProgress,
    NullProgress,
    PhaseProgress,
    ProgressSink,
)

__all__ = [
    'CancelToken',
    'ConsoleProgress',
    'DecodeFormatMismatch',
    'ElevationError',
    'ErrorKind',
    'IncompleteTileSet',
    'InvalidBounds',
    'InvalidStateTransition',
    'NetworkFailure',
    'NullProgress',
    'PhaseProgress',
    'ProgressSink',
    'TileTimeout',
    'UserCancelled',
    'get_memory_info',
    'log_memory_usage',
]
