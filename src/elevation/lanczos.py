"""
Lanczos-windowed resampling of elevation rasters.

The kernel radius is 3, but only the 5x5 neighbourhood without its corners
(13 taps) is read; the corners lie outside the kernel window for every
fractional offset in [0, 1).
"""

from __future__ import annotations

import numpy as np

from shared.constants import LANCZOS_EPSILON, LANCZOS_FILTER_SIZE

# (dx, dy) offsets of the 13-tap stencil, row by row
TAPS = np.array(
    [
        (0, -2),
        (-1, -1), (0, -1), (1, -1),
        (-2, 0), (-1, 0), (0, 0), (1, 0), (2, 0),
        (-1, 1), (0, 1), (1, 1),
        (0, 2),
    ],
    dtype=np.int64,
)


def eval_lanczos(x, filter_size: int = LANCZOS_FILTER_SIZE):
    """
    Evaluate ``a * sin(pi x) * sin(pi x / a) / (pi x)^2``.

    Args:
        x: Distance, scalar or array. Values closer to 0 than 1e-4 give 1.
        filter_size: Kernel radius ``a``.

    Returns:
        float for scalar input, ndarray otherwise.
    """
    x = np.asarray(x, dtype=np.float64)
    xpi = x * np.pi
    with np.errstate(divide='ignore', invalid='ignore'):
        w = filter_size * np.sin(xpi) * np.sin(xpi / filter_size) / (xpi * xpi)
    w = np.where(np.abs(x) < LANCZOS_EPSILON, 1.0, w)
    if w.ndim == 0:
        return float(w)
    return w


def lanczos_tap_weights(fx, fy) -> np.ndarray:
    """
    Kernel weight of every tap for sample points at fractional offsets.

    Args:
        fx: Fractional x offset(s) in [0, 1) from the base pixel.
        fy: Fractional y offset(s) in [0, 1) from the base pixel.

    Returns:
        Array of shape ``fx.shape + (13,)``.
    """
    fx = np.asarray(fx, dtype=np.float64)[..., None]
    fy = np.asarray(fy, dtype=np.float64)[..., None]
    distance = np.hypot(fx - TAPS[:, 0], fy - TAPS[:, 1])
    return eval_lanczos(distance)


def sample_lanczos(data: np.ndarray, px, py) -> np.ndarray:
    """
    Lanczos-interpolated values of ``data`` at fractional pixel positions.

    The caller keeps every position at least 2 px from the low edges and
    3 px from the high edges, so the stencil never leaves the array.

    Args:
        data: 2D raster (rows, cols).
        px: Column positions.
        py: Row positions.

    Returns:
        ``sum(v_i * w_i) / sum(w_i)`` over the 13 taps, shaped like ``px``.
    """
    px = np.asarray(px, dtype=np.float64)
    py = np.asarray(py, dtype=np.float64)
    ix = np.floor(px).astype(np.int64)
    iy = np.floor(py).astype(np.int64)
    weights = lanczos_tap_weights(px - ix, py - iy)
    values = data[iy[..., None] + TAPS[:, 1], ix[..., None] + TAPS[:, 0]]
    return (values * weights).sum(axis=-1) / weights.sum(axis=-1)
