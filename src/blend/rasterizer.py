"""
Blend weight rasterization.

Layer 0 starts at full weight everywhere. Each later layer paints its
polygons with a soft edge of ``blend_gauge`` metres centred on the outline,
and every cell it raises is taken proportionally from the layers before it,
so the weights of a cell keep summing to 255.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

from shared.constants import (
    BLEND_EMPTY_LAYER_MARKER,
    BLEND_GAUGE_EPSILON,
    BLEND_WEIGHT_FULL,
    PHASE_BLEND,
)
from shared.errors import UserCancelled
from shared.progress import PhaseProgress

if TYPE_CHECKING:
    from blend.classification import Polygon
    from geo.grid import OutputGrid
    from shared.progress import CancelToken, ProgressSink

logger = logging.getLogger(__name__)


def edge_weights(distance: np.ndarray, inside: np.ndarray, half_gauge: float) -> np.ndarray:
    """
    Candidate weights (0..255) for cells at ``distance`` from an outline.

    The ramp reaches 128 on the outline, 255 at ``half_gauge`` inside and 0
    at ``half_gauge`` outside. With a zero gauge the edge is hard.
    """
    if half_gauge <= BLEND_GAUGE_EPSILON:
        lerp = np.ones(distance.shape, dtype=np.float64)
    else:
        lerp = distance / half_gauge * np.where(inside, 0.5, -0.5) + 0.5
    weights = np.floor(BLEND_WEIGHT_FULL * lerp + 0.5)
    return np.clip(weights, 0, BLEND_WEIGHT_FULL).astype(np.int32)


def take_from_previous(
    previous: Sequence[np.ndarray], old: np.ndarray, new: np.ndarray
) -> list[np.ndarray]:
    """
    Rescale earlier layers where a layer grew from ``old`` to ``new``.

    Each earlier value is scaled by ``(255 - new) / (255 - old)`` and
    rounded; the rounding residue goes to the largest earlier layer so the
    earlier layers together hold exactly the rescaled total.

    Args:
        previous: Earlier layer values, one 1D array per layer.
        old: Current layer values before painting (all < 255).
        new: Current layer values after painting.

    Returns:
        Rescaled uint8 arrays, one per earlier layer.
    """
    if not previous:
        return []
    prev = np.stack([np.asarray(p, dtype=np.float64) for p in previous])
    factor = (BLEND_WEIGHT_FULL - new.astype(np.float64)) / (
        BLEND_WEIGHT_FULL - old.astype(np.float64)
    )
    scaled = np.floor(prev * factor + 0.5)
    target = np.floor(prev.sum(axis=0) * factor + 0.5)
    residue = target - scaled.sum(axis=0)
    largest = np.argmax(prev, axis=0)
    scaled[largest, np.arange(prev.shape[1])] += residue
    scaled = np.clip(scaled, 0, BLEND_WEIGHT_FULL).astype(np.uint8)
    return list(scaled)


class BlendWeightRasterizer:
    """Builds one uint8 weight map per layer over an OutputGrid."""

    def __init__(
        self,
        grid: OutputGrid,
        blend_gauge_m: float,
        *,
        keep_empty_layers: bool = True,
        progress: ProgressSink | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        if blend_gauge_m < 0:
            msg = f'blend_gauge_m must be >= 0, got {blend_gauge_m}'
            raise ValueError(msg)
        self.grid = grid
        self.half_gauge = float(blend_gauge_m) * 0.5
        self.keep_empty_layers = keep_empty_layers
        self.progress = progress
        self.cancel = cancel

    def rasterize(self, layers: Sequence[tuple[str, Sequence[Polygon]]]) -> dict[str, np.ndarray]:
        """
        Rasterize layers in priority order.

        Args:
            layers: (name, polygons) pairs; the first entry is the base layer
                and its polygons are ignored.

        Returns:
            Layer name -> uint8 array of ``grid.shape``, in input order.

        Raises:
            UserCancelled: the cancel token was set between polygons.
        """
        steps = sum(max(1, len(polygons)) for _, polygons in layers[1:])
        phase = PhaseProgress(self.progress, PHASE_BLEND, steps)
        phase.start()

        weights: dict[str, np.ndarray] = {}
        stack: list[np.ndarray] = []
        for index, (name, polygons) in enumerate(layers):
            if index == 0:
                layer = np.full(self.grid.shape, BLEND_WEIGHT_FULL, dtype=np.uint8)
            else:
                layer = np.zeros(self.grid.shape, dtype=np.uint8)
                if polygons:
                    logger.info('Rasterizing %d polygons into layer %s', len(polygons), name)
                    for polygon in polygons:
                        self._check_cancelled()
                        self.paint(polygon, layer, stack)
                        phase.step()
                else:
                    if self.keep_empty_layers:
                        # One marked cell keeps the layer from being dropped downstream
                        layer[self.marker_cell(index)] = BLEND_EMPTY_LAYER_MARKER
                    logger.info('Layer %s has no polygons', name)
                    phase.step()
            stack.append(layer)
            weights[name] = layer

        phase.finish()
        return weights

    def marker_cell(self, index: int) -> tuple[int, int]:
        """
        Cell marked for an empty layer at ``index`` (1 = first non-base layer).

        Markers start at the grid centre and step along the row-major order,
        so two empty layers never mark the same cell.
        """
        size = self.grid.size
        row, col = self.grid.center_index
        flat = (row * size + col + index - 1) % (size * size)
        return flat // size, flat % size

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_cancelled():
            msg = 'Blend weight rasterization cancelled by user'
            raise UserCancelled(msg)

    def paint(self, polygon: Polygon, layer: np.ndarray, previous: Sequence[np.ndarray]) -> int:
        """
        Paint one polygon into ``layer`` and rescale ``previous`` where it grew.

        Returns:
            Number of cells whose weight was raised.
        """
        half = self.half_gauge
        min_x, min_y, max_x, max_y = polygon.bounds
        cells = self.grid.cell_range(min_x - half, min_y - half, max_x + half, max_y + half)
        if cells is None:
            return 0
        col0, row0, col1, row1 = cells

        n = self.grid.half_size
        q = self.grid.quad_size
        xs = (np.arange(col0, col1 + 1, dtype=np.float64) - n) * q
        ys = (np.arange(row0, row1 + 1, dtype=np.float64) - n) * q
        gx, gy = np.meshgrid(xs, ys)
        distance, inside = polygon.boundary_distance(gx, gy)
        affected = inside | (distance < half)

        window = layer[row0 : row1 + 1, col0 : col1 + 1]
        old = window.astype(np.int32)
        candidate = edge_weights(distance, inside, half)
        new = np.where(affected, np.maximum(old, candidate), old)
        rows, cols = np.nonzero(new > old)
        if rows.size == 0:
            return 0

        views = [p[row0 : row1 + 1, col0 : col1 + 1] for p in previous]
        rescaled = take_from_previous(
            [v[rows, cols] for v in views], old[rows, cols], new[rows, cols]
        )
        for view, values in zip(views, rescaled):
            view[rows, cols] = values
        window[rows, cols] = new[rows, cols].astype(np.uint8)
        return int(rows.size)


def rasterize_blend_weights(
    grid: OutputGrid,
    layers: Sequence[tuple[str, Sequence[Polygon]]],
    blend_gauge_m: float,
    *,
    keep_empty_layers: bool = True,
    progress: ProgressSink | None = None,
    cancel: CancelToken | None = None,
) -> dict[str, np.ndarray]:
    """Convenience wrapper around BlendWeightRasterizer.rasterize."""
    rasterizer = BlendWeightRasterizer(
        grid,
        blend_gauge_m,
        keep_empty_layers=keep_empty_layers,
        progress=progress,
        cancel=cancel,
    )
    return rasterizer.rasterize(layers)
