"""Writing build results to disk."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

if TYPE_CHECKING:
    from services.terrain_job import TerrainBuildResult

logger = logging.getLogger(__name__)


def _safe_name(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]+', '_', name).strip('_') or 'layer'


def save_outputs(
    result: TerrainBuildResult, output_dir: str | Path, stem: str = 'terrain'
) -> dict[str, Path]:
    """
    Save a successful build.

    Writes ``<stem>.npz`` (heights, scale, elevation range and one
    ``weight_<layer>`` array per layer), a 16-bit grayscale ``<stem>_height.png``
    and an 8-bit ``<stem>_weight_<layer>.png`` per layer.

    Returns:
        Mapping of output kind ('npz', 'height', 'weight:<layer>') to path.
    """
    if not result.success or result.heights is None or result.transform is None:
        msg = f'Nothing to save for a failed build: {result.message}'
        raise ValueError(msg)

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    paths: dict[str, Path] = {}

    arrays: dict[str, np.ndarray] = {
        'heights': result.heights,
        'scale': np.array(result.transform.as_tuple(), dtype=np.float64),
        'elevation_range': np.array(
            [result.elevation_min, result.elevation_max], dtype=np.float64
        ),
    }
    for name, weights in result.weights.items():
        arrays[f'weight_{_safe_name(name)}'] = weights
    npz_path = out / f'{stem}.npz'
    np.savez_compressed(npz_path, **arrays)
    paths['npz'] = npz_path

    height_path = out / f'{stem}_height.png'
    Image.fromarray(np.ascontiguousarray(result.heights, dtype=np.uint16)).save(height_path)
    paths['height'] = height_path

    for name, weights in result.weights.items():
        weight_path = out / f'{stem}_weight_{_safe_name(name)}.png'
        Image.fromarray(np.ascontiguousarray(weights, dtype=np.uint8)).save(weight_path)
        paths[f'weight:{name}'] = weight_path

    logger.info('Saved terrain outputs to %s (%d files)', out, len(paths))
    return paths
