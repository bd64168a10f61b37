"""Domain layer - validated build settings."""
from domain.models import (
    LayerSettings,
    TerrainBuildSettings,
    TileSourceSettings,
    default_layers,
)

__all__ = [
    'LayerSettings',
    'TerrainBuildSettings',
    'TileSourceSettings',
    'default_layers',
]
