"""Blend module - land-use polygons and per-layer blend weight maps."""

from .classification import Polygon, VectorWay, select_layer_polygons, ways_from_geojson
from .rasterizer import (
    BlendWeightRasterizer,
    edge_weights,
    rasterize_blend_weights,
    take_from_previous,
)

__all__ = [
    'BlendWeightRasterizer',
    'Polygon',
    'VectorWay',
    'edge_weights',
    'rasterize_blend_weights',
    'select_layer_polygons',
    'take_from_previous',
    'ways_from_geojson',
]
