"""Land-use polygons for blend layers.

Vector ways arrive in local metres (x east, y south). A layer claims the
closed ways whose (type, category) pair is in its match list.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
import shapely
from shapely.geometry import Polygon as ShapelyPolygon

if TYPE_CHECKING:
    from domain.models import LayerSettings
    from geo.projection import LocalProjection

logger = logging.getLogger(__name__)

# GeoJSON property keys that carry a way type, checked in this order
WAY_TYPE_KEYS = ('landuse', 'leisure', 'natural')


@dataclass(frozen=True)
class VectorWay:
    """A tagged polyline or ring from the vector source."""

    points: tuple[tuple[float, float], ...]
    way_type: str
    category: str
    closed: bool = False


@dataclass(frozen=True)
class Polygon:
    """Closed ring in local metres with its precomputed bounding box."""

    points: tuple[tuple[float, float], ...]
    shape: Any = field(compare=False, repr=False)
    bounds: tuple[float, float, float, float]

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> Polygon | None:
        """Build a polygon from a ring; returns None for degenerate rings."""
        ring = tuple((float(p[0]), float(p[1])) for p in points)
        if len(ring) > 1 and ring[0] == ring[-1]:
            ring = ring[:-1]
        if len(set(ring)) < 3:
            return None
        shape = ShapelyPolygon(ring)
        if not shape.is_valid:
            # Self-intersecting rings from OSM: rebuild a valid area
            shape = shape.buffer(0)
        if shape.is_empty or shape.area <= 0.0:
            return None
        shapely.prepare(shape)
        return cls(points=ring, shape=shape, bounds=tuple(shape.bounds))

    def boundary_distance(self, xs, ys) -> tuple[np.ndarray, np.ndarray]:
        """
        Distance of each point to the polygon outline and whether it lies inside.

        Points on the outline count as inside.

        Returns:
            (distance, inside) arrays shaped like ``xs``.
        """
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        points = shapely.points(xs, ys)
        distance = shapely.distance(self.shape.boundary, points)
        inside = shapely.intersects_xy(self.shape, xs, ys)
        return np.asarray(distance, dtype=np.float64), np.asarray(inside, dtype=bool)


def select_layer_polygons(layer: LayerSettings, ways: Iterable[VectorWay]) -> list[Polygon]:
    """Closed ways whose (way_type, category) is claimed by ``layer``."""
    matches = {(t, c) for t, c in layer.matches}
    polygons: list[Polygon] = []
    skipped = 0
    for way in ways:
        if not way.closed or (way.way_type, way.category) not in matches:
            continue
        polygon = Polygon.from_points(way.points)
        if polygon is None:
            skipped += 1
            continue
        polygons.append(polygon)
    if skipped:
        logger.warning('Layer %s: skipped %d degenerate polygons', layer.name, skipped)
    logger.debug('Layer %s: %d polygons', layer.name, len(polygons))
    return polygons


def _way_tag(properties: dict[str, Any]) -> tuple[str, str] | None:
    for key in WAY_TYPE_KEYS:
        value = properties.get(key)
        if isinstance(value, str) and value:
            return key, value
    return None


def _to_local(
    projection: LocalProjection, coords: Iterable[Sequence[float]]
) -> tuple[tuple[float, float], ...] | None:
    points = []
    for coord in coords:
        local = projection.from_lonlat(float(coord[0]), float(coord[1]))
        if local is None:
            return None
        points.append(local)
    return tuple(points)


def ways_from_geojson(data: dict[str, Any], projection: LocalProjection) -> list[VectorWay]:
    """
    Convert a GeoJSON FeatureCollection (WGS84) into local-metre ways.

    Polygon and MultiPolygon exteriors become closed ways. LineStrings are
    closed when their first and last coordinates coincide. Features without
    a landuse/leisure/natural tag, and holes, are ignored.
    """
    ways: list[VectorWay] = []
    for feature in data.get('features') or []:
        tag = _way_tag(feature.get('properties') or {})
        geometry = feature.get('geometry') or {}
        if tag is None:
            continue
        gtype = geometry.get('type')
        coords = geometry.get('coordinates') or []
        if gtype == 'Polygon':
            rings = [(coords[0], True)] if coords else []
        elif gtype == 'MultiPolygon':
            rings = [(poly[0], True) for poly in coords if poly]
        elif gtype == 'LineString':
            rings = [(coords, len(coords) > 2 and coords[0] == coords[-1])]
        else:
            continue
        for ring, closed in rings:
            points = _to_local(projection, ring)
            if points is None:
                logger.debug('Skipping %s=%s way outside the projection domain', *tag)
                continue
            ways.append(VectorWay(points=points, way_type=tag[0], category=tag[1], closed=closed))
    logger.info('Loaded %d vector ways', len(ways))
    return ways
