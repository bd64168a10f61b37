"""Local <-> Web Mercator projection used to place grid cells on the tile pyramid."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import numpy as np
from pyproj import CRS, Transformer

from shared.constants import (
    WEB_MERCATOR_CODE,
    WEB_MERCATOR_MAX_LAT_DEG,
    WGS84_CODE,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Projection(Protocol):
    """
    Bidirectional mapping between local metres and tile source space.

    Both directions return None for points outside the valid domain.
    """

    def to_source(self, x: float, y: float) -> tuple[float, float] | None: ...

    def from_source(self, mx: float, my: float) -> tuple[float, float] | None: ...


def project_to_source(
    projection: Projection, xs: np.ndarray, ys: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Project many local points at once.

    Uses ``projection.to_source_array`` when the projection provides it and
    falls back to one ``to_source`` call per point otherwise.

    Returns:
        (mx, my, valid) arrays with the shape of ``xs``.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.broadcast_to(np.asarray(ys, dtype=np.float64), xs.shape)
    to_array = getattr(projection, 'to_source_array', None)
    if callable(to_array):
        return to_array(xs, ys)

    mx = np.zeros(xs.shape, dtype=np.float64)
    my = np.zeros(xs.shape, dtype=np.float64)
    valid = np.zeros(xs.shape, dtype=bool)
    for idx in np.ndindex(xs.shape):
        result = projection.to_source(float(xs[idx]), float(ys[idx]))
        if result is not None:
            mx[idx], my[idx] = result
            valid[idx] = True
    return mx, my, valid


class LocalProjection:
    """
    Transverse Mercator plane centred on an origin, mapped to EPSG:3857.

    Local +x is east and local +y is south (terrain convention), so the
    northing is the negated local y.
    """

    def __init__(self, origin_lon: float, origin_lat: float) -> None:
        if not (-180.0 <= origin_lon <= 180.0) or not (-90.0 <= origin_lat <= 90.0):
            msg = f'Origin out of range: lon={origin_lon}, lat={origin_lat}'
            raise ValueError(msg)
        self.origin_lon = float(origin_lon)
        self.origin_lat = float(origin_lat)
        self.crs_local = CRS.from_proj4(
            f'+proj=tmerc +lat_0={self.origin_lat} +lon_0={self.origin_lon} '
            '+k=1 +x_0=0 +y_0=0 +ellps=WGS84 +units=m +no_defs'
        )
        crs_wgs84 = CRS.from_epsg(WGS84_CODE)
        crs_mercator = CRS.from_epsg(WEB_MERCATOR_CODE)
        self._t_local_to_wgs = Transformer.from_crs(self.crs_local, crs_wgs84, always_xy=True)
        self._t_wgs_to_local = Transformer.from_crs(crs_wgs84, self.crs_local, always_xy=True)
        self._t_wgs_to_merc = Transformer.from_crs(crs_wgs84, crs_mercator, always_xy=True)
        self._t_merc_to_wgs = Transformer.from_crs(crs_mercator, crs_wgs84, always_xy=True)
        logger.debug('LocalProjection at lon=%.6f lat=%.6f', self.origin_lon, self.origin_lat)

    def to_source_array(
        self, xs: np.ndarray, ys: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.broadcast_to(np.asarray(ys, dtype=np.float64), xs.shape)
        lons, lats = self._t_local_to_wgs.transform(xs, -ys)
        lons = np.asarray(lons, dtype=np.float64)
        lats = np.asarray(lats, dtype=np.float64)
        valid = (
            np.isfinite(lons)
            & np.isfinite(lats)
            & (np.abs(lats) <= WEB_MERCATOR_MAX_LAT_DEG)
        )
        safe_lats = np.where(valid, lats, 0.0)
        safe_lons = np.where(valid, lons, 0.0)
        mx, my = self._t_wgs_to_merc.transform(safe_lons, safe_lats)
        return np.asarray(mx, dtype=np.float64), np.asarray(my, dtype=np.float64), valid

    def to_source(self, x: float, y: float) -> tuple[float, float] | None:
        mx, my, valid = self.to_source_array(np.array([x]), np.array([y]))
        if not valid[0]:
            return None
        return float(mx[0]), float(my[0])

    def from_source(self, mx: float, my: float) -> tuple[float, float] | None:
        lon, lat = self._t_merc_to_wgs.transform(mx, my)
        return self.from_lonlat(lon, lat)

    def from_lonlat(self, lon: float, lat: float) -> tuple[float, float] | None:
        """WGS84 degrees -> local metres (x east, y south)."""
        if not (np.isfinite(lon) and np.isfinite(lat)) or abs(lat) > WEB_MERCATOR_MAX_LAT_DEG:
            return None
        e, n = self._t_wgs_to_local.transform(lon, lat)
        if not (np.isfinite(e) and np.isfinite(n)):
            return None
        return float(e), -float(n)
