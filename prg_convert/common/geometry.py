"""Geometry helpers."""

from __future__ import annotations

from typing import Any

from pyproj import CRS
from shapely.geometry import Point

from prg_convert.common.models import PointCoords

GEOPARQUET_VERSION = "1.1.0"


def point_for_epsg(coords: PointCoords | None, epsg: int) -> tuple[float, float] | None:
    if coords is None:
        return None
    if epsg == 4326:
        return coords.lon, coords.lat
    return coords.x2180, coords.y2180


def point_wkb(coords: PointCoords | None, epsg: int) -> bytes | None:
    xy = point_for_epsg(coords, epsg)
    if xy is None:
        return None
    return Point(*xy).wkb


def projjson_for_epsg(epsg: int) -> dict[str, Any]:
    return CRS.from_epsg(epsg).to_json_dict()


def geoparquet_metadata(column: str, epsg: int) -> dict[str, Any]:
    return {
        "version": GEOPARQUET_VERSION,
        "primary_column": column,
        "columns": {
            column: {
                "encoding": "WKB",
                "geometry_types": ["Point"],
                "crs": projjson_for_epsg(epsg),
            }
        },
    }
