"""Point extraction from gml:pos and reprojection PL-1992 -> WGS84."""

from __future__ import annotations

import math

from pyproj import CRS, Transformer

from prg_convert.common.errors import CoordinateParseError
from prg_convert.common.models import PointCoords

EPSG_NATIONAL_GRID = 2180
EPSG_GEOGRAPHIC = 4326


class Reprojector:
    def __init__(self) -> None:
        self.national_grid = CRS.from_epsg(EPSG_NATIONAL_GRID)
        self.geographic = CRS.from_epsg(EPSG_GEOGRAPHIC)
        self._forward = Transformer.from_crs(self.national_grid, self.geographic, always_xy=True)
        self._inverse = Transformer.from_crs(self.geographic, self.national_grid, always_xy=True)

    def to_geographic(self, easting: float, northing: float) -> tuple[float, float]:
        """Return (lon, lat) in degrees."""
        lon, lat = self._forward.transform(easting, northing)
        return lon, lat

    def to_national_grid(self, lon: float, lat: float) -> tuple[float, float]:
        """Return (easting, northing) in metres."""
        easting, northing = self._inverse.transform(lon, lat)
        return easting, northing


_DEFAULT_REPROJECTOR: Reprojector | None = None


def default_reprojector() -> Reprojector:
    global _DEFAULT_REPROJECTOR
    if _DEFAULT_REPROJECTOR is None:
        _DEFAULT_REPROJECTOR = Reprojector()
    return _DEFAULT_REPROJECTOR


def _finite_float(value: str) -> float | None:
    try:
        parsed = float(value)
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def parse_gml_pos(
    text: str,
    reprojector: Reprojector | None = None,
) -> PointCoords | None:
    """Parse a two-token gml:pos value into planar and geographic coordinates.

    Returns None when either token is not a finite number (the registry uses
    ``NaN NaN`` for addresses without a position). Any other token count is
    a CoordinateParseError.
    """
    tokens = text.split()
    if len(tokens) != 2:
        raise CoordinateParseError(f"Could not parse coordinates in gml:pos: `{text.strip()}`.")

    first = _finite_float(tokens[0])
    second = _finite_float(tokens[1])
    if first is None or second is None:
        return None

    # gml:pos in EPSG:2180 lists northing first.
    northing, easting = first, second

    lon, lat = (reprojector or default_reprojector()).to_geographic(easting, northing)
    return PointCoords(lon=lon, lat=lat, x2180=easting, y2180=northing)
