"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum


class ComponentKind(Enum):
    COUNTRY = "country"
    VOIVODESHIP = "voivodeship"
    COUNTY = "county"
    MUNICIPALITY = "municipality"
    CITY = "city"
    STREET = "street"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ComponentInfo:
    """Descriptor of an administrative unit, city or street (schema 2012)."""

    kind: ComponentKind
    name: str
    teryt_id: str | None = None


UNKNOWN_COMPONENT = ComponentInfo(kind=ComponentKind.UNKNOWN, name="")


@dataclass(frozen=True)
class CityInfo:
    name: str
    simc_id: str | None
    municipality_teryt_id: str | None


@dataclass(frozen=True)
class StreetInfo:
    name: str
    ulic_id: str | None


@dataclass(frozen=True)
class TercEntry:
    voivodeship_teryt_id: str
    voivodeship_name: str
    county_teryt_id: str
    county_name: str
    municipality_name: str


@dataclass(frozen=True)
class PointCoords:
    lon: float
    lat: float
    x2180: float
    y2180: float


@dataclass
class AddressRecord:
    """One address point. Any field left at ``None`` becomes a null cell."""

    namespace: str | None = None
    local_id: str | None = None
    version_ms: int | None = None
    lifecycle_start_ms: int | None = None
    valid_from: date | None = None
    valid_to: date | None = None
    voivodeship_teryt_id: str | None = None
    voivodeship: str | None = None
    county_teryt_id: str | None = None
    county: str | None = None
    municipality_teryt_id: str | None = None
    municipality: str | None = None
    city_teryt_id: str | None = None
    city: str | None = None
    city_part: str | None = None
    street_teryt_id: str | None = None
    street: str | None = None
    house_number: str | None = None
    postcode: str | None = None
    status: str | None = None
    coords: PointCoords | None = None
