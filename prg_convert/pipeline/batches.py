"""Columnar accumulation of address records into Arrow record batches."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import pyarrow as pa

from prg_convert.common.errors import ConfigError, ContractError
from prg_convert.common.geometry import point_wkb
from prg_convert.common.models import AddressRecord
from prg_convert.pipeline.coordinates import EPSG_GEOGRAPHIC, EPSG_NATIONAL_GRID

GEOMETRY_COLUMN = "geometry"
TIMESTAMP_MS_UTC = pa.timestamp("ms", tz="UTC")


class OutputShape(Enum):
    TABULAR = "tabular"
    GEOSPATIAL = "geospatial"


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    type: pa.DataType
    extract: Callable[[AddressRecord], Any]


def _coord(attr: str) -> Callable[[AddressRecord], float | None]:
    def extract(record: AddressRecord) -> float | None:
        if record.coords is None:
            return None
        return getattr(record.coords, attr)

    return extract


LEADING_COLUMNS = (
    ColumnSpec("przestrzen_nazw", pa.string(), lambda r: r.namespace),
    ColumnSpec("lokalny_id", pa.string(), lambda r: r.local_id),
    ColumnSpec("wersja_id", TIMESTAMP_MS_UTC, lambda r: r.version_ms),
    ColumnSpec("poczatek_wersji_obiektu", TIMESTAMP_MS_UTC, lambda r: r.lifecycle_start_ms),
    ColumnSpec("wazny_od_lub_data_nadania", pa.date32(), lambda r: r.valid_from),
    ColumnSpec("wazny_do", pa.date32(), lambda r: r.valid_to),
    ColumnSpec("teryt_wojewodztwo", pa.string(), lambda r: r.voivodeship_teryt_id),
    ColumnSpec("wojewodztwo", pa.string(), lambda r: r.voivodeship),
    ColumnSpec("teryt_powiat", pa.string(), lambda r: r.county_teryt_id),
    ColumnSpec("powiat", pa.string(), lambda r: r.county),
    ColumnSpec("teryt_gmina", pa.string(), lambda r: r.municipality_teryt_id),
    ColumnSpec("gmina", pa.string(), lambda r: r.municipality),
    ColumnSpec("teryt_miejscowosc", pa.string(), lambda r: r.city_teryt_id),
    ColumnSpec("miejscowosc", pa.string(), lambda r: r.city),
    ColumnSpec("czesc_miejscowosci", pa.string(), lambda r: r.city_part),
    ColumnSpec("teryt_ulica", pa.string(), lambda r: r.street_teryt_id),
    ColumnSpec("ulica", pa.string(), lambda r: r.street),
    ColumnSpec("numer_porzadkowy", pa.string(), lambda r: r.house_number),
    ColumnSpec("kod_pocztowy", pa.string(), lambda r: r.postcode),
    ColumnSpec("status", pa.string(), lambda r: r.status),
)
PLANAR_COLUMNS = (
    ColumnSpec("x_epsg_2180", pa.float64(), _coord("x2180")),
    ColumnSpec("y_epsg_2180", pa.float64(), _coord("y2180")),
)
GEOGRAPHIC_COLUMNS = (
    ColumnSpec("dlugosc_geograficzna", pa.float64(), _coord("lon")),
    ColumnSpec("szerokosc_geograficzna", pa.float64(), _coord("lat")),
)


def column_specs(shape: OutputShape, geometry_epsg: int = EPSG_NATIONAL_GRID) -> tuple[ColumnSpec, ...]:
    if shape is OutputShape.TABULAR:
        return LEADING_COLUMNS + PLANAR_COLUMNS + GEOGRAPHIC_COLUMNS
    if geometry_epsg not in (EPSG_NATIONAL_GRID, EPSG_GEOGRAPHIC):
        raise ConfigError(f"Unsupported geometry CRS: EPSG:{geometry_epsg}")
    geometry = ColumnSpec(GEOMETRY_COLUMN, pa.binary(), lambda r: point_wkb(r.coords, geometry_epsg))
    return LEADING_COLUMNS + GEOGRAPHIC_COLUMNS + (geometry,)


def build_schema(shape: OutputShape, geometry_epsg: int = EPSG_NATIONAL_GRID) -> pa.Schema:
    # Every column is nullable: a feature that omits a field still gets a null cell.
    return pa.schema([pa.field(spec.name, spec.type, nullable=True) for spec in column_specs(shape, geometry_epsg)])


class BatchAccumulator:
    """Collects records column by column and hands them out as record batches.

    Column lengths are checked against the row count after every append; a
    drift is a ContractError. ``flush`` transfers the filled columns into an
    immutable ``pyarrow.RecordBatch`` and starts fresh storage.
    """

    def __init__(
        self,
        batch_size: int,
        shape: OutputShape = OutputShape.TABULAR,
        geometry_epsg: int = EPSG_NATIONAL_GRID,
    ) -> None:
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise ConfigError(f"batch_size must be a positive integer, got {batch_size!r}")
        self.batch_size = batch_size
        self.shape = shape
        self.geometry_epsg = geometry_epsg
        self.specs = column_specs(shape, geometry_epsg)
        self.schema = build_schema(shape, geometry_epsg)
        self._columns: dict[str, list] = {}
        self._rows = 0
        self._reset()

    def _reset(self) -> None:
        self._columns = {spec.name: [] for spec in self.specs}
        self._rows = 0

    def __len__(self) -> int:
        return self._rows

    def column_lengths(self) -> dict[str, int]:
        return {name: len(values) for name, values in self._columns.items()}

    def append(self, record: AddressRecord) -> None:
        for spec in self.specs:
            self._columns[spec.name].append(spec.extract(record))
        self._rows += 1
        self._assert_aligned()

    def _assert_aligned(self) -> None:
        for name, values in self._columns.items():
            if len(values) != self._rows:
                raise ContractError(
                    f"Column `{name}` has {len(values)} entries after {self._rows} records"
                )

    def should_flush(self) -> bool:
        return self._rows >= self.batch_size

    def flush(self) -> pa.RecordBatch:
        arrays = [pa.array(self._columns[spec.name], type=spec.type) for spec in self.specs]
        batch = pa.RecordBatch.from_arrays(arrays, schema=self.schema)
        self._reset()
        return batch
