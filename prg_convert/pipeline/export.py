"""CSV and GeoParquet batch writers."""

from __future__ import annotations

import json
from pathlib import Path
from types import TracebackType
from typing import Iterable, Iterator

import pyarrow as pa
import pyarrow.csv as pacsv
import pyarrow.ipc as paipc
import pyarrow.parquet as pq

from prg_convert.common.errors import ConfigError
from prg_convert.common.fs import ensure_dir
from prg_convert.common.geometry import geoparquet_metadata
from prg_convert.pipeline.batches import GEOMETRY_COLUMN, OutputShape

DEFAULT_COMPRESSION_LEVELS = {"zstd": 11, "brotli": 6}
# Parquet format version and data page version per configured writer version.
PARQUET_WRITER_VERSIONS = {"v1": ("1.0", "1.0"), "v2": ("2.6", "2.0")}


def output_shape(output_format: str) -> OutputShape:
    if output_format == "csv":
        return OutputShape.TABULAR
    if output_format == "geoparquet":
        return OutputShape.GEOSPATIAL
    raise ConfigError(f"Unsupported output format: {output_format}")


def compression_options(parquet_cfg: dict) -> tuple[str, int | None]:
    codec = parquet_cfg["compression"]
    level = parquet_cfg.get("compression_level")
    if codec == "none":
        return "none", None
    if codec == "snappy":
        if level is not None:
            raise ConfigError("snappy compression does not take a compression level")
        return codec, None
    if level is None:
        level = DEFAULT_COMPRESSION_LEVELS[codec]
    return codec, level


class BatchWriter:
    """Base for writers that receive record batches of a fixed schema."""

    def __init__(self, path: Path, schema: pa.Schema) -> None:
        self.path = path
        self.schema = schema
        self.rows_written = 0
        self.batches_written = 0

    def write_batch(self, batch: pa.RecordBatch) -> None:
        self._write(batch)
        self.rows_written += batch.num_rows
        self.batches_written += 1

    def _write(self, batch: pa.RecordBatch) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> "BatchWriter":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class CsvBatchWriter(BatchWriter):
    def __init__(self, path: Path, schema: pa.Schema) -> None:
        super().__init__(path, schema)
        ensure_dir(path.parent)
        self._writer = pacsv.CSVWriter(str(path), schema)

    def _write(self, batch: pa.RecordBatch) -> None:
        self._writer.write_batch(batch)

    def close(self) -> None:
        self._writer.close()


class GeoParquetBatchWriter(BatchWriter):
    def __init__(
        self,
        path: Path,
        schema: pa.Schema,
        *,
        geometry_epsg: int,
        parquet_cfg: dict,
        batch_size: int,
    ) -> None:
        geo = geoparquet_metadata(GEOMETRY_COLUMN, geometry_epsg)
        schema = schema.with_metadata({b"geo": json.dumps(geo).encode("utf-8")})
        super().__init__(path, schema)
        codec, level = compression_options(parquet_cfg)
        version, data_page_version = PARQUET_WRITER_VERSIONS[parquet_cfg["version"]]
        self.row_group_size = parquet_cfg.get("row_group_size") or batch_size
        ensure_dir(path.parent)
        self._writer = pq.ParquetWriter(
            str(path),
            schema,
            compression=codec,
            compression_level=level,
            version=version,
            data_page_version=data_page_version,
        )

    def _write(self, batch: pa.RecordBatch) -> None:
        # Batches carry the plain schema; the writer's copy holds the geo metadata.
        self._writer.write_batch(batch.replace_schema_metadata(self.schema.metadata), row_group_size=self.row_group_size)

    def close(self) -> None:
        self._writer.close()


def open_writer(
    output_format: str,
    path: Path,
    schema: pa.Schema,
    *,
    geometry_epsg: int,
    parquet_cfg: dict,
    batch_size: int,
) -> BatchWriter:
    if output_format == "csv":
        return CsvBatchWriter(path, schema)
    if output_format == "geoparquet":
        return GeoParquetBatchWriter(
            path,
            schema,
            geometry_epsg=geometry_epsg,
            parquet_cfg=parquet_cfg,
            batch_size=batch_size,
        )
    raise ConfigError(f"Unsupported output format: {output_format}")


def staging_path(output_path: Path, index: int) -> Path:
    return output_path.with_name(f"{output_path.name}.{index}.part.arrow")


def stage_batches(batches: Iterable[pa.RecordBatch], part_path: Path, schema: pa.Schema) -> int:
    """Spill one document's batches to an Arrow IPC part file; returns the batch count.

    If ``batches`` raises, the exception propagates and the part file is
    left for the caller to discard.
    """
    ensure_dir(part_path.parent)
    count = 0
    with paipc.new_file(str(part_path), schema) as part:
        for batch in batches:
            part.write_batch(batch)
            count += 1
    return count


def iter_staged(part_path: Path) -> Iterator[pa.RecordBatch]:
    with pa.OSFile(str(part_path), "rb") as source:
        reader = paipc.open_file(source)
        for index in range(reader.num_record_batches):
            yield reader.get_batch(index)
