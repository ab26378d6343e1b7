"""Two-pass conversion of one document into record batches."""

from __future__ import annotations

import logging
import time
from typing import Iterator

import pyarrow as pa

from prg_convert.common.constants import DEFAULT_BATCH_SIZE
from prg_convert.common.logging import get_logger, log_event
from prg_convert.dialects.base import SchemaDialect
from prg_convert.parsing.tokens import iter_tokens
from prg_convert.pipeline.batches import BatchAccumulator, OutputShape
from prg_convert.pipeline.coordinates import EPSG_NATIONAL_GRID
from prg_convert.pipeline.inputs import DocumentSource


def convert_document(
    source: DocumentSource,
    dialect: SchemaDialect,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    shape: OutputShape = OutputShape.TABULAR,
    geometry_epsg: int = EPSG_NATIONAL_GRID,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> Iterator[pa.RecordBatch]:
    """Lazily yield record batches for one document.

    The first pass builds the reference dictionary; the document is then
    reopened and addresses are assembled and accumulated. Nothing is read
    until the iterator is first advanced. A final partial batch is yielded
    only when it holds at least one row.
    """
    logger = logger or get_logger("driver")
    accumulator = BatchAccumulator(batch_size, shape=shape, geometry_epsg=geometry_epsg)

    started = time.monotonic()
    with source.open() as stream:
        dictionary = dialect.build_dictionary(iter_tokens(stream))
    log_event(
        logger,
        f"dictionary built with {dialect.dictionary_size(dictionary)} entries",
        run_id=run_id,
        stage="dictionary",
        file=source.label,
        event="DICTIONARY_BUILT",
        status="ok",
        rows_out=dialect.dictionary_size(dictionary),
        duration_ms=int((time.monotonic() - started) * 1000),
    )

    with source.open() as stream:
        for record in dialect.assemble(iter_tokens(stream), dictionary, source=source.label):
            accumulator.append(record)
            if accumulator.should_flush():
                yield accumulator.flush()

    if len(accumulator) > 0:
        yield accumulator.flush()
