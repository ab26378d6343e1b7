"""CLI entrypoint for converting PRG address point files to CSV or GeoParquet."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from prg_convert.common.config_loader import apply_overrides, load_config
from prg_convert.common.constants import (
    EXIT_HARD_FAIL,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    OUTPUT_FORMATS,
    SCHEMA_VERSIONS,
    SUPPORTED_EPSG,
)
from prg_convert.common.errors import ContractError, PipelineError
from prg_convert.common.fs import size_in_mb
from prg_convert.common.ids import generate_run_id
from prg_convert.common.logging import build_logger, get_logger, log_event
from prg_convert.common.schema import LOG_LEVELS, PARQUET_COMPRESSIONS, PARQUET_VERSIONS
from prg_convert.dialects.base import get_dialect
from prg_convert.pipeline.batches import build_schema
from prg_convert.pipeline.driver import convert_document
from prg_convert.pipeline.export import iter_staged, open_writer, output_shape, stage_batches, staging_path
from prg_convert.pipeline.inputs import discover_sources
from prg_convert.pipeline.reports import FileReport, write_run_summary
from prg_convert.pipeline.teryt import resolve_terc


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--input-paths", nargs="+", required=True, help="Input files, globs or ZIP archives")
    parser.add_argument("--output-path", required=True)
    parser.add_argument("--schema-version", required=True, choices=SCHEMA_VERSIONS)
    parser.add_argument("--output-format", default=None, choices=OUTPUT_FORMATS)
    parser.add_argument("--crs-epsg", type=int, default=None, choices=SUPPORTED_EPSG)
    parser.add_argument("--teryt-path", default=None)
    parser.add_argument("--download-teryt", action="store_true")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--parquet-compression", default=None, choices=PARQUET_COMPRESSIONS)
    parser.add_argument("--compression-level", type=int, default=None)
    parser.add_argument("--parquet-row-group-size", type=int, default=None)
    parser.add_argument("--parquet-version", default=None, choices=PARQUET_VERSIONS)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--log-level", default=None, choices=LOG_LEVELS)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--strict-references", action="store_true", default=None)
    parser.add_argument("--skip-malformed", action="store_true")
    parser.add_argument("--report-path", default=None)
    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> dict:
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    cfg = load_config(Path(args.config_dir), overlay_config_dir=overlay_config_dir)
    overrides = {
        "batch_size": args.batch_size,
        "output": {"format": args.output_format, "crs_epsg": args.crs_epsg},
        "parquet": {
            "compression": args.parquet_compression,
            "compression_level": args.compression_level,
            "row_group_size": args.parquet_row_group_size,
            "version": args.parquet_version,
        },
        "teryt": {"path": args.teryt_path},
        "strict_references": args.strict_references,
        "logging": {"level": args.log_level},
    }
    return apply_overrides(cfg, overrides)


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    cfg = resolve_config(args)
    log_dir = Path(cfg["logging"]["log_dir"]) if cfg["logging"]["log_dir"] else None
    logger = build_logger(run_id, log_dir=log_dir, level=cfg["logging"]["level"])
    output_path = Path(args.output_path)
    output_format = cfg["output"]["format"]
    geometry_epsg = cfg["output"]["crs_epsg"]
    batch_size = cfg["batch_size"]
    started = time.monotonic()

    log_event(logger, "run start", run_id=run_id, stage="run", event="RUN_START", status="ok")

    terc = None
    if args.schema_version == "2021":
        terc = resolve_terc(
            cfg["teryt"],
            download=args.download_teryt,
            work_dir=output_path.parent,
            logger=logger,
            run_id=run_id,
        )
    dialect = get_dialect(
        args.schema_version,
        terc=terc,
        strict_references=cfg["strict_references"],
        logger=logger,
    )
    sources = discover_sources(args.input_paths, dialect.member_extension)
    shape = output_shape(output_format)
    schema = build_schema(shape, geometry_epsg)

    reports: list[FileReport] = []
    exit_code = EXIT_SUCCESS
    with open_writer(
        output_format,
        output_path,
        schema,
        geometry_epsg=geometry_epsg,
        parquet_cfg=cfg["parquet"],
        batch_size=batch_size,
    ) as writer:
        for index, source in enumerate(sources):
            report = FileReport(source=source.label, size_bytes=source.size_bytes)
            reports.append(report)
            size_note = f" ({size_in_mb(source.size_bytes)} MB)" if source.size_bytes is not None else ""
            log_event(
                logger,
                f"processing {source.label}{size_note}",
                run_id=run_id,
                stage="convert",
                file=source.label,
                event="FILE_START",
                status="ok",
            )
            file_started = time.monotonic()
            part_path = staging_path(output_path, index)
            try:
                # Rows reach the output only once the whole document converted.
                stage_batches(
                    convert_document(
                        source,
                        dialect,
                        batch_size=batch_size,
                        shape=shape,
                        geometry_epsg=geometry_epsg,
                        logger=logger,
                        run_id=run_id,
                    ),
                    part_path,
                    schema,
                )
            except PipelineError as exc:
                part_path.unlink(missing_ok=True)
                report.status = "error"
                report.error_code = exc.error_code
                report.error = str(exc)
                report.duration_ms = int((time.monotonic() - file_started) * 1000)
                log_event(
                    logger,
                    f"conversion failed for {source.label}: {exc}",
                    level=logging.ERROR,
                    run_id=run_id,
                    stage="convert",
                    file=source.label,
                    event="FILE_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                if isinstance(exc, ContractError) or not args.skip_malformed:
                    exit_code = EXIT_HARD_FAIL
                    break
                exit_code = EXIT_PARTIAL
                continue

            try:
                for batch in iter_staged(part_path):
                    writer.write_batch(batch)
                    report.rows += batch.num_rows
                    report.batches += 1
                    log_event(
                        logger,
                        f"batch {report.batches} written",
                        run_id=run_id,
                        stage="convert",
                        file=source.label,
                        event="BATCH_WRITTEN",
                        status="ok",
                        batch=report.batches,
                        rows_out=batch.num_rows,
                    )
            finally:
                part_path.unlink(missing_ok=True)
            report.status = "ok"
            report.duration_ms = int((time.monotonic() - file_started) * 1000)
            log_event(
                logger,
                f"finished {source.label}",
                run_id=run_id,
                stage="convert",
                file=source.label,
                event="FILE_END",
                status="ok",
                rows_out=report.rows,
                duration_ms=report.duration_ms,
            )

    duration_ms = int((time.monotonic() - started) * 1000)
    log_event(
        logger,
        "run end",
        run_id=run_id,
        stage="run",
        event="RUN_END",
        status="ok" if exit_code == EXIT_SUCCESS else "error",
        rows_out=writer.rows_written,
        duration_ms=duration_ms,
    )
    if args.report_path:
        write_run_summary(
            Path(args.report_path),
            run_id=run_id,
            schema_version=args.schema_version,
            output_path=output_path,
            output_format=output_format,
            files=reports,
            duration_ms=duration_ms,
        )
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    logger = get_logger("cli")
    try:
        return run_command(args)
    except PipelineError as exc:
        logger.error("%s: %s", exc.error_code, exc)
        return EXIT_HARD_FAIL
    except Exception:
        logger.exception("UNEXPECTED_ERROR")
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
