"""Run report aggregation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path

from prg_convert.common.fs import write_json


@dataclass
class FileReport:
    source: str
    size_bytes: int | None = None
    status: str = "pending"
    rows: int = 0
    batches: int = 0
    duration_ms: int = 0
    error_code: str | None = None
    error: str | None = None


def summarize(files: list[FileReport]) -> dict:
    totals = {
        "files": len(files),
        "files_ok": sum(1 for report in files if report.status == "ok"),
        "files_failed": sum(1 for report in files if report.status == "error"),
        "rows": sum(report.rows for report in files),
        "batches": sum(report.batches for report in files),
    }
    status = "success"
    if totals["files_failed"] > 0:
        status = "error" if totals["files_ok"] == 0 else "partial"
    return {"status": status, "totals": totals}


def write_run_summary(
    report_path: Path,
    *,
    run_id: str,
    schema_version: str,
    output_path: Path,
    output_format: str,
    files: list[FileReport],
    duration_ms: int,
) -> Path:
    summary = summarize(files)
    payload = {
        "run_id": run_id,
        "schema_version": schema_version,
        "output_path": str(output_path),
        "output_format": output_format,
        "status": summary["status"],
        "totals": summary["totals"],
        "duration_ms": duration_ms,
        "files": [asdict(report) for report in files],
        "failures": [
            {"source": report.source, "error_code": report.error_code, "error": report.error}
            for report in files
            if report.status == "error"
        ],
    }
    write_json(report_path, payload)
    return report_path
