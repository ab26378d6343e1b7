"""UTC-focused helpers for run metadata and document timestamps."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from prg_convert.common.errors import MalformedDocumentError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLISECOND = timedelta(milliseconds=1)


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp_ms(value: str, *, default_offset: timezone | None = None) -> int:
    """Parse an ISO 8601 timestamp into milliseconds since the epoch (UTC).

    Timestamps without an explicit offset are only accepted when
    ``default_offset`` is given.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise MalformedDocumentError(f"Failed to parse datetime: `{value}`") from exc
    if parsed.tzinfo is None:
        if default_offset is None:
            raise MalformedDocumentError(f"Datetime without timezone offset: `{value}`")
        parsed = parsed.replace(tzinfo=default_offset)
    return (parsed - EPOCH) // _ONE_MILLISECOND


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise MalformedDocumentError(f"Failed to parse date: `{value}`") from exc
