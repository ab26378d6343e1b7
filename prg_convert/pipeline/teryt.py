"""TERC reference table: load from XML or ZIP, optionally download first."""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

from lxml import etree

from prg_convert.common.errors import ConfigError, MalformedDocumentError, UnsupportedValueError
from prg_convert.common.http import HttpClient
from prg_convert.common.logging import log_event
from prg_convert.common.models import TercEntry

TERC_DOWNLOAD_FILENAME = "terc.zip"


@dataclass(frozen=True)
class TercRow:
    code: str
    name: str


def _text(row, tag: str) -> str:
    return (row.findtext(tag) or "").strip()


def iter_terc_rows(stream: BinaryIO) -> Iterator[TercRow]:
    """Yield one ``TercRow`` per ``teryt/catalog/row`` element."""
    try:
        for _event, row in etree.iterparse(stream, events=("end",), tag="row", resolve_entities=False):
            code = _text(row, "WOJ") + _text(row, "POW") + _text(row, "GMI") + _text(row, "RODZ")
            yield TercRow(code=code, name=_text(row, "NAZWA"))
            row.clear(keep_tail=False)
    except etree.XMLSyntaxError as exc:
        line, column = exc.position
        raise MalformedDocumentError(f"TERC error at position {line}:{column}: {exc.msg}") from exc


def build_terc_mapping(rows: Iterator[TercRow]) -> dict[str, TercEntry]:
    """Map each 7-digit municipality code to its voivodeship and county.

    Codes of length 2 are voivodeships, 4 counties, 7 municipalities; any
    other length is an UnsupportedValueError.
    """
    voivodeships: dict[str, str] = {}
    counties: dict[str, str] = {}
    municipalities: dict[str, str] = {}
    for row in rows:
        if len(row.code) == 2:
            voivodeships[row.code] = row.name
        elif len(row.code) == 4:
            counties[row.code] = row.name
        elif len(row.code) == 7:
            municipalities[row.code] = row.name
        else:
            raise UnsupportedValueError(f"Unexpected TERC code `{row.code}` of length {len(row.code)}.")

    mapping: dict[str, TercEntry] = {}
    for code, name in municipalities.items():
        voivodeship_code = code[:2]
        county_code = code[:4]
        if voivodeship_code not in voivodeships:
            raise MalformedDocumentError(f"Voivodeship {voivodeship_code} of municipality {code} missing from TERC.")
        if county_code not in counties:
            raise MalformedDocumentError(f"County {county_code} of municipality {code} missing from TERC.")
        mapping[code] = TercEntry(
            voivodeship_teryt_id=voivodeship_code,
            voivodeship_name=voivodeships[voivodeship_code],
            county_teryt_id=county_code,
            county_name=counties[county_code],
            municipality_name=name,
        )
    return mapping


def load_terc(path: Path) -> dict[str, TercEntry]:
    """Load the mapping from a TERC ``.xml`` file or the first ``.xml`` inside a ``.zip``."""
    if not path.exists():
        raise ConfigError(f"TERC file does not exist: {path}")
    suffix = path.suffix.lower()
    if suffix == ".zip":
        with zipfile.ZipFile(path) as archive:
            members = [name for name in archive.namelist() if name.lower().endswith(".xml")]
            if not members:
                raise MalformedDocumentError(f"No .xml member in TERC archive: {path}")
            with archive.open(members[0]) as stream:
                return build_terc_mapping(iter_terc_rows(stream))
    if suffix == ".xml":
        with path.open("rb") as stream:
            return build_terc_mapping(iter_terc_rows(stream))
    raise ConfigError(f"Unsupported TERC file type: {path}")


def download_terc(url: str, work_dir: Path, *, client: HttpClient | None = None) -> Path:
    target = work_dir / TERC_DOWNLOAD_FILENAME
    if client is not None:
        return client.download_file(url, target)
    with HttpClient() as owned:
        return owned.download_file(url, target)


def resolve_terc(
    teryt_cfg: dict,
    *,
    download: bool,
    work_dir: Path,
    logger: logging.Logger,
    run_id: str | None = None,
    client: HttpClient | None = None,
) -> dict[str, TercEntry]:
    """Load TERC from the configured path, downloading it first when asked."""
    if download:
        url = teryt_cfg.get("download_url")
        if not url:
            raise ConfigError("teryt.download_url must be set to download TERC")
        path = download_terc(url, work_dir, client=client)
    elif teryt_cfg.get("path"):
        path = Path(teryt_cfg["path"])
    else:
        raise ConfigError("Schema 2021 needs TERC data: set --teryt-path or use --download-teryt")

    mapping = load_terc(path)
    log_event(
        logger,
        f"loaded {len(mapping)} municipalities from {path}",
        run_id=run_id,
        stage="teryt",
        file=str(path),
        event="TERYT_LOADED",
        status="ok",
        rows_out=len(mapping),
    )
    return mapping
