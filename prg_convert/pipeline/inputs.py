"""Input discovery: glob expansion, ZIP member enumeration, re-openable sources."""

from __future__ import annotations

import glob
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

from prg_convert.common.errors import ConfigError

DOCUMENT_EXTENSIONS = (".xml", ".gml")


@dataclass(frozen=True)
class DocumentSource:
    """A document that can be opened more than once, on disk or inside a ZIP."""

    path: Path
    member: str | None = None
    size_bytes: int | None = None

    @property
    def label(self) -> str:
        if self.member is None:
            return str(self.path)
        return f"{self.path}!{self.member}"

    @contextmanager
    def open(self) -> Iterator[BinaryIO]:
        if self.member is None:
            with self.path.open("rb") as stream:
                yield stream
            return
        with zipfile.ZipFile(self.path) as archive, archive.open(self.member) as stream:
            yield stream


def expand_patterns(patterns: list[str]) -> list[Path]:
    paths: list[Path] = []
    seen: set[Path] = set()
    for pattern in patterns:
        matches = sorted(glob.glob(pattern)) or ([pattern] if Path(pattern).exists() else [])
        if not matches:
            raise ConfigError(f"No files match input path: {pattern}")
        for match in matches:
            path = Path(match)
            if path.is_dir():
                raise ConfigError(f"Input path is a directory: {path}")
            if path not in seen:
                seen.add(path)
                paths.append(path)
    return paths


def zip_members(path: Path, extension: str) -> list[DocumentSource]:
    try:
        with zipfile.ZipFile(path) as archive:
            infos = [
                info
                for info in archive.infolist()
                if not info.is_dir() and info.filename.lower().endswith(extension)
            ]
    except zipfile.BadZipFile as exc:
        raise ConfigError(f"Not a readable ZIP archive: {path}") from exc
    return [DocumentSource(path=path, member=info.filename, size_bytes=info.file_size) for info in infos]


def discover_sources(patterns: list[str], member_extension: str) -> list[DocumentSource]:
    """Resolve input patterns into documents.

    Plain ``.xml``/``.gml`` files are taken as they are; ``.zip`` archives
    contribute every member ending in ``member_extension``.
    """
    sources: list[DocumentSource] = []
    for path in expand_patterns(patterns):
        suffix = path.suffix.lower()
        if suffix == ".zip":
            sources.extend(zip_members(path, member_extension))
        elif suffix in DOCUMENT_EXTENSIONS:
            sources.append(DocumentSource(path=path, size_bytes=path.stat().st_size))
        else:
            raise ConfigError(f"Unsupported input file type: {path}")
    return sources
