"""Dialect abstraction shared by the 2012 and 2021 document schemas."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator, Mapping

from prg_convert.common.errors import ConfigError, MalformedDocumentError
from prg_convert.common.logging import get_logger, log_event
from prg_convert.common.models import AddressRecord, TercEntry
from prg_convert.parsing.tokens import End, Start, Text, Token
from prg_convert.parsing.tracker import FieldResolver, FieldText, ReferenceHit
from prg_convert.pipeline.coordinates import Reprojector, default_reprojector


def walk_feature(tokens: Iterator[Token], tag: str, resolver: FieldResolver) -> Iterator[ReferenceHit | FieldText]:
    """Yield reference hits and field texts until the closing ``tag``.

    The opening tag must already have been consumed. Running out of tokens
    before the feature is closed means the document was cut short.
    """
    resolver.reset()
    for token in tokens:
        if isinstance(token, Start):
            hit = resolver.start(token)
            if hit is not None:
                yield hit
        elif isinstance(token, Text):
            found = resolver.text(token.value)
            if found is not None:
                yield found
        elif isinstance(token, End) and token.name == tag:
            return
    raise MalformedDocumentError(f"Unexpected end of document inside `{tag}`.")


def href_key(href: str) -> str:
    """Reduce an ``xlink:href`` value to the bare feature id it points to."""
    return href.rsplit("/", 1)[-1].lstrip("#")


class UnknownElementLog:
    """Reports each unrecognized element once per document."""

    def __init__(self, logger: logging.Logger, source: str | None = None) -> None:
        self.logger = logger
        self.source = source
        self.seen: dict[str, int] = {}

    def record(self, element: str) -> None:
        count = self.seen.get(element, 0)
        self.seen[element] = count + 1
        if count == 0:
            log_event(
                self.logger,
                f"Unknown tag: {element}",
                stage="assemble",
                file=self.source,
                event="UNKNOWN_ELEMENT",
                status="ignored",
            )


class SchemaDialect(ABC):
    """Two-pass reader for one document schema.

    ``build_dictionary`` consumes a whole token stream and returns the
    lookup structure for referenced features; ``assemble`` consumes a fresh
    stream over the same document and yields one record per address point.
    """

    version: str = ""
    member_extension: str = ".xml"

    def __init__(self, *, reprojector: Reprojector | None = None, logger: logging.Logger | None = None) -> None:
        self.reprojector = reprojector or default_reprojector()
        self.logger = logger or get_logger(f"dialects.model{self.version}")

    @abstractmethod
    def build_dictionary(self, tokens: Iterable[Token]) -> Any:
        raise NotImplementedError

    @abstractmethod
    def assemble(self, tokens: Iterable[Token], dictionary: Any, *, source: str | None = None) -> Iterator[AddressRecord]:
        raise NotImplementedError

    @staticmethod
    def dictionary_size(dictionary: Any) -> int:
        return len(dictionary)


def get_dialect(
    version: str,
    *,
    terc: Mapping[str, TercEntry] | None = None,
    strict_references: bool = False,
    reprojector: Reprojector | None = None,
    logger: logging.Logger | None = None,
) -> SchemaDialect:
    # Local imports: the dialect modules import this one.
    from prg_convert.dialects.model2012 import Model2012Dialect
    from prg_convert.dialects.model2021 import Model2021Dialect

    if version == "2012":
        return Model2012Dialect(strict_references=strict_references, reprojector=reprojector, logger=logger)
    if version == "2021":
        if terc is None:
            raise ConfigError(
                "Schema 2021 does not carry administrative unit names; a TERC table is required"
            )
        return Model2021Dialect(terc=terc, reprojector=reprojector, logger=logger)
    raise ConfigError(f"Unsupported schema version: {version}")
