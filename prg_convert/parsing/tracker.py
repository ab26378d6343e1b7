"""Current-field resolution for nested feature elements."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from prg_convert.parsing.tokens import Start


@dataclass(frozen=True)
class ElementTable:
    """Declarative description of how the children of one feature are read.

    ``containers`` are pass-through blocks whose own text is never a value.
    ``references`` map an element to the attribute that holds the referenced
    feature id; their text is ignored. ``silent`` elements are known but
    carry nothing of interest. ``fields`` map leaf elements to the logical
    field name their text sets; a ``None`` field marks a known leaf whose
    text is dropped.
    """

    containers: frozenset[str] = frozenset()
    references: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    silent: frozenset[str] = frozenset()
    fields: Mapping[str, str | None] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class ReferenceHit:
    element: str
    target: str | None


@dataclass(frozen=True)
class FieldText:
    element: str
    field: str | None
    text: str
    known: bool


class FieldResolver:
    """Tracks the innermost open element and attributes text to fields."""

    def __init__(self, table: ElementTable) -> None:
        self.table = table
        self.current: str | None = None
        self.nested = False
        self.ignore_text = False

    def reset(self) -> None:
        self.current = None
        self.nested = False
        self.ignore_text = False

    def start(self, token: Start) -> ReferenceHit | None:
        name = token.name
        self.current = name
        if name in self.table.containers:
            self.nested = True
            self.ignore_text = False
            return None
        if name in self.table.references:
            self.nested = False
            self.ignore_text = True
            return ReferenceHit(name, token.attributes.get(self.table.references[name]))
        if name in self.table.silent:
            self.nested = False
            self.ignore_text = True
            return None
        self.nested = False
        self.ignore_text = False
        return None

    def text(self, value: str) -> FieldText | None:
        if self.current is None or self.nested or self.ignore_text:
            return None
        element = self.current
        self.current = None
        known = element in self.table.fields
        return FieldText(
            element=element,
            field=self.table.fields.get(element),
            text=value.strip(),
            known=known,
        )
