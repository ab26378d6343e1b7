"""Open/text/close token stream over an XML byte stream.

Wraps ``lxml.etree.iterparse`` so that callers see a flat sequence of
``Start``/``Text``/``End`` tokens with prefixed names (``prg-ad:ulica``,
``gml:pos``), the way the registry documents spell them. Elements are cleared
as soon as their end tag has been consumed, so memory stays flat no matter
how large the document is.

A ``Text`` token is emitted for the leading text of an element: always for
leaf elements that carry text, and for elements with children only when that
text is not pure indentation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Iterator, Union

from lxml import etree

from prg_convert.common.errors import MalformedDocumentError


@dataclass(frozen=True)
class Start:
    name: str
    attributes: dict[str, str]


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class End:
    name: str


Token = Union[Start, Text, End]


def qualified_name(tag: str, prefix: str | None) -> str:
    local = tag.split("}", 1)[1] if tag.startswith("{") else tag
    return f"{prefix}:{local}" if prefix else local


def _qualified_attributes(elem) -> dict[str, str]:
    if not elem.attrib:
        return {}
    prefixes = None
    out: dict[str, str] = {}
    for key, value in elem.attrib.items():
        if key.startswith("{"):
            if prefixes is None:
                prefixes = {uri: prefix for prefix, uri in elem.nsmap.items() if prefix}
            uri, local = key[1:].split("}", 1)
            prefix = prefixes.get(uri)
            out[f"{prefix}:{local}" if prefix else local] = value
        else:
            out[key] = value
    return out


def get_attribute(token: Start, attribute: str) -> str:
    try:
        return token.attributes[attribute]
    except KeyError:
        raise MalformedDocumentError(
            f"Could not find attribute `{attribute}` on element `{token.name}`."
        ) from None


def iter_tokens(stream: BinaryIO) -> Iterator[Token]:
    context = etree.iterparse(
        stream,
        events=("start", "end"),
        huge_tree=True,
        remove_comments=True,
        remove_pis=True,
        resolve_entities=False,
    )
    pending = None
    try:
        for event, elem in context:
            if pending is not None:
                text = pending.text
                if text is not None and (event == "end" or text.strip()):
                    yield Text(text)
                pending = None
            name = qualified_name(elem.tag, elem.prefix)
            if event == "start":
                yield Start(name, _qualified_attributes(elem))
                pending = elem
                continue
            yield End(name)
            elem.clear(keep_tail=False)
            parent = elem.getparent()
            if parent is not None:
                while elem.getprevious() is not None:
                    del parent[0]
    except etree.XMLSyntaxError as exc:
        line, column = exc.position
        raise MalformedDocumentError(f"Error at position {line}:{column}: {exc.msg}") from exc
