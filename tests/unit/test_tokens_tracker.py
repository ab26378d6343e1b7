from io import BytesIO
from types import MappingProxyType

import pytest

from prg_convert.common.errors import MalformedDocumentError
from prg_convert.parsing.tokens import End, Start, Text, get_attribute, iter_tokens
from prg_convert.parsing.tracker import ElementTable, FieldResolver, FieldText, ReferenceHit

DOC = b"""<?xml version="1.0" encoding="UTF-8"?>
<r:root xmlns:r="urn:r" xmlns:xlink="http://www.w3.org/1999/xlink">
  <r:block>
    <r:leaf>value</r:leaf>
    <r:empty/>
  </r:block>
  <r:ref xlink:href="#target"/>
</r:root>
"""


def _tokens(doc: bytes):
    return list(iter_tokens(BytesIO(doc)))


def test_iter_tokens_uses_document_prefixes_and_skips_indentation():
    tokens = _tokens(DOC)

    assert tokens == [
        Start("r:root", {}),
        Start("r:block", {}),
        Start("r:leaf", {}),
        Text("value"),
        End("r:leaf"),
        Start("r:empty", {}),
        End("r:empty"),
        End("r:block"),
        Start("r:ref", {"xlink:href": "#target"}),
        End("r:ref"),
        End("r:root"),
    ]


def test_iter_tokens_emits_non_blank_parent_text():
    tokens = _tokens(b"<a>lead<b>x</b></a>")
    assert tokens[:3] == [Start("a", {}), Text("lead"), Start("b", {})]


def test_iter_tokens_reports_position_of_syntax_errors():
    with pytest.raises(MalformedDocumentError) as excinfo:
        _tokens(b"<a><b>text</a>")
    assert "Error at position" in str(excinfo.value)


def test_iter_tokens_truncated_document_is_malformed():
    with pytest.raises(MalformedDocumentError):
        _tokens(b"<a><b>text</b>")


def test_get_attribute_missing_is_malformed():
    with pytest.raises(MalformedDocumentError):
        get_attribute(Start("r:ref", {}), "xlink:href")
    assert get_attribute(Start("r:ref", {"xlink:href": "x"}), "xlink:href") == "x"


TABLE = ElementTable(
    containers=frozenset({"c:box"}),
    references=MappingProxyType({"c:link": "xlink:href"}),
    silent=frozenset({"c:quiet"}),
    fields=MappingProxyType({"c:name": "name", "c:unused": None}),
)


def test_resolver_attributes_leaf_text_to_field():
    resolver = FieldResolver(TABLE)
    assert resolver.start(Start("c:name", {})) is None

    found = resolver.text("  Bolesławiec \n")

    assert found == FieldText(element="c:name", field="name", text="Bolesławiec", known=True)
    assert resolver.text("again") is None


def test_resolver_ignores_container_text():
    resolver = FieldResolver(TABLE)
    resolver.start(Start("c:box", {}))
    assert resolver.text("noise") is None


def test_resolver_reference_returns_target_and_ignores_text():
    resolver = FieldResolver(TABLE)

    hit = resolver.start(Start("c:link", {"xlink:href": "#id-1"}))

    assert hit == ReferenceHit(element="c:link", target="#id-1")
    assert resolver.text("ignored") is None


def test_resolver_reference_without_attribute_has_no_target():
    hit = FieldResolver(TABLE).start(Start("c:link", {}))
    assert hit == ReferenceHit(element="c:link", target=None)


def test_resolver_silent_element_drops_text():
    resolver = FieldResolver(TABLE)
    resolver.start(Start("c:quiet", {}))
    assert resolver.text("x") is None


def test_resolver_unknown_element_is_reported_as_unknown():
    resolver = FieldResolver(TABLE)
    resolver.start(Start("c:mystery", {}))

    found = resolver.text("x")

    assert found.known is False
    assert found.field is None


def test_resolver_known_unused_field_has_no_field_name():
    resolver = FieldResolver(TABLE)
    resolver.start(Start("c:unused", {}))

    found = resolver.text("x")

    assert found.known is True
    assert found.field is None


def test_resolver_new_element_clears_flags():
    resolver = FieldResolver(TABLE)
    resolver.start(Start("c:box", {}))
    resolver.start(Start("c:name", {}))
    assert resolver.text("x").field == "name"


def test_resolver_reset_forgets_current_element():
    resolver = FieldResolver(TABLE)
    resolver.start(Start("c:name", {}))
    resolver.reset()
    assert resolver.text("x") is None
