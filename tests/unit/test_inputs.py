import zipfile
from pathlib import Path

import pytest

from prg_convert.common.errors import ConfigError
from prg_convert.pipeline.inputs import DocumentSource, discover_sources, expand_patterns


def test_expand_patterns_resolves_globs_in_sorted_order(tmp_path: Path):
    for name in ("b.xml", "a.xml", "c.txt"):
        (tmp_path / name).write_text("<a/>", encoding="utf-8")

    paths = expand_patterns([str(tmp_path / "*.xml")])

    assert [path.name for path in paths] == ["a.xml", "b.xml"]


def test_expand_patterns_deduplicates_and_rejects_missing(tmp_path: Path):
    target = tmp_path / "a.xml"
    target.write_text("<a/>", encoding="utf-8")

    assert expand_patterns([str(target), str(tmp_path / "*.xml")]) == [target]
    with pytest.raises(ConfigError):
        expand_patterns([str(tmp_path / "missing-*.xml")])


def test_expand_patterns_rejects_directories(tmp_path: Path):
    (tmp_path / "sub").mkdir()
    with pytest.raises(ConfigError):
        expand_patterns([str(tmp_path / "sub")])


def test_discover_sources_enumerates_zip_members_by_extension(tmp_path: Path):
    archive = tmp_path / "PRG_punkty.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("02_Punkty.xml", "<a/>")
        zf.writestr("02_Punkty.gml", "<b/>")
        zf.writestr("docs/readme.txt", "x")

    xml_sources = discover_sources([str(archive)], ".xml")
    gml_sources = discover_sources([str(archive)], ".gml")

    assert [source.member for source in xml_sources] == ["02_Punkty.xml"]
    assert [source.member for source in gml_sources] == ["02_Punkty.gml"]
    assert xml_sources[0].size_bytes == 4
    with xml_sources[0].open() as stream:
        assert stream.read() == b"<a/>"


def test_discover_sources_plain_files_and_unsupported_types(tmp_path: Path):
    doc = tmp_path / "punkty.gml"
    doc.write_bytes(b"<a/>")
    other = tmp_path / "punkty.csv"
    other.write_text("x", encoding="utf-8")

    sources = discover_sources([str(doc)], ".xml")

    assert sources == [DocumentSource(path=doc, size_bytes=4)]
    with pytest.raises(ConfigError):
        discover_sources([str(other)], ".xml")


def test_bad_zip_is_config_error(tmp_path: Path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"not a zip")
    with pytest.raises(ConfigError):
        discover_sources([str(archive)], ".xml")


def test_document_source_can_be_reopened(tmp_path: Path):
    doc = tmp_path / "a.xml"
    doc.write_bytes(b"<a/>")
    source = DocumentSource(path=doc)

    for _ in range(2):
        with source.open() as stream:
            assert stream.read() == b"<a/>"
    assert source.label == str(doc)
    assert DocumentSource(path=doc, member="x.xml").label == f"{doc}!x.xml"
