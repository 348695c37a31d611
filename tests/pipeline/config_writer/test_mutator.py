"""Tests for anchored, idempotent site config edits."""

from pathlib import Path

import pytest

from sitebuild.pipeline.config_writer import (
    ConfigDocument,
    replace_key_value,
    replace_numeric_value,
    replace_section,
    replace_section_count,
    serialize_to_ts,
)


def test_replace_key_value_is_idempotent():
    doc = '  name: "Your Business Name",\n  tagline: \'Old\',\n'
    once = replace_key_value(doc, "name", "Acme")
    assert once == '  name: "Acme",\n  tagline: \'Old\',\n'
    assert replace_key_value(once, "name", "Acme") == once


def test_replace_key_value_escapes_quotes():
    once = replace_key_value('  msg: "hi",', "msg", 'Say "hello"')
    assert once == '  msg: "Say \\"hello\\"",'
    assert replace_key_value(once, "msg", 'Say "hello"') == once


def test_replace_key_value_missing_anchor_is_noop():
    doc = '  name: "Acme",\n'
    assert replace_key_value(doc, "phone", "123") == doc


def test_replace_key_value_does_not_match_suffix_keys():
    doc = '  companyName: "A",\n  name: "B",\n'
    assert replace_key_value(doc, "name", "C") == '  companyName: "A",\n  name: "C",\n'


def test_replace_numeric_value():
    doc = "  averageRating: 4.1,\n  totalReviews: 3,\n"
    once = replace_numeric_value(doc, "averageRating", 4.8)
    assert once == "  averageRating: 4.8,\n  totalReviews: 3,\n"
    assert replace_numeric_value(once, "averageRating", 4.8) == once
    with pytest.raises(TypeError):
        replace_numeric_value(doc, "totalReviews", True)


def test_serialize_to_ts_unquotes_identifier_keys():
    text = serialize_to_ts({"title": "A", "x-y": [1]}, 2)
    assert text.splitlines() == ["{", '    title: "A",', '    "x-y": [', "      1", "    ]", "  }"]


def test_replace_section_multiline_idempotent(site_config_text: str):
    services = [{"title": "Pipes", "slug": "pipes"}]
    once = replace_section(site_config_text, "services", services)
    assert 'title: "Pipes"' in once
    assert "Default Service" not in once
    assert replace_section(once, "services", services) == once
    assert once.count("  homepage: {") == 1


def test_replace_section_inline_empty_and_single_line():
    doc = "const c = {\n  nav: [],\n  tags: ['a', 'b'],\n};\n"
    once = replace_section(doc, "nav", [{"label": "Home", "href": "/"}])
    assert "  nav: [\n    {\n      label: \"Home\"," in once
    assert replace_section(once, "nav", [{"label": "Home", "href": "/"}]) == once
    twice = replace_section(once, "tags", ["c"])
    assert '  tags: [\n    "c"\n  ],' in twice


def test_replace_section_missing_anchor_is_noop():
    doc = "const c = {\n  nav: [],\n};\n"
    new_doc, count = replace_section_count(doc, "legal", {"a": 1})
    assert count == 0 and new_doc == doc


def test_replace_section_ignores_nested_keys(site_config_text: str):
    doc = replace_section(site_config_text, "items", [{"name": "x"}])
    assert doc == site_config_text


def test_replace_section_rejects_scalars():
    with pytest.raises(TypeError):
        replace_section("  nav: [],", "nav", "x")


def test_config_document_tracks_missing_keys(tmp_path: Path, site_config_text: str):
    path = tmp_path / "src" / "site.config.ts"
    path.parent.mkdir(parents=True)
    path.write_text(site_config_text, encoding="utf-8")
    doc = ConfigDocument.read(tmp_path)
    assert doc.set_value("name", "Acme Co")
    assert not doc.set_value("missingKey", "x")
    assert doc.set_number("averageRating", 5)
    assert doc.missing_keys == ["missingKey"]
    assert doc.changed
    assert doc.write() is True
    assert 'name: "Acme Co"' in path.read_text(encoding="utf-8")
    assert doc.write() is False


def test_config_document_read_missing(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        ConfigDocument.read(tmp_path)
