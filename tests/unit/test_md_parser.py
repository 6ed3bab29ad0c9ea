"""Tests for markdown frontmatter parsing."""
from datetime import date

from ragcore.models import Metadata
from ragcore.rag.md_parser import MarkdownParser


def test_no_frontmatter():
    doc = MarkdownParser().parse("# Title\n\nBody text.")

    assert doc.frontmatter == {}
    assert doc.text_without_frontmatter == "# Title\n\nBody text."
    assert doc.metadata == Metadata()


def test_frontmatter_maps_to_metadata():
    doc = MarkdownParser().parse(
        "---\n"
        "title: Launch notes\n"
        "author: Ada\n"
        "language: en\n"
        "tags: rockets, fuel\n"
        "created: 2024-03-01\n"
        "draft: true\n"
        "related: [a, b]\n"
        "---\n"
        "Body."
    )

    assert doc.text_without_frontmatter == "Body."
    assert doc.frontmatter["created"] == date(2024, 3, 1)
    assert doc.metadata.title == "Launch notes"
    assert doc.metadata.author == "Ada"
    assert doc.metadata.language == "en"
    assert doc.metadata.tags == ["rockets", "fuel"]
    assert doc.metadata.custom == {"created": "2024-03-01", "draft": "true"}


def test_malformed_yaml_is_ignored():
    doc = MarkdownParser().parse("---\ntitle: [unclosed\n---\nBody.")

    assert doc.frontmatter == {}
    assert doc.text_without_frontmatter == "Body."
    assert doc.metadata == Metadata()


def test_non_mapping_frontmatter_is_ignored():
    doc = MarkdownParser().parse("---\n- just\n- a list\n---\nBody.")

    assert doc.frontmatter == {}
    assert doc.text_without_frontmatter == "Body."


def test_parse_file(tmp_path):
    path = tmp_path / "note.md"
    path.write_text("---\ntitle: T\n---\ncontent\n", encoding="utf-8")

    doc = MarkdownParser().parse_file(path)

    assert doc.metadata.title == "T"
    assert doc.text_without_frontmatter == "content\n"
