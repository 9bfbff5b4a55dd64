"""
Tests for document element classification.
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restructure.utils.layout import PositionedFragment, Row
from restructure.utils.classify import (
    Alignment,
    DocumentElement,
    ElementKind,
    ImagePayload,
    TablePayload,
    classify_row,
    clean_document_elements,
    clean_text_content,
    compute_font_anchor,
    infer_font_style,
)


def frag(text, x, y=100, width=None, page=1, font_size=10.0, font_name="Helvetica"):
    width = width if width is not None else 6.0 * len(text)
    return PositionedFragment(text, x, y, width, 10.0, page, font_name, font_size)


def make_row(*fragments):
    row = Row(y=fragments[0].y)
    for f in fragments:
        row.add(f)
    return row.freeze()


def element(kind, content, page=1, indent=0):
    return DocumentElement(kind=kind, content=content, page=page, indent=indent)


class TestCleanText:
    """Test content normalisation."""

    def test_collapse_whitespace(self):
        assert clean_text_content("  too   many\tspaces  ") == "too many spaces"

    def test_control_characters_removed(self):
        assert clean_text_content("bell\x07 and\x00 null") == "bell and null"

    def test_bullet_glyph_stripped(self):
        """Only bullets lose their glyph."""
        assert clean_text_content("• first item", ElementKind.BULLET) == "first item"
        assert clean_text_content("- minus", ElementKind.PARAGRAPH) == "- minus"

    def test_number_prefix_normalised(self):
        """Numbered items use a ``"n. "`` prefix."""
        assert clean_text_content("3)  Third step", ElementKind.NUMBERED) == "3. Third step"
        assert clean_text_content("3.5 percent", ElementKind.PARAGRAPH) == "3.5 percent"


class TestFontAnchor:
    """Test the document font anchor."""

    def test_first_page_max(self):
        """The anchor is the largest size on page 1."""
        pages = [
            (1, [frag("Title", 72, font_size=24), frag("body", 72, font_size=10)]),
            (2, [frag("Bigger", 72, font_size=40)]),
        ]
        assert compute_font_anchor(pages) == 24

    def test_skips_empty_first_page(self):
        """A blank first page defers to the next page with text."""
        pages = [(1, [frag("   ", 72, font_size=50)]), (2, [frag("Body", 72, font_size=11)])]
        assert compute_font_anchor(pages) == 11

    def test_no_text(self):
        """Documents without text anchor at zero."""
        assert compute_font_anchor([]) == 0.0

    def test_font_style(self):
        """Bold and italic need every fragment to carry the marker."""
        assert infer_font_style([frag("a", 0, font_name="Arial-BoldItalic")]) == (True, True)
        assert infer_font_style([
            frag("a", 0, font_name="Arial-Bold"),
            frag("b", 50, font_name="Arial"),
        ]) == (False, False)
        assert infer_font_style([frag("a", 0, font_name=None)]) == (False, False)


class TestClassifyRow:
    """Test the classification cascade."""

    def test_centered_title(self):
        """Large centered text is a centered title."""
        row = make_row(frag("ANNUAL REPORT", 236, width=140, font_size=24))
        el = classify_row(row, font_anchor=24, page=1)

        assert el.kind == ElementKind.TITLE
        assert el.alignment == Alignment.CENTER
        assert el.font_size == 24
        assert el.level is None

    def test_heading(self):
        """Headings are level 1."""
        row = make_row(frag("Overview", 72, font_size=14))
        el = classify_row(row, font_anchor=20, page=1)
        assert el.kind == ElementKind.HEADING
        assert el.level == 1
        assert el.alignment == Alignment.LEFT

    def test_subheading_by_size(self):
        row = make_row(frag("Details", 72, font_size=12))
        el = classify_row(row, font_anchor=18, page=1)
        assert el.kind == ElementKind.SUBHEADING
        assert el.level == 2

    def test_subheading_by_bold(self):
        """Bold body-size text is a subheading."""
        row = make_row(frag("Note", 72, font_size=10, font_name="Times-Bold"))
        el = classify_row(row, font_anchor=24, page=1)
        assert el.kind == ElementKind.SUBHEADING
        assert el.bold

    def test_heading_threshold_relative_to_anchor(self):
        """Size alone is not enough when the anchor is much larger."""
        row = make_row(frag("Small print", 72, font_size=13))
        assert classify_row(row, font_anchor=40, page=1).kind == ElementKind.PARAGRAPH

    def test_bullet(self):
        """Bullet glyphs mark bullets; indent sets the level."""
        row = make_row(frag("• Indented point", 144))
        el = classify_row(row, font_anchor=24, page=1)
        assert el.kind == ElementKind.BULLET
        assert el.indent == 2
        assert el.level == 3
        assert el.content == "Indented point"

    def test_numbered(self):
        row = make_row(frag("1) Collect data", 72))
        el = classify_row(row, font_anchor=24, page=1)
        assert el.kind == ElementKind.NUMBERED
        assert el.level == 1
        assert el.content == "1. Collect data"

    def test_lettered_and_roman(self):
        """Lettered and roman prefixes need a following space."""
        for text in ("a) first", "(b) second", "iv. fourth"):
            assert classify_row(make_row(frag(text, 72)), 24, 1).kind == ElementKind.NUMBERED
        for text in ("e.g. an example", "i.e. that is", "3.14 is pi"):
            assert classify_row(make_row(frag(text, 72)), 24, 1).kind == ElementKind.PARAGRAPH

    def test_whitespace(self):
        row = make_row(frag("   ", 72))
        assert classify_row(row, 24, 1).kind == ElementKind.WHITESPACE

    def test_paragraph_and_right_alignment(self):
        """Text starting past 60% of the page width is right aligned."""
        row = make_row(frag("Signed, the Board", 400))
        el = classify_row(row, font_anchor=24, page=2, page_width=612)
        assert el.kind == ElementKind.PARAGRAPH
        assert el.alignment == Alignment.RIGHT
        assert el.page == 2

    def test_centered_paragraph_stays_left(self):
        """Centering is only reported for titles and headings."""
        row = make_row(frag("centered body", 267, width=78))
        el = classify_row(row, font_anchor=24, page=1)
        assert el.kind == ElementKind.PARAGRAPH
        assert el.alignment == Alignment.LEFT

    def test_invalid_page_width(self):
        """Missing page widths fall back to US Letter."""
        row = make_row(frag("ANNUAL REPORT", 236, width=140, font_size=24))
        assert classify_row(row, 24, 1, page_width=0).alignment == Alignment.CENTER

    def test_negative_indent_clamped(self):
        row = make_row(frag("Margin note", 10))
        assert classify_row(row, 24, 1).indent == 0


class TestCleanup:
    """Test the sequential cleanup pass."""

    def test_paragraphs_merge(self):
        """Unterminated paragraphs continue into the next one."""
        cleaned = clean_document_elements([
            element(ElementKind.PARAGRAPH, "The first line"),
            element(ElementKind.PARAGRAPH, "continues here."),
            element(ElementKind.PARAGRAPH, "New paragraph"),
        ])
        assert [e.content for e in cleaned] == ["The first line continues here.", "New paragraph"]

    def test_no_merge_across_pages_or_indent(self):
        cleaned = clean_document_elements([
            element(ElementKind.PARAGRAPH, "page one"),
            element(ElementKind.PARAGRAPH, "page two", page=2),
            element(ElementKind.PARAGRAPH, "indented", page=2, indent=1),
        ])
        assert len(cleaned) == 3

    def test_whitespace_collapsed_and_trimmed(self):
        """At most one whitespace marker between elements, none at the ends."""
        ws = element(ElementKind.WHITESPACE, "")
        cleaned = clean_document_elements([
            ws,
            element(ElementKind.HEADING, "Intro"),
            ws, ws, ws,
            element(ElementKind.PARAGRAPH, "Body."),
            ws,
        ])
        assert [e.kind for e in cleaned] == [
            ElementKind.HEADING, ElementKind.WHITESPACE, ElementKind.PARAGRAPH
        ]

    def test_empty_content_dropped(self):
        cleaned = clean_document_elements([
            element(ElementKind.BULLET, " "),
            element(ElementKind.HEADING, "Kept"),
        ])
        assert [e.content for e in cleaned] == ["Kept"]

    def test_payload_elements_untouched(self):
        """Tables and images pass through even with empty content."""
        table = DocumentElement(
            kind=ElementKind.TABLE, content="", page=1,
            table=TablePayload(rows=[["a", "b"]]),
        )
        image = DocumentElement(
            kind=ElementKind.IMAGE, content="Image 1", page=1,
            image=ImagePayload(data=b"\x89PNG", width=1, height=1),
        )
        cleaned = clean_document_elements([
            element(ElementKind.PARAGRAPH, "before"),
            table,
            element(ElementKind.PARAGRAPH, "after"),
            image,
        ])
        assert cleaned[1] is table
        assert cleaned[3] is image
        assert [e.content for e in cleaned if e.kind is ElementKind.PARAGRAPH] == ["before", "after"]

    def test_input_not_modified(self):
        first = element(ElementKind.PARAGRAPH, "one")
        second = element(ElementKind.PARAGRAPH, "two")
        clean_document_elements([first, second])
        assert first.content == "one"

    def test_idempotent(self):
        """Cleaning twice changes nothing."""
        ws = element(ElementKind.WHITESPACE, "")
        elements = [
            element(ElementKind.TITLE, "Report"), ws, ws,
            element(ElementKind.PARAGRAPH, "a"), element(ElementKind.PARAGRAPH, "b."),
        ]
        once = clean_document_elements(elements)
        assert clean_document_elements(once) == once

    def test_to_dict(self):
        el = DocumentElement(
            kind=ElementKind.IMAGE, content="Image 1", page=3,
            image=ImagePayload(data=b"abc", width=2, height=3, format="jpeg"),
        )
        data = el.to_dict()
        assert data["kind"] == "image"
        assert data["image"]["data"] == "YWJj"
        assert data["alignment"] is None
