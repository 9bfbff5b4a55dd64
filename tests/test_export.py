"""
Tests for the exporters.
"""

import json
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restructure.utils.layout import PositionedFragment
from restructure.utils.tables import ExtractedTable
from restructure.utils.classify import DocumentElement, ElementKind, ImagePayload
from restructure.utils.assembler import (
    ConversionResult,
    DocumentAssembler,
    DocumentStructure,
    PageText,
)
from restructure.utils.export import (
    DocumentExporter,
    DocxExporter,
    MarkdownExporter,
    XlsxExporter,
)


def frag(text, x, y, width=None, font_size=10.0):
    width = width if width is not None else 6.0 * len(text)
    return PositionedFragment(text, x, y, width, 10.0, 1, "Helvetica", font_size)


def report_fragments():
    return [
        frag("ANNUAL REPORT", 236, 60, width=140, font_size=24),
        frag("Revenue grew in every region.", 72, 120),
    ]


def price_table():
    return ExtractedTable(
        rows=[["Item", "Price"], ["Tea", "$2.50"], ["Cake", "$1,204.00"]],
        source="Page 1, Table 1",
        page_number=1,
        header_row=["Item", "Price"],
        letterhead=["Cafe menu"],
    )


class TestXlsxExporter:
    """Test workbook export."""

    @pytest.fixture
    def workbook(self, tmp_path):
        """Workbook written from a currency table."""
        openpyxl = pytest.importorskip("openpyxl")
        result = ConversionResult(tables=[price_table()], mode="tables")
        path = XlsxExporter().export(result, tmp_path / "tables.xlsx")
        return openpyxl.load_workbook(path)

    def test_sheet_per_table(self, workbook):
        assert workbook.sheetnames == ["Table 1 (P1)"]

    def test_header_styling(self, workbook):
        ws = workbook["Table 1 (P1)"]
        header = ws["A1"]
        assert header.value == "Item"
        assert header.font.bold
        assert header.fill.start_color.rgb.endswith("1E3A5F")
        assert ws.freeze_panes == "A2"

    def test_currency_cells_numeric(self, workbook):
        """Currency columns hold numbers with the detected symbol's format."""
        ws = workbook["Table 1 (P1)"]
        assert ws["B2"].value == pytest.approx(2.5)
        assert ws["B3"].value == pytest.approx(1204.0)
        assert ws["B2"].number_format == "$#,##0.00"
        assert ws["A2"].value == "Tea"

    def test_text_sheet(self, tmp_path):
        """Text results go to a single content sheet."""
        openpyxl = pytest.importorskip("openpyxl")
        result = ConversionResult(
            mode="text",
            text_content=[PageText(page=1, content="first"), PageText(page=3, content="third")],
        )
        path = XlsxExporter().export(result, tmp_path / "text.xlsx")
        ws = openpyxl.load_workbook(path)["PDF_Content"]

        assert [c.value for c in ws[1]] == ["Page", "Content"]
        assert ws["A3"].value == 3
        assert ws["B3"].value == "third"

    def test_empty_result_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            XlsxExporter().export(ConversionResult(), tmp_path / "empty.xlsx")


class TestDocxExporter:
    """Test DOCX export."""

    def test_outline_document(self, tmp_path):
        """Titles use the Title style; tables become Word tables."""
        docx = pytest.importorskip("docx")
        fragments = report_fragments() + [
            frag(text, x, 200 + 20 * r)
            for r, row in enumerate([["Name", "Qty", "Unit"], ["Tea", "2", "cup"], ["Cake", "1", "slice"]])
            for x, text in zip((72, 200, 350), row)
        ]
        result = DocumentAssembler().convert({1: fragments})
        path = DocxExporter().export(result, tmp_path / "report.docx")

        doc = docx.Document(str(path))
        assert doc.paragraphs[0].style.name == "Title"
        assert doc.paragraphs[0].text == "ANNUAL REPORT"
        assert len(doc.tables) == 1
        assert doc.tables[0].cell(0, 0).text == "Name"

    def test_lists_and_unsupported_images(self, tmp_path):
        """Bullets use list styles; unreadable images are skipped."""
        docx = pytest.importorskip("docx")
        structure = DocumentStructure(
            title=None,
            pages=1,
            elements=[
                DocumentElement(kind=ElementKind.BULLET, content="first", page=1, level=1),
                DocumentElement(kind=ElementKind.BULLET, content="nested", page=1, level=2, indent=1),
                DocumentElement(kind=ElementKind.NUMBERED, content="1. step", page=1, level=1),
                DocumentElement(
                    kind=ElementKind.IMAGE, content="Image 1", page=1,
                    image=ImagePayload(data=b"not an image", width=10, height=10),
                ),
            ],
        )
        result = ConversionResult(structure=structure)
        doc = docx.Document(str(DocxExporter().export(result, tmp_path / "lists.docx")))

        styles = [p.style.name for p in doc.paragraphs]
        assert styles[:2] == ["List Bullet", "List Bullet 2"]
        assert doc.paragraphs[2].text == "1. step"

    def test_tables_without_outline(self, tmp_path):
        docx = pytest.importorskip("docx")
        result = ConversionResult(tables=[price_table()], mode="tables")
        path = DocxExporter().export(result, tmp_path / "menu.docx", source_name="menu")

        doc = docx.Document(str(path))
        texts = [p.text for p in doc.paragraphs]
        assert texts[0] == "Converted: menu"
        assert "Page 1, Table 1" in texts
        assert "Cafe menu" in texts
        assert doc.tables[0].cell(2, 1).text == "$1,204.00"


class TestMarkdownExporter:
    """Test Markdown export."""

    def test_writes_markdown(self, tmp_path):
        result = DocumentAssembler().convert({1: report_fragments()})
        path = MarkdownExporter().export(result, tmp_path / "out" / "report.md")
        assert path.read_text(encoding="utf-8").startswith("# ANNUAL REPORT")

    def test_generates_when_missing(self, tmp_path):
        result = ConversionResult(tables=[price_table()], mode="tables")
        text = MarkdownExporter().export(result, tmp_path / "menu.md").read_text(encoding="utf-8")
        assert "> Cafe menu" in text
        assert "| Tea | $2.50 |" in text


class TestDocumentExporter:
    """Test multi-format export."""

    def test_all_formats(self, tmp_path):
        pytest.importorskip("docx")
        pytest.importorskip("openpyxl")
        result = ConversionResult(tables=[price_table()], mode="tables", source_file="menu.pdf")

        paths = DocumentExporter(tmp_path, "menu").export(result, ["all"])

        assert set(paths) == {"json", "markdown", "docx", "xlsx"}
        for path in paths.values():
            assert path.exists()
        data = json.loads(paths["json"].read_text(encoding="utf-8"))
        assert data["source_file"] == "menu.pdf"
        assert data["tables"][0]["metadata"]["column_types"] == ["text", "currency"]

    def test_default_formats(self, tmp_path):
        result = ConversionResult(mode="text", text_content=[PageText(page=1, content="words")])
        paths = DocumentExporter(tmp_path, "doc").export(result)
        assert set(paths) == {"json", "markdown"}

    def test_xlsx_skipped_for_outline_only(self, tmp_path):
        """Outline-only results have nothing for a workbook."""
        pytest.importorskip("openpyxl")
        result = DocumentAssembler().convert({1: report_fragments()}, mode="tables")
        paths = DocumentExporter(tmp_path, "report").export(result, ["xlsx"])
        assert paths == {}

    def test_empty_result_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            DocumentExporter(tmp_path).export(ConversionResult(), ["json"])
