"""
End-to-end integration tests for the Layout Reconstruction Pipeline.
"""

import pytest
import json
import sys
import tempfile
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

fitz = pytest.importorskip("fitz")


def centered_x(text, fontsize, page_width=612):
    return (page_width - fitz.get_text_length(text, fontname="helv", fontsize=fontsize)) / 2


class TestEndToEnd:
    """End-to-end integration tests."""

    @pytest.fixture
    def temp_output_dir(self):
        """Create a temporary output directory."""
        with tempfile.TemporaryDirectory(prefix="restructure_test_") as tmp_dir:
            yield Path(tmp_dir)

    @pytest.fixture
    def sample_pdf(self, temp_output_dir):
        """One-page report: title, prose, a sales table and a picture."""
        path = temp_output_dir / "report.pdf"
        doc = fitz.open()
        page = doc.new_page(width=612, height=792)

        # Title
        page.insert_text((centered_x("Quarterly Report", 24), 80), "Quarterly Report", fontsize=24)

        # Prose
        page.insert_text((72, 130), "The quarter closed with", fontsize=10)
        page.insert_text((72, 145), "steady growth in every region.", fontsize=10)

        # Table
        cells = [
            ["Region", "Units", "Revenue"],
            ["North", "120", "$1,500.00"],
            ["South", "95", "$1,187.50"],
        ]
        for r, row in enumerate(cells):
            for x, text in zip((72, 250, 400), row):
                page.insert_text((x, 200 + 20 * r), text, fontsize=10)

        # Picture
        pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 16, 16), False)
        pix.clear_with(180)
        page.insert_image(fitz.Rect(72, 320, 136, 384), stream=pix.tobytes("png"))

        doc.save(str(path))
        doc.close()
        return path

    def _convert(self, pdf_path, **kwargs):
        from restructure.utils.assembler import DocumentAssembler
        from restructure.utils.io import PdfFragmentSource

        with PdfFragmentSource(pdf_path) as source:
            return DocumentAssembler().convert(
                source.fragments_by_page(),
                image_provider=source.get_images,
                page_widths=source.page_widths(),
                source_file=str(pdf_path),
                **kwargs
            )

    def test_full_pipeline(self, sample_pdf):
        """Test the complete processing pipeline."""
        from restructure.utils.classify import ElementKind
        from restructure.utils.tables import ColumnType

        result = self._convert(sample_pdf)

        assert result.mode == "tables"
        assert len(result.tables) == 1
        table = result.tables[0]
        assert table.header_row == ["Region", "Units", "Revenue"]
        assert table.rows[1] == ["North", "120", "$1,500.00"]
        assert table.metadata.column_types == [ColumnType.TEXT, ColumnType.NUMBER, ColumnType.CURRENCY]
        assert table.metadata.column_currency_symbols[2] == "$"

        structure = result.structure
        assert structure.title == "Quarterly Report"
        kinds = [e.kind for e in structure.elements]
        assert kinds == [ElementKind.TITLE, ElementKind.PARAGRAPH, ElementKind.TABLE, ElementKind.IMAGE]
        assert structure.elements[1].content == "The quarter closed with steady growth in every region."

    def test_json_output_format(self, sample_pdf, temp_output_dir):
        """Test that JSON output is well-formed."""
        from restructure.utils.io import save_json, load_json

        result = self._convert(sample_pdf)

        json_path = temp_output_dir / "document.json"
        save_json(result.to_dict(), json_path)
        loaded = load_json(json_path)

        assert loaded["task_id"] == result.task_id
        assert loaded["tables"][0]["header_row"] == ["Region", "Units", "Revenue"]
        assert loaded["structure"]["elements"][3]["image"]["format"] == "png"
        assert "markdown" in loaded

    def test_markdown_generation(self, sample_pdf):
        """Test that Markdown is properly generated."""
        markdown = self._convert(sample_pdf).markdown

        assert markdown.startswith("# Quarterly Report")
        assert "| Region | Units | Revenue |" in markdown
        assert "*[Image 1]*" in markdown

    def test_export_formats(self, sample_pdf, temp_output_dir):
        """Test export to every format."""
        from restructure.utils.export import DocumentExporter

        result = self._convert(sample_pdf)
        exporter = DocumentExporter(temp_output_dir / "out", "report")
        results = exporter.export(result, formats=["all"])

        assert set(results) == {"json", "markdown", "docx", "xlsx"}
        for path in results.values():
            assert path.exists()
        assert results["markdown"].suffix == ".md"

    def test_text_mode(self, sample_pdf):
        """Text mode returns page text instead of tables."""
        result = self._convert(sample_pdf, mode="text", include_structure=False)

        assert result.tables == []
        assert result.text_content[0].content.startswith("Quarterly Report The quarter closed")


class TestMultiPageDocument:
    """Test multi-page document processing."""

    @pytest.fixture
    def multi_page_pdf(self):
        """Create a three-page prose PDF."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "multi_page.pdf"
            doc = fitz.open()
            for i in range(3):
                page = doc.new_page(width=612, height=792)
                page.insert_text((72, 80), f"Chapter {i + 1}", fontsize=18)
                for j, y in enumerate(range(130, 250, 15)):
                    page.insert_text((72, y), f"Content line {j + 1} on page {i + 1}", fontsize=10)
            doc.save(str(path))
            doc.close()
            yield path

    def test_multi_page_processing(self, multi_page_pdf):
        """Test processing of multi-page documents."""
        from restructure.utils.assembler import DocumentAssembler
        from restructure.utils.classify import ElementKind
        from restructure.utils.io import PdfFragmentSource

        with PdfFragmentSource(multi_page_pdf) as source:
            result = DocumentAssembler().convert(source.fragments_by_page())

        assert result.mode == "text"
        assert [p.page for p in result.text_content] == [1, 2, 3]
        assert result.structure.pages == 3
        assert result.structure.title == "Chapter 1"
        titles = result.structure.elements_of(ElementKind.TITLE)
        assert [e.page for e in titles] == [1, 2, 3]

    def test_page_selection(self, multi_page_pdf):
        """Only the selected pages are decoded."""
        from restructure.utils.assembler import DocumentAssembler
        from restructure.utils.io import PdfFragmentSource, select_pages

        with PdfFragmentSource(multi_page_pdf) as source:
            pages = select_pages(source.get_page_count(), max_pages=2)
            result = DocumentAssembler().convert(source.fragments_by_page(pages))

        assert [p.page for p in result.text_content] == [1, 2]


class TestEdgeCases:
    """Test edge cases and error handling."""

    def test_blank_pdf(self):
        """A PDF without text cannot be converted."""
        from restructure.exceptions import NoExtractableContentError
        from restructure.utils.assembler import DocumentAssembler
        from restructure.utils.io import PdfFragmentSource

        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "blank.pdf"
            doc = fitz.open()
            doc.new_page()
            doc.save(str(path))
            doc.close()

            with PdfFragmentSource(path) as source:
                with pytest.raises(NoExtractableContentError):
                    DocumentAssembler().convert(source.fragments_by_page())

    def test_cli_on_pdf(self):
        """The command line converts a PDF and saves its fragments."""
        from restructure.cli import main

        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_dir = Path(tmp_dir)
            path = tmp_dir / "memo.pdf"
            doc = fitz.open()
            page = doc.new_page(width=612, height=792)
            page.insert_text((72, 80), "Memo", fontsize=20)
            page.insert_text((72, 120), "Please review the attached figures.", fontsize=10)
            doc.save(str(path))
            doc.close()

            with pytest.raises(SystemExit) as exc:
                main(["-i", str(path), "-o", str(tmp_dir / "out"), "--save-fragments", "-q"])

            assert exc.value.code == 0
            dump = json.loads((tmp_dir / "out" / "memo.fragments.json").read_text(encoding="utf-8"))
            assert dump["pages"][0]["width"] == pytest.approx(612)
            assert (tmp_dir / "out" / "memo.md").read_text(encoding="utf-8").startswith("# Memo")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
