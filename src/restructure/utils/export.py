"""
Export module for layout reconstruction.

Provides:
- Markdown export
- DOCX export (using python-docx)
- XLSX export (using openpyxl)
- JSON export and multi-format export
"""

import io
import logging
import re
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

from ..config import ExportConfig
from .classify import Alignment, DocumentElement, ElementKind
from .tables import ColumnType, ExtractedTable

logger = logging.getLogger(__name__)


def _require_content(result: Any):
    if getattr(result, "is_empty", False):
        raise ValueError("Conversion result has no content to export")


# ============================================================================
# Markdown Exporter
# ============================================================================

class MarkdownExporter:
    """Export a conversion result to Markdown format."""

    def export(
        self,
        result: Any,
        output_path: Union[str, Path]
    ) -> Path:
        """
        Export a conversion result to a Markdown file.

        Args:
            result: ConversionResult
            output_path: Output file path

        Returns:
            Path to the generated Markdown file
        """
        _require_content(result)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        # Use pre-generated markdown if available
        markdown = result.markdown
        if not markdown:
            from .assembler import generate_markdown
            markdown = generate_markdown(result)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(markdown)

        logger.info(f"Exported Markdown to: {output_path}")
        return output_path


# ============================================================================
# DOCX Exporter
# ============================================================================

class DocxExporter:
    """Export a conversion result to DOCX format using python-docx."""

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def export(
        self,
        result: Any,
        output_path: Union[str, Path],
        source_name: str = ""
    ) -> Path:
        """
        Export a conversion result to a DOCX file.

        The document outline is used when present; otherwise the tables or
        the per-page text are written.

        Args:
            result: ConversionResult
            output_path: Output file path
            source_name: Name used in the heading of a table/text-only document

        Returns:
            Path to the generated DOCX file
        """
        try:
            from docx import Document as DocxDocument
        except ImportError:
            raise ImportError(
                "python-docx is required for DOCX export. "
                "Install with: pip install python-docx"
            )

        _require_content(result)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        # Create document from template or blank
        template = self.config.docx_template
        if template and Path(template).exists():
            doc = DocxDocument(template)
        else:
            doc = DocxDocument()
        self._set_default_font(doc)

        if result.structure is not None and result.structure.elements:
            self._build_from_structure(doc, result.structure)
        else:
            self._build_from_result(doc, result, source_name or Path(result.source_file).stem)

        doc.save(str(output_path))
        logger.info(f"Exported DOCX to: {output_path}")
        return output_path

    def _set_default_font(self, doc: Any):
        from docx.shared import Pt

        style = doc.styles['Normal']
        style.font.name = self.config.docx_font
        style.font.size = Pt(11)

    def _color(self, hex_value: str):
        from docx.shared import RGBColor
        return RGBColor.from_string(hex_value)

    def _add_heading(self, doc: Any, text: str, level: int, alignment: Optional[Alignment] = None):
        heading = doc.add_heading(text, level)
        color = self.config.docx_title_color if level == 0 else self.config.docx_heading_color
        for run in heading.runs:
            run.font.color.rgb = self._color(color)
        self._align(heading, alignment)
        return heading

    def _align(self, paragraph: Any, alignment: Optional[Alignment]):
        from docx.enum.text import WD_ALIGN_PARAGRAPH

        mapping = {
            Alignment.CENTER: WD_ALIGN_PARAGRAPH.CENTER,
            Alignment.RIGHT: WD_ALIGN_PARAGRAPH.RIGHT,
        }
        if alignment in mapping:
            paragraph.alignment = mapping[alignment]

    def _build_from_structure(self, doc: Any, structure: Any):
        """Build DOCX from the document outline."""
        for element in structure.elements:
            self._add_element(doc, element)

    def _add_element(self, doc: Any, element: DocumentElement):
        """Add one outline element to the DOCX document."""
        from docx.shared import Inches

        kind = element.kind
        indent = Inches(self.config.indent_inches * element.indent) if element.indent else None

        if kind is ElementKind.TITLE:
            self._add_heading(doc, element.content, 0, element.alignment)

        elif kind is ElementKind.HEADING:
            self._add_heading(doc, element.content, 1, element.alignment)

        elif kind is ElementKind.SUBHEADING:
            self._add_heading(doc, element.content, 2, element.alignment)

        elif kind is ElementKind.BULLET:
            level = min(element.level or 1, 3)
            style = 'List Bullet' if level == 1 else f'List Bullet {level}'
            p = doc.add_paragraph(element.content, style=style)
            self._style_runs(p, element)

        elif kind is ElementKind.NUMBERED:
            # Content already carries its "<n>. " prefix
            p = doc.add_paragraph()
            self._style_runs(p, element, text=element.content)
            p.paragraph_format.left_indent = Inches(self.config.indent_inches * (element.level or 1))

        elif kind is ElementKind.WHITESPACE:
            doc.add_paragraph()

        elif kind is ElementKind.TABLE and element.table is not None:
            self._add_table(doc, element.table.rows, element.table.has_header)
            doc.add_paragraph()

        elif kind is ElementKind.IMAGE and element.image is not None:
            self._add_picture(doc, element)

        else:
            p = doc.add_paragraph()
            self._style_runs(p, element, text=element.content)
            self._align(p, element.alignment)
            if indent is not None:
                p.paragraph_format.left_indent = indent

    def _style_runs(self, paragraph: Any, element: DocumentElement, text: Optional[str] = None):
        if text is not None:
            paragraph.add_run(text)
        for run in paragraph.runs:
            run.bold = element.bold or None
            run.italic = element.italic or None
            run.font.color.rgb = self._color(self.config.docx_body_color)

    def _add_picture(self, doc: Any, element: DocumentElement):
        from docx.shared import Inches
        from docx.image.exceptions import UnrecognizedImageError

        image = element.image
        # 96 dpi assumed for the natural width
        width = min(self.config.image_width_inches, max(image.width, 1) / 96.0)
        try:
            doc.add_picture(io.BytesIO(image.data), width=Inches(width))
        except UnrecognizedImageError:
            logger.warning(f"Skipping unsupported {image.format} image on page {element.page}")

    def _build_from_result(self, doc: Any, result: Any, source_name: str):
        """Build DOCX from tables or per-page text when no outline is available."""
        from docx.enum.text import WD_ALIGN_PARAGRAPH

        self._add_heading(doc, f"Converted: {source_name}" if source_name else "Converted document", 0)

        if result.mode == "tables" and result.tables:
            for table in result.tables:
                p = doc.add_paragraph()
                run = p.add_run(table.source)
                run.bold = True
                run.font.color.rgb = self._color(self.config.docx_heading_color)
                for line in table.letterhead or []:
                    doc.add_paragraph(line)
                self._add_table(doc, table.rows, table.has_header)
                doc.add_paragraph()
            return

        for page in result.text_content:
            marker = doc.add_paragraph()
            run = marker.add_run(f"Page {page.page}")
            run.italic = True
            marker.alignment = WD_ALIGN_PARAGRAPH.CENTER
            p = doc.add_paragraph()
            p.add_run(page.content).font.color.rgb = self._color(self.config.docx_body_color)

    def _shade(self, cell: Any, fill: str):
        from docx.oxml import OxmlElement
        from docx.oxml.ns import qn

        shading = OxmlElement('w:shd')
        shading.set(qn('w:val'), 'clear')
        shading.set(qn('w:color'), 'auto')
        shading.set(qn('w:fill'), fill)
        cell._tc.get_or_add_tcPr().append(shading)

    def _add_table(self, doc: Any, rows: List[List[str]], has_header: bool = False):
        """Add a table to the DOCX document."""
        if not rows:
            return

        num_rows = len(rows)
        num_cols = len(rows[0]) if rows else 0

        if num_cols == 0:
            return

        table = doc.add_table(rows=num_rows, cols=num_cols)
        table.style = 'Table Grid'

        for i, row_data in enumerate(rows):
            row = table.rows[i]
            is_header = i == 0 and has_header
            for j, cell_text in enumerate(row_data):
                if j >= len(row.cells):
                    continue
                cell = row.cells[j]
                cell.text = str(cell_text)
                if is_header:
                    self._shade(cell, self.config.docx_table_header_fill)
                    for run in cell.paragraphs[0].runs:
                        run.bold = True
                        run.font.color.rgb = self._color(self.config.xlsx_header_text)
                elif i % 2 == 1:
                    self._shade(cell, self.config.docx_table_alt_fill)


# ============================================================================
# XLSX Exporter
# ============================================================================

_CURRENCY_STRIP = re.compile(r'[₦$€£,\s]')
_CURRENCY_CODE_STRIP = re.compile(r'(?i)NGN|USD|EUR|GBP|=N=')


def _currency_value(text: str) -> Optional[float]:
    cleaned = _CURRENCY_STRIP.sub('', _CURRENCY_CODE_STRIP.sub('', text))
    try:
        return float(cleaned)
    except ValueError:
        return None


class XlsxExporter:
    """Export tables (or per-page text) to XLSX using openpyxl."""

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def export(
        self,
        result: Any,
        output_path: Union[str, Path]
    ) -> Path:
        """
        Export a conversion result to an XLSX workbook.

        Tables become one styled sheet each; in text mode a single
        ``PDF_Content`` sheet holds the per-page text.

        Args:
            result: ConversionResult
            output_path: Output file path

        Returns:
            Path to the generated workbook
        """
        try:
            import openpyxl
        except ImportError:
            raise ImportError(
                "openpyxl is required for XLSX export. "
                "Install with: pip install openpyxl"
            )

        _require_content(result)
        if not result.tables and not result.text_content:
            raise ValueError("Conversion result has no tables or text to write to a workbook")

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        wb = openpyxl.Workbook()
        wb.remove(wb.active)

        if result.mode == "tables" and result.tables:
            for index, table in enumerate(result.tables, 1):
                self._write_table(wb, table, index)
        else:
            self._write_text(wb, result.text_content)

        wb.save(str(output_path))
        logger.info(f"Exported XLSX to: {output_path}")
        return output_path

    def _border(self, color: str):
        from openpyxl.styles import Border, Side

        side = Side(style="thin", color=color)
        return Border(left=side, right=side, top=side, bottom=side)

    def _write_table(self, wb: Any, table: ExtractedTable, index: int):
        from openpyxl.styles import Font, PatternFill, Alignment as CellAlignment, Border, Side
        from openpyxl.utils import get_column_letter

        cfg = self.config
        ws = wb.create_sheet(title=f"Table {index} (P{table.page_number})"[:31])  # Excel sheet names max 31 chars
        metadata = table.metadata
        column_types = metadata.column_types if metadata else []
        symbols = metadata.column_currency_symbols if metadata else []

        header_font = Font(name=cfg.xlsx_font, bold=True, size=11, color=cfg.xlsx_header_text)
        header_fill = PatternFill(start_color=cfg.xlsx_header_fill, end_color=cfg.xlsx_header_fill, fill_type="solid")
        data_font = Font(name=cfg.xlsx_font, size=10, color=cfg.docx_body_color)
        fills = {
            True: PatternFill(start_color=cfg.xlsx_even_row_fill, end_color=cfg.xlsx_even_row_fill, fill_type="solid"),
            False: PatternFill(start_color=cfg.xlsx_odd_row_fill, end_color=cfg.xlsx_odd_row_fill, fill_type="solid"),
        }
        border = self._border(cfg.xlsx_border)

        for r, row in enumerate(table.rows, 1):
            is_header = r == 1 and table.has_header
            data_index = r - (2 if table.has_header else 1)
            for c, text in enumerate(row, 1):
                column_type = column_types[c - 1] if c - 1 < len(column_types) else ColumnType.TEXT
                cell = ws.cell(row=r, column=c, value=text)

                if is_header:
                    accent = cfg.type_accents.get(column_type.value, cfg.type_accents["text"])
                    cell.font = header_font
                    cell.fill = header_fill
                    cell.alignment = CellAlignment(horizontal="center", vertical="center", wrap_text=True)
                    cell.border = Border(
                        left=Side(style="thin", color=cfg.docx_heading_color),
                        right=Side(style="thin", color=cfg.docx_heading_color),
                        top=Side(style="thin", color=cfg.docx_heading_color),
                        bottom=Side(style="medium", color=accent),
                    )
                    continue

                if column_type in (ColumnType.NUMBER, ColumnType.CURRENCY):
                    horizontal = "right"
                elif column_type is ColumnType.DATE:
                    horizontal = "center"
                else:
                    horizontal = "left"

                cell.font = data_font
                cell.fill = fills[data_index % 2 == 0]
                cell.alignment = CellAlignment(horizontal=horizontal, vertical="center", wrap_text=True)
                cell.border = border

                # Numeric conversion only when a symbol was actually detected
                symbol = symbols[c - 1] if c - 1 < len(symbols) else None
                if column_type is ColumnType.CURRENCY and symbol and text:
                    value = _currency_value(text)
                    if value is not None:
                        cell.value = value
                        cell.number_format = f'{symbol}#,##0.00'

        for c in range(1, table.num_cols + 1):
            longest = max((len(row[c - 1]) for row in table.rows), default=0)
            width = min(max(longest + 4, cfg.xlsx_min_col_width), cfg.xlsx_max_col_width)
            ws.column_dimensions[get_column_letter(c)].width = width

        if table.has_header:
            ws.row_dimensions[1].height = cfg.xlsx_header_row_height
            ws.freeze_panes = "A2"

    def _write_text(self, wb: Any, pages: List[Any]):
        from openpyxl.styles import Font, PatternFill, Alignment as CellAlignment

        cfg = self.config
        ws = wb.create_sheet(title="PDF_Content")

        header_font = Font(name=cfg.xlsx_font, bold=True, size=11, color=cfg.xlsx_header_text)
        header_fill = PatternFill(start_color=cfg.xlsx_text_header_fill, end_color=cfg.xlsx_text_header_fill, fill_type="solid")
        for c, label in enumerate(("Page", "Content"), 1):
            cell = ws.cell(row=1, column=c, value=label)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = CellAlignment(horizontal="center", vertical="center")

        border = self._border(cfg.xlsx_border)
        for r, page in enumerate(pages, 2):
            even = r % 2 == 0
            page_fill = cfg.xlsx_page_column_fill if even else cfg.xlsx_odd_row_fill
            content_fill = cfg.xlsx_even_row_fill if even else cfg.xlsx_odd_row_fill

            page_cell = ws.cell(row=r, column=1, value=page.page)
            page_cell.font = Font(name=cfg.xlsx_font, bold=True, size=10, color=cfg.type_accents["currency"])
            page_cell.fill = PatternFill(start_color=page_fill, end_color=page_fill, fill_type="solid")
            page_cell.alignment = CellAlignment(horizontal="center", vertical="center")
            page_cell.border = border

            content_cell = ws.cell(row=r, column=2, value=page.content)
            content_cell.font = Font(name=cfg.xlsx_font, size=10)
            content_cell.fill = PatternFill(start_color=content_fill, end_color=content_fill, fill_type="solid")
            content_cell.alignment = CellAlignment(horizontal="left", vertical="center", wrap_text=True)
            content_cell.border = border

        ws.column_dimensions["A"].width = 8
        ws.column_dimensions["B"].width = 100
        ws.row_dimensions[1].height = 28
        ws.freeze_panes = "A2"


# ============================================================================
# Multi-Format Exporter
# ============================================================================

EXPORT_FORMATS = ("json", "markdown", "docx", "xlsx")


class DocumentExporter:
    """Convenience class for exporting to multiple formats."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        base_name: str = "document",
        config: Optional[ExportConfig] = None
    ):
        self.output_dir = Path(output_dir)
        self.base_name = base_name

        self.markdown_exporter = MarkdownExporter()
        self.docx_exporter = DocxExporter(config)
        self.xlsx_exporter = XlsxExporter(config)

    def export(
        self,
        result: Any,
        formats: List[str] = None
    ) -> Dict[str, Path]:
        """
        Export a conversion result to multiple formats.

        Args:
            result: ConversionResult
            formats: List of formats ('json', 'markdown', 'docx', 'xlsx', 'all')

        Returns:
            Dictionary mapping format to output path
        """
        from .io import save_json

        if formats is None:
            formats = ["json", "markdown"]

        if "all" in formats:
            formats = list(EXPORT_FORMATS)

        _require_content(result)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        results = {}

        if "json" in formats:
            path = self.output_dir / f"{self.base_name}.json"
            results["json"] = save_json(result.to_dict(), path)

        if "markdown" in formats:
            path = self.output_dir / f"{self.base_name}.md"
            results["markdown"] = self.markdown_exporter.export(result, path)

        if "docx" in formats:
            path = self.output_dir / f"{self.base_name}.docx"
            results["docx"] = self.docx_exporter.export(result, path, source_name=self.base_name)

        if "xlsx" in formats:
            if result.tables or result.text_content:
                path = self.output_dir / f"{self.base_name}.xlsx"
                results["xlsx"] = self.xlsx_exporter.export(result, path)
            else:
                logger.warning("Skipping XLSX export: no tables or page text in result")

        return results
