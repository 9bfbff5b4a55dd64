"""
Utility modules for the layout reconstruction pipeline.
"""

from .io import PdfFragmentSource, save_json, load_fragments_json, save_fragments_json, ensure_dir
from .layout import PositionedFragment, Row, TableRegion, group_into_rows, detect_table_regions
from .tables import TableExtractor, ExtractedTable, ColumnType, TableMetadata
from .classify import DocumentElement, ElementKind, Alignment, classify_row, clean_document_elements
from .assembler import (
    DocumentAssembler,
    DocumentStructure,
    ConversionResult,
    extract_tables,
    extract_document_structure,
)
from .export import MarkdownExporter, DocxExporter, XlsxExporter, DocumentExporter

__all__ = [
    # IO
    "PdfFragmentSource", "save_json", "load_fragments_json", "save_fragments_json", "ensure_dir",
    # Layout
    "PositionedFragment", "Row", "TableRegion", "group_into_rows", "detect_table_regions",
    # Tables
    "TableExtractor", "ExtractedTable", "ColumnType", "TableMetadata",
    # Classification
    "DocumentElement", "ElementKind", "Alignment", "classify_row", "clean_document_elements",
    # Assembly
    "DocumentAssembler", "DocumentStructure", "ConversionResult",
    "extract_tables", "extract_document_structure",
    # Export
    "MarkdownExporter", "DocxExporter", "XlsxExporter", "DocumentExporter",
]
