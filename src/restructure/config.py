"""
Configuration and constants for the layout reconstruction pipeline.

This module provides:
- Named thresholds and weights for every heuristic in the engine
- Export styling settings
- Environment overrides
"""

import os
from dataclasses import dataclass, field
from typing import Optional, List, Dict
import logging

logger = logging.getLogger("restructure")


# ============================================================================
# Engine Configuration
# ============================================================================

@dataclass
class RowConfig:
    """Row grouping configuration."""
    # Max y-distance (layout units) between a fragment and its row's representative y
    row_tolerance: float = 5.0


@dataclass
class TableConfig:
    """Table region detection and cell assignment configuration."""
    min_rows: int = 2
    min_cols: int = 2
    # Inter-fragment gap that separates two columns
    min_col_gap: float = 15.0
    # Sorted x-positions further apart than this start a new column cluster
    cluster_gap: float = 10.0
    # Slack applied to column intervals when assigning fragments to cells
    cell_tolerance: float = 10.0
    # Neighbour alignment: x-positions are snapped to this grid, then compared
    alignment_snap: float = 5.0
    alignment_tolerance: float = 10.0
    # A row scoring at or above this is table-like
    table_row_threshold: float = 0.5
    # Row score weights
    multi_fragment_weight: float = 0.3    # >= 2 fragments
    many_fragment_weight: float = 0.2     # >= 3 fragments
    gap_weight: float = 0.3               # some gap >= min_col_gap
    alignment_weight: float = 0.2         # scaled by neighbour alignment ratio
    single_or_large_penalty: float = 0.3  # single fragment or large font
    data_content_weight: float = 0.1      # numeric / date / short content
    large_font_threshold: float = 14.0
    default_font_size: float = 12.0
    short_text_length: int = 50
    # Gap-split extraction when no region is found anywhere in the document
    fallback_extraction: bool = True


@dataclass
class HeaderConfig:
    """Header detection and column type inference configuration."""
    header_threshold: float = 2.0
    max_score: float = 5.0
    low_numeric_ratio: float = 0.3
    numeric_contrast_weight: float = 2.0
    header_like_weight: float = 1.5
    no_empty_cells_weight: float = 0.5
    keyword_weight: float = 1.0
    header_like_max_length: int = 40
    # Share of non-empty values a category needs to become the column type
    type_majority: float = 0.5
    keywords: List[str] = field(default_factory=lambda: [
        "id", "name", "date", "amount", "total", "description", "type",
        "status", "number", "no", "qty", "quantity", "price", "value",
        "code", "ref", "account", "rate", "customer", "int",
    ])


@dataclass
class ClassifierConfig:
    """Document outline classification configuration."""
    title_min_font_size: float = 16.0
    heading_min_font_size: float = 13.0
    subheading_min_font_size: float = 11.0
    bold_subheading_min_font_size: float = 10.0
    # Fractions of the document max font size
    title_ratio: float = 0.9
    heading_ratio: float = 0.7
    subheading_ratio: float = 0.6
    left_margin: float = 72.0   # ~1 inch
    indent_step: float = 36.0   # ~0.5 inch per level
    center_tolerance: float = 50.0
    right_align_ratio: float = 0.6
    default_page_width: float = 612.0  # US Letter, points
    # Document title is searched for in the first rows of page 1
    title_search_rows: int = 5
    include_tables: bool = True
    bold_markers: List[str] = field(default_factory=lambda: ["bold", "black", "heavy"])
    italic_markers: List[str] = field(default_factory=lambda: ["italic", "oblique"])


@dataclass
class ExportConfig:
    """Export configuration."""
    # Spreadsheet styling
    xlsx_font: str = "Calibri"
    xlsx_header_fill: str = "1E3A5F"
    xlsx_header_text: str = "FFFFFF"
    xlsx_even_row_fill: str = "EBF4FF"
    xlsx_odd_row_fill: str = "FFFFFF"
    xlsx_border: str = "CBD5E1"
    xlsx_text_header_fill: str = "0D47A1"
    xlsx_page_column_fill: str = "E3F2FD"
    xlsx_min_col_width: int = 10
    xlsx_max_col_width: int = 50
    xlsx_header_row_height: float = 26.0
    type_accents: Dict[str, str] = field(default_factory=lambda: {
        "number": "2E7D32",
        "currency": "1565C0",
        "date": "7B1FA2",
        "text": "455A64",
    })
    # DOCX settings
    docx_template: Optional[str] = None
    docx_font: str = "Calibri"
    docx_title_color: str = "1E3A5F"
    docx_heading_color: str = "2C5282"
    docx_body_color: str = "1F2937"
    docx_table_header_fill: str = "1E3A5F"
    docx_table_alt_fill: str = "F1F5F9"
    image_width_inches: float = 6.0
    indent_inches: float = 0.5


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    rows: RowConfig = field(default_factory=RowConfig)
    table: TableConfig = field(default_factory=TableConfig)
    header: HeaderConfig = field(default_factory=HeaderConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    # Global settings
    mode: str = "auto"  # auto, tables, text
    debug_mode: bool = False
    max_pages: Optional[int] = None  # None = process all pages


CONVERSION_MODES = ("auto", "tables", "text")


# ============================================================================
# Default Configuration Instance
# ============================================================================

def get_config() -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    config = PipelineConfig()

    if os.environ.get("RESTRUCTURE_DEBUG", "").lower() == "true":
        config.debug_mode = True

    mode = os.environ.get("RESTRUCTURE_MODE", "").lower()
    if mode in CONVERSION_MODES:
        config.mode = mode
    elif mode:
        logger.warning(f"Ignoring unknown RESTRUCTURE_MODE: {mode}")

    tolerance = os.environ.get("RESTRUCTURE_ROW_TOLERANCE")
    if tolerance:
        try:
            config.rows.row_tolerance = float(tolerance)
        except ValueError:
            logger.warning(f"Ignoring invalid RESTRUCTURE_ROW_TOLERANCE: {tolerance}")

    return config


# ============================================================================
# JSON Schema Version
# ============================================================================

JSON_SCHEMA_VERSION = "1.0"
