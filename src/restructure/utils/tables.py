"""
Table extraction module for layout reconstruction.

Provides:
- Cell assignment against column boundaries
- Header row detection and per-column type inference
- Currency symbol detection
- Region-based table extraction with a gap-split fallback
- Multiple output formats (Markdown, HTML, CSV, JSON)
"""

import logging
import csv
import io
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Dict, Any, Sequence

import numpy as np

from ..config import RowConfig, TableConfig, HeaderConfig
from .layout import (
    PositionedFragment,
    Row,
    TableRegion,
    group_into_rows,
    detect_table_regions,
    detect_column_boundaries,
    detect_page_column_boundaries,
    iter_pages,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Enums and Data Classes
# ============================================================================

class ColumnType(Enum):
    """Semantic type inferred for a table column."""
    TEXT = "text"
    NUMBER = "number"
    CURRENCY = "currency"
    DATE = "date"
    MIXED = "mixed"


@dataclass
class HeaderInfo:
    """Outcome of header detection for a grid."""
    is_header: bool
    confidence: float
    score: float = 0.0


@dataclass
class TableMetadata:
    """Column-level analysis of a finalized grid."""
    has_detected_header: bool
    column_types: List[ColumnType]
    column_currency_symbols: List[Optional[str]]
    total_rows: int
    total_cols: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_detected_header": self.has_detected_header,
            "column_types": [t.value for t in self.column_types],
            "column_currency_symbols": self.column_currency_symbols,
            "total_rows": self.total_rows,
            "total_cols": self.total_cols,
        }


@dataclass
class ExtractedTable:
    """A finalized table: a rectangular grid of trimmed strings plus context."""
    rows: List[List[str]]
    source: str
    page_number: int
    header_row: Optional[List[str]] = None
    letterhead: Optional[List[str]] = None
    metadata: Optional[TableMetadata] = None
    header_confidence: float = 0.0

    # Pre-generated output formats
    table_markdown: str = field(default="", repr=False)
    table_html: str = field(default="", repr=False)
    table_csv: str = field(default="", repr=False)

    def __post_init__(self):
        width = max((len(r) for r in self.rows), default=0)
        self.rows = [
            [str(c).strip() for c in (list(r) + [""] * (width - len(r)))[:width]]
            for r in self.rows
        ]
        if self.metadata is None:
            self.metadata = analyze_table_metadata(self.rows, self.header_row is not None)
        if not self.table_markdown:
            self.table_markdown = self._build_markdown()
        if not self.table_html:
            self.table_html = self._build_html()
        if not self.table_csv:
            self.table_csv = self._build_csv()

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    @property
    def num_cols(self) -> int:
        return len(self.rows[0]) if self.rows else 0

    @property
    def has_header(self) -> bool:
        return self.header_row is not None

    @property
    def data_rows(self) -> List[List[str]]:
        return self.rows[1:] if self.has_header else self.rows

    def _build_markdown(self) -> str:
        """Build Markdown table representation."""
        if self.num_rows == 0 or self.num_cols == 0:
            return ""

        def line(cells: Sequence[str]) -> str:
            return "| " + " | ".join(c.replace("|", "\\|") for c in cells) + " |"

        # Markdown needs a header line; a blank one stands in when none was detected
        header = self.rows[0] if self.has_header else [""] * self.num_cols
        lines = [line(header), "| " + " | ".join("---" for _ in range(self.num_cols)) + " |"]
        lines.extend(line(row) for row in self.data_rows)
        return "\n".join(lines)

    def _build_html(self) -> str:
        """Build HTML table representation."""
        if self.num_rows == 0 or self.num_cols == 0:
            return ""

        lines = ['<table>']
        if self.has_header:
            lines.append('  <thead>')
            lines.append('    <tr>')
            for cell in self.rows[0]:
                lines.append(f'      <th>{self._escape_html(cell)}</th>')
            lines.append('    </tr>')
            lines.append('  </thead>')

        lines.append('  <tbody>')
        for row in self.data_rows:
            lines.append('    <tr>')
            for cell in row:
                lines.append(f'      <td>{self._escape_html(cell)}</td>')
            lines.append('    </tr>')
        lines.append('  </tbody>')
        lines.append('</table>')

        return "\n".join(lines)

    def _build_csv(self) -> str:
        """Build CSV representation."""
        if self.num_rows == 0 or self.num_cols == 0:
            return ""

        output = io.StringIO()
        writer = csv.writer(output)
        for row in self.rows:
            writer.writerow(row)
        return output.getvalue()

    def _escape_html(self, text: str) -> str:
        """Escape HTML special characters."""
        return (text
            .replace('&', '&amp;')
            .replace('<', '&lt;')
            .replace('>', '&gt;')
            .replace('"', '&quot;')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "page_number": self.page_number,
            "num_rows": self.num_rows,
            "num_cols": self.num_cols,
            "rows": self.rows,
            "header_row": self.header_row,
            "header_confidence": self.header_confidence,
            "letterhead": self.letterhead,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "markdown": self.table_markdown,
            "html": self.table_html,
            "csv": self.table_csv,
        }


# ============================================================================
# Cell Assignment
# ============================================================================

def assign_fragments_to_columns(
    fragments: Sequence[PositionedFragment],
    boundaries: Sequence[float],
    tolerance: float = TableConfig.cell_tolerance
) -> List[str]:
    """
    Place each fragment of a row into a column cell.

    A fragment belongs to column ``i`` when its x lies in
    ``[boundaries[i] - tolerance, boundaries[i+1] - tolerance)``; the last
    column is open-ended. Fragments matching no interval go to the nearest
    boundary. Texts sharing a cell are joined with a single space.

    Args:
        fragments: Row fragments
        boundaries: Ascending column left edges
        tolerance: Slack subtracted from each interval

    Returns:
        Exactly ``len(boundaries)`` trimmed cells
    """
    cells = [""] * len(boundaries)
    if not boundaries:
        return cells

    for fragment in sorted(fragments, key=lambda f: (f.x, f.y, f.text)):
        col = -1
        for i, start in enumerate(boundaries):
            end = boundaries[i + 1] if i + 1 < len(boundaries) else float("inf")
            if start - tolerance <= fragment.x < end - tolerance:
                col = i
                break

        if col == -1:
            col = int(np.argmin([abs(fragment.x - b) for b in boundaries]))

        text = fragment.text.strip()
        if not text:
            continue
        cells[col] = f"{cells[col]} {text}" if cells[col] else text

    return [cell.strip() for cell in cells]


def drop_empty_columns(rows: Sequence[Sequence[str]]) -> List[List[str]]:
    """Remove columns that are empty in every row; pad short rows."""
    if not rows:
        return []

    width = max(len(r) for r in rows)
    keep = [
        col for col in range(width)
        if any(col < len(r) and r[col].strip() for r in rows)
    ]
    return [[r[col] if col < len(r) else "" for col in keep] for r in rows]


def split_row_by_gaps(
    fragments: Sequence[PositionedFragment],
    min_gap: float = TableConfig.min_col_gap
) -> List[str]:
    """Split a row into cells wherever the gap between fragments reaches ``min_gap``."""
    if not fragments:
        return []

    ordered = sorted(fragments, key=lambda f: (f.x, f.y, f.text))
    cells = [ordered[0].text]
    for prev, curr in zip(ordered, ordered[1:]):
        if curr.x - prev.right >= min_gap:
            cells.append(curr.text)
        else:
            cells[-1] = f"{cells[-1]} {curr.text}"
    return [cell.strip() for cell in cells]


# ============================================================================
# Header and Type Inference
# ============================================================================

_NUMERIC_STRIP = re.compile(r'[$₦€£,\s%]')
_FLOAT_PREFIX = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?')

_CURRENCY_GLYPHS = re.compile(r'[₦$€£]|=N=')
_CURRENCY_CODES = re.compile(r'(?<![A-Za-z])(NGN|USD|EUR|GBP)(?![A-Za-z])', re.IGNORECASE)

_DATE_PATTERNS = [
    re.compile(r'^\d{1,2}[/-]\w{3}[/-]\d{2,4}$', re.IGNORECASE),  # 24-Dec-2025
    re.compile(r'^\d{1,2}[/-]\d{1,2}[/-]\d{2,4}$'),               # 24/12/2025
    re.compile(r'^\d{4}[/-]\d{1,2}[/-]\d{1,2}$'),                 # 2025-12-24
]
_NUMBER_PATTERN = re.compile(r'^-?[\d,]+\.?\d*%?$')

# Priority order; locale variants normalise to one glyph per currency
_CURRENCY_SYMBOLS: List[Tuple[str, "re.Pattern"]] = [
    ("₦", re.compile(r'₦')),
    ("₦", re.compile(r'(?<![A-Za-z])NGN(?![A-Za-z])', re.IGNORECASE)),
    ("₦", re.compile(r'=N=')),
    ("$", re.compile(r'\$')),
    ("$", re.compile(r'(?<![A-Za-z])USD(?![A-Za-z])', re.IGNORECASE)),
    ("€", re.compile(r'€')),
    ("€", re.compile(r'(?<![A-Za-z])EUR(?![A-Za-z])', re.IGNORECASE)),
    ("£", re.compile(r'£')),
    ("£", re.compile(r'(?<![A-Za-z])GBP(?![A-Za-z])', re.IGNORECASE)),
]


def _is_numeric_cell(cell: str) -> bool:
    """True if the cell, stripped of currency/grouping marks, starts with a number."""
    return bool(_FLOAT_PREFIX.match(_NUMERIC_STRIP.sub("", cell)))


def get_numeric_ratio(row: Sequence[str]) -> float:
    """Fraction of the non-empty cells that read as numbers."""
    non_empty = [c for c in row if c.strip()]
    if not non_empty:
        return 0.0
    return sum(1 for c in non_empty if _is_numeric_cell(c)) / len(non_empty)


def is_header_like(text: str, max_length: int = HeaderConfig.header_like_max_length) -> bool:
    """Short, non-numeric label text."""
    text = text.strip()
    if not text or len(text) > max_length:
        return False
    if _is_numeric_cell(text):
        return False
    return any(ch.isalpha() for ch in text)


def detect_header(
    rows: Sequence[Sequence[str]],
    config: Optional[HeaderConfig] = None
) -> HeaderInfo:
    """
    Decide whether the first row of a grid is a header.

    Args:
        rows: Finalized grid
        config: Header configuration

    Returns:
        HeaderInfo with the decision and a confidence in [0, 1]
    """
    config = config or HeaderConfig()
    if len(rows) < 2:
        return HeaderInfo(is_header=False, confidence=0.0)

    first, rest = rows[0], rows[1:]
    score = 0.0

    first_ratio = get_numeric_ratio(first)
    rest_ratio = float(np.mean([get_numeric_ratio(r) for r in rest]))
    if first_ratio < config.low_numeric_ratio and rest_ratio > config.low_numeric_ratio:
        score += config.numeric_contrast_weight

    header_like = sum(1 for c in first if is_header_like(c, config.header_like_max_length))
    if header_like > len(first) * 0.5:
        score += config.header_like_weight

    first_empty = sum(1 for c in first if not c.strip())
    rest_empty = float(np.mean([sum(1 for c in r if not c.strip()) for r in rest]))
    if first_empty == 0 and rest_empty > 0:
        score += config.no_empty_cells_weight

    lowered = [c.lower() for c in first]
    if any(kw in cell for cell in lowered for kw in config.keywords):
        score += config.keyword_weight

    logger.debug(f"Header score {score:.1f} for first row {list(first)}")
    return HeaderInfo(
        is_header=score >= config.header_threshold,
        confidence=min(score / config.max_score, 1.0),
        score=score,
    )


def _is_currency_value(value: str) -> bool:
    has_marker = bool(_CURRENCY_GLYPHS.search(value) or _CURRENCY_CODES.search(value))
    return has_marker and any(ch.isdigit() for ch in value)


def _is_date_value(value: str) -> bool:
    return any(p.match(value) for p in _DATE_PATTERNS)


def _is_number_value(value: str) -> bool:
    return bool(_NUMBER_PATTERN.match(re.sub(r'\s', '', value)))


def detect_column_type(
    values: Sequence[str],
    majority: float = HeaderConfig.type_majority
) -> ColumnType:
    """
    Infer a column's type from its data values.

    Each non-empty value is classed as currency, date, number or text (first
    match wins); the first category, in that order, holding at least
    ``majority`` of the values becomes the type. Otherwise the column is mixed.
    """
    non_empty = [v.strip() for v in values if v.strip()]
    if not non_empty:
        return ColumnType.TEXT

    counts = {t: 0 for t in (ColumnType.CURRENCY, ColumnType.DATE, ColumnType.NUMBER, ColumnType.TEXT)}
    for value in non_empty:
        if _is_currency_value(value):
            counts[ColumnType.CURRENCY] += 1
        elif _is_date_value(value):
            counts[ColumnType.DATE] += 1
        elif _is_number_value(value):
            counts[ColumnType.NUMBER] += 1
        else:
            counts[ColumnType.TEXT] += 1

    total = len(non_empty)
    for column_type, count in counts.items():
        if count / total >= majority:
            return column_type
    return ColumnType.MIXED


def detect_currency_symbol(values: Sequence[str]) -> Optional[str]:
    """Canonical currency glyph for the first pattern (in priority order) found in the values."""
    for symbol, pattern in _CURRENCY_SYMBOLS:
        if any(pattern.search(v) for v in values):
            return symbol
    return None


def analyze_table_metadata(
    rows: Sequence[Sequence[str]],
    has_header: bool,
    config: Optional[HeaderConfig] = None
) -> TableMetadata:
    """Infer type and currency symbol for every column of a grid."""
    config = config or HeaderConfig()
    data_rows = rows[1:] if has_header else rows
    num_cols = max((len(r) for r in rows), default=0)

    column_types = []
    symbols = []
    for col in range(num_cols):
        values = [r[col] if col < len(r) else "" for r in data_rows]
        column_type = detect_column_type(values, config.type_majority)
        column_types.append(column_type)
        symbols.append(detect_currency_symbol(values) if column_type is ColumnType.CURRENCY else None)

    return TableMetadata(
        has_detected_header=has_header,
        column_types=column_types,
        column_currency_symbols=symbols,
        total_rows=len(rows),
        total_cols=num_cols,
    )


# ============================================================================
# Table Extractor Main Class
# ============================================================================

class TableExtractor:
    """
    Main table extraction interface.

    Supports:
    - Region-based extraction with letterhead capture
    - Gap-split fallback when no region is found in the whole document
    """

    def __init__(
        self,
        table_config: Optional[TableConfig] = None,
        header_config: Optional[HeaderConfig] = None,
        row_config: Optional[RowConfig] = None
    ):
        self.config = table_config or TableConfig()
        self.header_config = header_config or HeaderConfig()
        self.row_config = row_config or RowConfig()

    def extract(self, fragments_by_page) -> List[ExtractedTable]:
        """
        Extract tables from every page.

        Args:
            fragments_by_page: Mapping of page number to fragments, or a
                sequence of per-page fragment lists (page 1 first)

        Returns:
            Tables in page-then-position order
        """
        pages = iter_pages(fragments_by_page)
        tables: List[ExtractedTable] = []

        for page_num, fragments in pages:
            rows = group_into_rows(fragments, self.row_config.row_tolerance)
            page_tables = [
                table for _, table in self.extract_page(rows, page_num, len(tables) + 1)
                if table is not None
            ]
            logger.info(f"Page {page_num}: {len(rows)} rows, {len(page_tables)} tables")
            tables.extend(page_tables)

        if not tables and self.config.fallback_extraction:
            logger.info("No structured tables found, trying gap-split extraction")
            for page_num, fragments in pages:
                rows = group_into_rows(fragments, self.row_config.row_tolerance)
                table = self.extract_fallback(rows, page_num)
                if table is not None:
                    tables.append(table)

        logger.info(f"Found {len(tables)} table(s)")
        return tables

    def extract_page(
        self,
        rows: Sequence[Row],
        page_num: int,
        first_index: int = 1
    ) -> List[Tuple[TableRegion, Optional[ExtractedTable]]]:
        """
        Detect regions on one page and build a table for each.

        Regions that do not survive finalization are paired with ``None``.
        """
        results = []
        index = first_index
        for region in detect_table_regions(rows, self.config):
            table = self.build_table(region, page_num, index)
            if table is not None:
                index += 1
            results.append((region, table))
        return results

    def build_table(
        self,
        region: TableRegion,
        page_num: int,
        index: int
    ) -> Optional[ExtractedTable]:
        """Turn one region into a finalized table, or None if it is not tabular."""
        boundaries = detect_column_boundaries(region.rows, self.config.cluster_gap)
        if len(boundaries) < self.config.min_cols:
            logger.debug(f"Page {page_num}: region at y={region.start_y:.1f} has {len(boundaries)} column(s)")
            return None

        grid = [
            assign_fragments_to_columns(row.fragments, boundaries, self.config.cell_tolerance)
            for row in region.rows
        ]
        min_filled = max(1, self.config.min_cols - 1)
        grid = [r for r in grid if sum(1 for c in r if c) >= min_filled]
        if len(grid) < self.config.min_rows:
            return None

        return self._finalize(grid, f"Page {page_num}, Table {index}", page_num, region.letterhead)

    def extract_fallback(self, rows: Sequence[Row], page_num: int) -> Optional[ExtractedTable]:
        """
        Build one table per page from rows that show column gaps.

        Rows are split on gaps; when they disagree on width, the page-wide
        column boundaries are used to align them instead.
        """
        candidates = [
            row for row in rows
            if len(row.fragments) >= 2 or any(g >= self.config.min_col_gap for g in row.gaps())
        ]
        if len(candidates) < self.config.min_rows:
            return None

        grid = [split_row_by_gaps(row.fragments, self.config.min_col_gap) for row in candidates]
        if len({len(r) for r in grid}) > 1:
            boundaries = detect_page_column_boundaries(
                candidates, self.config.min_col_gap, self.config.min_cols
            )
            if len(boundaries) >= self.config.min_cols:
                grid = [
                    assign_fragments_to_columns(row.fragments, boundaries, self.config.cell_tolerance)
                    for row in candidates
                ]

        return self._finalize(grid, f"Page {page_num}", page_num, [])

    def _finalize(
        self,
        grid: List[List[str]],
        source: str,
        page_num: int,
        letterhead: List[str]
    ) -> Optional[ExtractedTable]:
        width = max(len(r) for r in grid)
        grid = [r + [""] * (width - len(r)) for r in grid]
        grid = drop_empty_columns(grid)
        if not grid or len(grid[0]) < self.config.min_cols:
            return None

        header = detect_header(grid, self.header_config)
        metadata = analyze_table_metadata(grid, header.is_header, self.header_config)
        return ExtractedTable(
            rows=grid,
            source=source,
            page_number=page_num,
            header_row=list(grid[0]) if header.is_header else None,
            letterhead=letterhead or None,
            metadata=metadata,
            header_confidence=header.confidence,
        )


def extract_tables(
    fragments_by_page,
    config: Optional[TableConfig] = None,
    header_config: Optional[HeaderConfig] = None,
    row_config: Optional[RowConfig] = None
) -> List[ExtractedTable]:
    """Extract every table from per-page fragments."""
    return TableExtractor(config, header_config, row_config).extract(fragments_by_page)
