"""
Layout reconstruction module.

Provides:
- Positioned text fragments and rows
- Row grouping by y-coordinate
- Column boundary detection (whole page and per region)
- Table region detection with letterhead capture

All coordinates are layout units with the origin at the page's top-left
corner and y growing downward.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Any, Sequence, Mapping, Union

import numpy as np

from ..config import RowConfig, TableConfig

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class PositionedFragment:
    """One run of text with its placement on the page."""
    text: str
    x: float
    y: float
    width: float
    height: float
    page: int = 1
    font_name: Optional[str] = None
    font_size: Optional[float] = None

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y)

    def size_or(self, default: float) -> float:
        """Font size, or ``default`` when the decoder did not report one."""
        if self.font_size is None or not math.isfinite(self.font_size) or self.font_size <= 0:
            return default
        return self.font_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "page": self.page,
            "font_name": self.font_name,
            "font_size": self.font_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PositionedFragment':
        font_size = data.get("font_size")
        return cls(
            text=str(data.get("text", "")),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0)),
            page=int(data.get("page", 1)),
            font_name=data.get("font_name"),
            font_size=float(font_size) if font_size is not None else None,
        )


@dataclass
class Row:
    """Fragments sharing a horizontal line.

    ``y`` is the first member's y. Fragments are appended during grouping and
    sorted left-to-right by :meth:`freeze`.
    """
    y: float
    fragments: List[PositionedFragment] = field(default_factory=list)
    avg_height: float = 0.0
    frozen: bool = False

    def add(self, fragment: PositionedFragment):
        if self.frozen:
            raise ValueError("Cannot add fragments to a frozen row")
        self.fragments.append(fragment)
        n = len(self.fragments)
        self.avg_height = (self.avg_height * (n - 1) + fragment.height) / n

    def freeze(self) -> 'Row':
        self.fragments.sort(key=lambda f: (f.x, f.y, f.text))
        self.frozen = True
        return self

    @property
    def min_x(self) -> float:
        return min(f.x for f in self.fragments) if self.fragments else 0.0

    @property
    def max_x(self) -> float:
        return max(f.right for f in self.fragments) if self.fragments else 0.0

    @property
    def text(self) -> str:
        return " ".join(f.text for f in self.fragments).strip()

    def avg_font_size(self, default: float = 12.0) -> float:
        if not self.fragments:
            return default
        return float(np.mean([f.size_or(default) for f in self.fragments]))

    def gaps(self) -> List[float]:
        """Horizontal gaps between consecutive fragments."""
        return [
            curr.x - prev.right
            for prev, curr in zip(self.fragments, self.fragments[1:])
        ]


@dataclass
class TableRegion:
    """Contiguous table-like rows plus the non-table rows just before them."""
    rows: List[Row]
    letterhead_rows: List[Row] = field(default_factory=list)

    @property
    def start_y(self) -> float:
        return self.rows[0].y

    @property
    def end_y(self) -> float:
        return self.rows[-1].y

    @property
    def letterhead(self) -> List[str]:
        lines = [row.text for row in self.letterhead_rows]
        return [line for line in lines if line]


# ============================================================================
# Row Grouping
# ============================================================================

def group_into_rows(
    fragments: Sequence[PositionedFragment],
    tolerance: float = RowConfig.row_tolerance
) -> List[Row]:
    """
    Group fragments into rows by y-coordinate.

    Args:
        fragments: Fragments of one page, in any order
        tolerance: Max distance from a row's representative y

    Returns:
        Rows top-to-bottom, each with fragments left-to-right
    """
    usable = [f for f in fragments if f.is_finite]
    if len(usable) != len(fragments):
        logger.debug(f"Skipped {len(fragments) - len(usable)} fragments with non-finite position")

    ordered = sorted(usable, key=lambda f: (f.y, f.x, f.text))

    rows: List[Row] = []
    current: Optional[Row] = None
    for fragment in ordered:
        if current is None or abs(fragment.y - current.y) > tolerance:
            current = Row(y=fragment.y)
            rows.append(current)
        current.add(fragment)

    return [row.freeze() for row in rows]


# ============================================================================
# Column Boundary Detection
# ============================================================================

def cluster_positions(positions: Sequence[float], gap: float) -> List[float]:
    """
    Cluster x-positions with a simple gap rule.

    Consecutive sorted positions further apart than ``gap`` start a new
    cluster; each cluster is represented by its minimum (its left edge).
    """
    if not positions:
        return []

    ordered = sorted(positions)
    boundaries = [ordered[0]]
    for prev, curr in zip(ordered, ordered[1:]):
        if curr - prev > gap:
            boundaries.append(curr)
    return boundaries


def detect_column_boundaries(
    rows: Sequence[Row],
    cluster_gap: float = TableConfig.cluster_gap
) -> List[float]:
    """
    Detect column left edges for the rows of one table region.

    Args:
        rows: Rows already identified as a table region
        cluster_gap: Gap that separates two clusters of x-positions

    Returns:
        Ascending column boundaries (fewer than two means "not a table")
    """
    positions = [f.x for row in rows for f in row.fragments]
    return cluster_positions(positions, cluster_gap)


def detect_page_column_boundaries(
    rows: Sequence[Row],
    gap: float = TableConfig.min_col_gap,
    min_fragments: int = TableConfig.min_cols
) -> List[float]:
    """
    Detect column left edges across a whole page.

    Only rows carrying at least ``min_fragments`` fragments contribute, so
    single-line prose does not add spurious columns.
    """
    positions = [
        f.x
        for row in rows
        if len(row.fragments) >= min_fragments
        for f in row.fragments
    ]
    return cluster_positions(positions, gap)


# ============================================================================
# Table Region Detection
# ============================================================================

_NUMERIC_TOKEN = r'^\d+[\d,.\-/]*$'


def _looks_like_data(text: str, config: TableConfig) -> bool:
    text = text.strip()
    return bool(
        re.match(_NUMERIC_TOKEN, text)
        or len(text) < config.short_text_length
    )


def alignment_with_neighbors(
    row: Row,
    neighbors: Sequence[Row],
    snap: float = TableConfig.alignment_snap,
    tolerance: float = TableConfig.alignment_tolerance
) -> float:
    """Fraction of the row's snapped x-positions matched in its neighbours."""
    def snapped(r: Row) -> List[float]:
        return [round(f.x / snap) * snap for f in r.fragments]

    row_xs = snapped(row)
    checks = 0
    matches = 0
    for neighbor in neighbors:
        neighbor_xs = snapped(neighbor)
        for x in row_xs:
            checks += 1
            if any(abs(nx - x) <= tolerance for nx in neighbor_xs):
                matches += 1

    return matches / checks if checks else 0.0


def score_row(
    rows: Sequence[Row],
    index: int,
    config: Optional[TableConfig] = None
) -> float:
    """
    Score how table-like a row is, clamped to [0, 1].

    Combines structural signals (fragment count, column gaps, alignment with
    the rows directly above and below) with a weak content signal, and
    penalises single-fragment or large-font rows.
    """
    config = config or TableConfig()
    row = rows[index]
    count = len(row.fragments)
    if count == 0:
        return 0.0

    score = 0.0
    if count >= 2:
        score += config.multi_fragment_weight
    if count >= 3:
        score += config.many_fragment_weight

    if any(g >= config.min_col_gap for g in row.gaps()):
        score += config.gap_weight

    neighbors = [rows[i] for i in (index - 1, index + 1) if 0 <= i < len(rows)]
    if neighbors:
        alignment = alignment_with_neighbors(
            row, neighbors, config.alignment_snap, config.alignment_tolerance
        )
        score += alignment * config.alignment_weight

    avg_font = row.avg_font_size(config.default_font_size)
    if count == 1 or avg_font > config.large_font_threshold:
        score -= config.single_or_large_penalty

    if any(_looks_like_data(f.text, config) for f in row.fragments):
        score += config.data_content_weight

    return min(max(score, 0.0), 1.0)


def detect_table_regions(
    rows: Sequence[Row],
    config: Optional[TableConfig] = None
) -> List[TableRegion]:
    """
    Find contiguous runs of table-like rows on one page.

    Non-table rows seen since the page start or the end of the previous run
    become the next region's letterhead. A run shorter than ``min_rows`` is
    not a region: it is discarded together with the letterhead collected
    before it.

    Args:
        rows: Page rows, top to bottom
        config: Table configuration

    Returns:
        Regions in top-to-bottom order
    """
    config = config or TableConfig()
    if len(rows) < config.min_rows:
        return []

    regions: List[TableRegion] = []
    pending_letterhead: List[Row] = []
    run: List[Row] = []

    def close_run():
        nonlocal run, pending_letterhead
        if len(run) >= config.min_rows:
            regions.append(TableRegion(rows=run, letterhead_rows=pending_letterhead))
        else:
            logger.debug(f"Discarding {len(run)}-row run at y={run[0].y:.1f}")
        pending_letterhead = []
        run = []

    for i, row in enumerate(rows):
        score = score_row(rows, i, config)
        logger.debug(f"Row y={row.y:.1f} score={score:.2f} text={row.text[:40]!r}")
        if score >= config.table_row_threshold:
            run.append(row)
        else:
            if run:
                close_run()
            pending_letterhead.append(row)

    if run:
        close_run()

    return regions


def rows_by_region(regions: Sequence[TableRegion]) -> Dict[int, int]:
    """Map ``id(row)`` of every region row to its region index."""
    membership = {}
    for index, region in enumerate(regions):
        for row in region.rows:
            membership[id(row)] = index
    return membership


def iter_pages(
    fragments_by_page: Union[Mapping[int, Sequence[PositionedFragment]], Sequence[Sequence[PositionedFragment]]]
) -> List[Tuple[int, List[PositionedFragment]]]:
    """
    Normalise per-page fragments into ``(page_number, fragments)`` pairs.

    Accepts either a mapping keyed by 1-based page number or a sequence
    where index ``i`` holds page ``i + 1``. Pages come back in ascending order.
    """
    if isinstance(fragments_by_page, Mapping):
        items = [(int(page), list(frags)) for page, frags in fragments_by_page.items()]
    else:
        items = [(i + 1, list(frags)) for i, frags in enumerate(fragments_by_page)]
    return sorted(items, key=lambda item: item[0])
