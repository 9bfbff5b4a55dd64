"""
Document element classification module.

Provides:
- Outline element model (kinds, alignment, table and image payloads)
- Document-wide font size anchor
- Per-row classification cascade
- Sequential cleanup pass (whitespace collapse, paragraph merge)
"""

import base64
import logging
import math
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Dict, Any, Sequence, Tuple

from ..config import ClassifierConfig
from .layout import PositionedFragment, Row

logger = logging.getLogger(__name__)


# ============================================================================
# Element Types
# ============================================================================

class ElementKind(Enum):
    """Outline element kinds."""
    TITLE = "title"
    HEADING = "heading"
    SUBHEADING = "subheading"
    PARAGRAPH = "paragraph"
    BULLET = "bullet"
    NUMBERED = "numbered"
    WHITESPACE = "whitespace"
    TABLE = "table"
    IMAGE = "image"


class Alignment(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


# Kinds carrying a payload; never merged or dropped for empty content
PAYLOAD_KINDS = (ElementKind.TABLE, ElementKind.IMAGE)


@dataclass(frozen=True)
class TablePayload:
    """Grid embedded in a table element."""
    rows: List[List[str]]
    has_header: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"rows": self.rows, "has_header": self.has_header}


@dataclass(frozen=True)
class ImagePayload:
    """Bitmap embedded in an image element."""
    data: bytes = field(repr=False)
    width: int
    height: int
    format: str = "png"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": base64.b64encode(self.data).decode("ascii"),
            "width": self.width,
            "height": self.height,
            "format": self.format,
        }


@dataclass(frozen=True)
class DocumentElement:
    """One unit of document outline."""
    kind: ElementKind
    content: str
    page: int
    level: Optional[int] = None
    indent: int = 0
    bold: bool = False
    italic: bool = False
    underline: bool = False
    alignment: Optional[Alignment] = None
    font_size: Optional[float] = None
    table: Optional[TablePayload] = None
    image: Optional[ImagePayload] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "kind": self.kind.value,
            "content": self.content,
            "page": self.page,
            "level": self.level,
            "indent": self.indent,
            "bold": self.bold,
            "italic": self.italic,
            "underline": self.underline,
            "alignment": self.alignment.value if self.alignment else None,
            "font_size": self.font_size,
        }
        if self.table is not None:
            result["table"] = self.table.to_dict()
        if self.image is not None:
            result["image"] = self.image.to_dict()
        return result


# ============================================================================
# Text Patterns
# ============================================================================

BULLET_PATTERN = re.compile(r'^[\u2022\u2023\u25E6\u2043\u2219•●○◦‣⁃\-*]\s*')
# Lettered and roman prefixes need a following space so "e.g." and "i.e." stay prose
NUMBERED_PATTERN = re.compile(
    r'^(\d+[.)](?!\d)\s*|\([a-z]\)(?=\s|$)\s*|[a-z][.)](?=\s|$)\s*|[ivxIVX]+[.)](?=\s|$)\s*)'
)
_NUMBER_PREFIX = re.compile(r'^(\d+)[.)](?!\d)\s*')
_CONTROL_CHARS = re.compile(r'[\x00-\x1F\x7F]')
_TERMINAL_PUNCTUATION = ('.', ':', '!', '?')


def clean_text_content(text: str, kind: Optional[ElementKind] = None) -> str:
    """
    Normalise a row's text for storage.

    Bullet glyphs are stripped from bullets and numeric prefixes of numbered
    items become ``"<n>. "``. Whitespace runs collapse to one space and
    control characters are removed.
    """
    if kind is ElementKind.BULLET:
        text = BULLET_PATTERN.sub('', text, count=1)
    elif kind is ElementKind.NUMBERED:
        text = _NUMBER_PREFIX.sub(r'\1. ', text, count=1)
    text = re.sub(r'\s+', ' ', text)
    text = _CONTROL_CHARS.sub('', text)
    return text.strip()


# ============================================================================
# Font Anchor and Style
# ============================================================================

def compute_font_anchor(
    pages: Sequence[Tuple[int, Sequence[PositionedFragment]]],
    default_font_size: float = 12.0
) -> float:
    """
    Largest font size on the first page that carries text.

    Computed once per document and passed to every classification call.
    """
    for page_num, fragments in pages:
        sizes = [
            f.size_or(default_font_size)
            for f in fragments
            if f.text.strip() and f.is_finite
        ]
        if sizes:
            logger.debug(f"Font anchor {max(sizes):.1f} from page {page_num}")
            return max(sizes)
    return 0.0


def infer_font_style(
    fragments: Sequence[PositionedFragment],
    config: Optional[ClassifierConfig] = None
) -> Tuple[bool, bool]:
    """(bold, italic) when every fragment's font name carries the marker."""
    config = config or ClassifierConfig()
    names = [(f.font_name or "").lower() for f in fragments if f.text.strip()]
    if not names:
        return False, False
    bold = all(any(m in name for m in config.bold_markers) for name in names)
    italic = all(any(m in name for m in config.italic_markers) for name in names)
    return bold, italic


# ============================================================================
# Classification
# ============================================================================

def classify_row(
    row: Row,
    font_anchor: float,
    page: int,
    page_width: Optional[float] = None,
    config: Optional[ClassifierConfig] = None
) -> DocumentElement:
    """
    Classify one non-tabular row into an outline element.

    Args:
        row: Frozen row
        font_anchor: Document-wide maximum font size
        page: Page number
        page_width: Page width in layout units
        config: Classifier configuration

    Returns:
        DocumentElement with cleaned content
    """
    config = config or ClassifierConfig()
    if page_width is None or not math.isfinite(page_width) or page_width <= 0:
        page_width = config.default_page_width

    content = row.text
    font_size = row.avg_font_size()
    indent = max(0, math.floor((row.min_x - config.left_margin) / config.indent_step))
    center = (row.min_x + row.max_x) / 2
    centered = abs(center - page_width / 2) < config.center_tolerance
    bold, italic = infer_font_style(row.fragments, config)

    level = None
    if font_size >= font_anchor * config.title_ratio and font_size >= config.title_min_font_size:
        kind = ElementKind.TITLE
    elif font_size >= config.heading_min_font_size and font_size >= font_anchor * config.heading_ratio:
        kind = ElementKind.HEADING
        level = 1
    elif (
        (font_size >= config.subheading_min_font_size and font_size >= font_anchor * config.subheading_ratio)
        or (bold and font_size >= config.bold_subheading_min_font_size)
    ):
        kind = ElementKind.SUBHEADING
        level = 2
    elif BULLET_PATTERN.match(content):
        kind = ElementKind.BULLET
        level = indent + 1
    elif NUMBERED_PATTERN.match(content):
        kind = ElementKind.NUMBERED
        level = indent + 1
    elif not content:
        kind = ElementKind.WHITESPACE
    else:
        kind = ElementKind.PARAGRAPH

    if centered and kind in (ElementKind.TITLE, ElementKind.HEADING):
        alignment = Alignment.CENTER
    elif row.min_x > page_width * config.right_align_ratio:
        alignment = Alignment.RIGHT
    else:
        alignment = Alignment.LEFT

    return DocumentElement(
        kind=kind,
        content=clean_text_content(content, kind),
        page=page,
        level=level,
        indent=indent,
        bold=bold,
        italic=italic,
        alignment=alignment,
        font_size=round(font_size, 2),
    )


def clean_document_elements(elements: Sequence[DocumentElement]) -> List[DocumentElement]:
    """
    Single ordered pass over classified elements.

    - Whitespace markers collapse to at most one between non-empty elements
    - Other elements with empty content are dropped
    - A paragraph continues the previous one when both are on the same page
      with the same indent and the earlier one lacks terminal punctuation
    - Table and image elements pass through untouched

    Input elements are not modified.
    """
    cleaned: List[DocumentElement] = []

    for element in elements:
        previous = cleaned[-1] if cleaned else None

        if element.kind in PAYLOAD_KINDS:
            cleaned.append(element)
            continue

        if element.kind is ElementKind.WHITESPACE:
            if previous is not None and previous.kind is not ElementKind.WHITESPACE:
                cleaned.append(element)
            continue

        if not element.content.strip():
            continue

        if (
            previous is not None
            and previous.kind is ElementKind.PARAGRAPH
            and element.kind is ElementKind.PARAGRAPH
            and previous.page == element.page
            and previous.indent == element.indent
            and not previous.content.endswith(_TERMINAL_PUNCTUATION)
        ):
            cleaned[-1] = replace(previous, content=f"{previous.content} {element.content}")
            continue

        cleaned.append(element)

    while cleaned and cleaned[-1].kind is ElementKind.WHITESPACE:
        cleaned.pop()

    return cleaned
