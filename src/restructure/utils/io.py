"""
I/O utilities for the layout reconstruction pipeline.

Handles:
- PDF decoding into positioned fragments (PyMuPDF)
- Embedded image extraction
- Fragment dumps and JSON serialization
- Directory management and input type detection
"""

import json
import logging
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import List, Union, Optional, Any, Dict, Tuple, Iterable

import numpy as np

from ..config import JSON_SCHEMA_VERSION
from ..exceptions import DocumentLoadError
from .layout import PositionedFragment, iter_pages

logger = logging.getLogger(__name__)


# ============================================================================
# PDF Decoding
# ============================================================================

class PdfFragmentSource:
    """
    Positioned text fragments and images of a PDF, read with PyMuPDF.

    Page numbers are 1-indexed. Use as a context manager or call
    :meth:`close` when done.
    """

    def __init__(self, pdf_path: Union[str, Path]):
        self.pdf_path = Path(pdf_path)
        if not self.pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {self.pdf_path}")

        try:
            import fitz
        except ImportError:
            raise ImportError(
                "PyMuPDF is required for PDF input. Install with: pip install PyMuPDF"
            )

        try:
            self._doc = fitz.open(str(self.pdf_path))
        except Exception as e:
            raise DocumentLoadError(f"Failed to open PDF {self.pdf_path}: {e}") from e

        logger.info(f"Opened {self.pdf_path.name}: {self._doc.page_count} pages")

    def __enter__(self) -> 'PdfFragmentSource':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self._doc is not None:
            self._doc.close()
            self._doc = None

    def _page(self, page: int):
        if page < 1 or page > self.get_page_count():
            raise ValueError(f"Invalid page number: {page} (total pages: {self.get_page_count()})")
        return self._doc.load_page(page - 1)

    def get_page_count(self) -> int:
        return self._doc.page_count

    def get_page_width(self, page: int) -> float:
        return float(self._page(page).rect.width)

    def get_fragments(self, page: int) -> List[PositionedFragment]:
        """
        Text spans of one page as positioned fragments.

        Args:
            page: Page number (1-indexed)

        Returns:
            Fragments in decoder order (blank spans are skipped)
        """
        text_dict = self._page(page).get_text("dict")
        fragments = []

        for block in text_dict.get("blocks", []):
            # type 0 = text, type 1 = image
            if block.get("type") != 0:
                continue

            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text.strip():
                        continue

                    x0, y0, x1, y1 = span.get("bbox", (0, 0, 0, 0))
                    fragments.append(PositionedFragment(
                        text=text,
                        x=float(x0),
                        y=float(y0),
                        width=float(x1 - x0),
                        height=float(y1 - y0),
                        page=page,
                        font_name=span.get("font"),
                        font_size=float(span.get("size", 12.0)),
                    ))

        logger.debug(f"Extracted {len(fragments)} text spans from page {page}")
        return fragments

    def get_images(self, page: int) -> List[Tuple[bytes, int, int, str]]:
        """Embedded bitmaps of one page as ``(bytes, width, height, format)``."""
        images = []
        for info in self._page(page).get_images(full=True):
            xref = info[0]
            extracted = self._doc.extract_image(xref)
            if not extracted or not extracted.get("image"):
                continue
            images.append((
                extracted["image"],
                int(extracted.get("width", 0)),
                int(extracted.get("height", 0)),
                extracted.get("ext", "png"),
            ))
        logger.debug(f"Extracted {len(images)} images from page {page}")
        return images

    def fragments_by_page(self, pages: Optional[Iterable[int]] = None) -> Dict[int, List[PositionedFragment]]:
        """Fragments for the selected pages (all pages by default)."""
        if pages is None:
            pages = range(1, self.get_page_count() + 1)
        return {page: self.get_fragments(page) for page in pages}

    def page_widths(self, pages: Optional[Iterable[int]] = None) -> Dict[int, float]:
        if pages is None:
            pages = range(1, self.get_page_count() + 1)
        return {page: self.get_page_width(page) for page in pages}


def select_pages(
    total_pages: int,
    max_pages: Optional[int] = None,
    pages: Optional[List[int]] = None
) -> List[int]:
    """
    Determine which pages to process.

    An explicit page list wins over ``max_pages``; out-of-range pages are dropped.
    """
    if pages:
        selected = sorted({p for p in pages if 1 <= p <= total_pages})
        skipped = sorted(set(pages) - set(selected))
        if skipped:
            logger.warning(f"Skipping pages outside 1-{total_pages}: {skipped}")
        return selected

    limit = total_pages if max_pages is None else min(max_pages, total_pages)
    return list(range(1, limit + 1))


# ============================================================================
# JSON Serialization
# ============================================================================

class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy scalars, enums and dataclasses."""

    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        if hasattr(obj, '__dataclass_fields__'):
            return asdict(obj)
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


def save_json(
    data: Any,
    output_path: Union[str, Path],
    indent: int = 2,
    ensure_ascii: bool = False
) -> Path:
    """
    Save data to a JSON file.

    Args:
        data: Data to serialize (dict, list, dataclass, etc.)
        output_path: Path to save the JSON file
        indent: Indentation level for pretty printing
        ensure_ascii: If True, escape non-ASCII characters

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii, cls=EnhancedJSONEncoder)

    logger.debug(f"Saved JSON: {output_path}")
    return output_path


def load_json(json_path: Union[str, Path]) -> Any:
    """Load data from a JSON file."""
    json_path = Path(json_path)
    if not json_path.exists():
        raise FileNotFoundError(f"JSON file not found: {json_path}")

    with open(json_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_fragments_json(
    fragments_by_page,
    output_path: Union[str, Path],
    page_widths: Optional[Dict[int, float]] = None
) -> Path:
    """
    Write per-page fragments as a fragment dump.

    The dump is ``{"schema_version", "pages": [{"page", "width", "fragments"}]}``.
    """
    page_widths = page_widths or {}
    data = {
        "schema_version": JSON_SCHEMA_VERSION,
        "pages": [
            {
                "page": page,
                "width": page_widths.get(page),
                "fragments": [f.to_dict() for f in fragments],
            }
            for page, fragments in iter_pages(fragments_by_page)
        ],
    }
    return save_json(data, output_path)


def load_fragments_json(
    json_path: Union[str, Path]
) -> Tuple[Dict[int, List[PositionedFragment]], Dict[int, float]]:
    """
    Read a fragment dump.

    Accepts the format written by :func:`save_fragments_json` or a flat list
    of fragment objects, grouped by their ``page`` field.

    Returns:
        (fragments_by_page, page_widths)
    """
    data = load_json(json_path)
    fragments_by_page: Dict[int, List[PositionedFragment]] = {}
    page_widths: Dict[int, float] = {}

    if isinstance(data, list):
        for item in data:
            fragment = PositionedFragment.from_dict(item)
            fragments_by_page.setdefault(fragment.page, []).append(fragment)
    elif isinstance(data, dict) and isinstance(data.get("pages"), list):
        for entry in data["pages"]:
            page = int(entry.get("page", len(fragments_by_page) + 1))
            fragments_by_page[page] = [
                PositionedFragment.from_dict({**item, "page": page})
                for item in entry.get("fragments", [])
            ]
            if entry.get("width"):
                page_widths[page] = float(entry["width"])
    else:
        raise ValueError(f"Unrecognised fragment dump: {json_path}")

    logger.info(f"Loaded {sum(len(f) for f in fragments_by_page.values())} fragments "
                f"from {len(fragments_by_page)} pages")
    return fragments_by_page, page_widths


# ============================================================================
# Directory Management
# ============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory

    Returns:
        Path object for the directory
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


# ============================================================================
# File Type Detection
# ============================================================================

def detect_input_type(input_path: Union[str, Path]) -> str:
    """
    Detect the type of input file.

    Args:
        input_path: Path to file

    Returns:
        One of: 'pdf', 'json', 'unknown'
    """
    input_path = Path(input_path)
    if not input_path.is_file():
        return 'unknown'

    suffix = input_path.suffix.lower()
    if suffix == '.pdf':
        return 'pdf'
    elif suffix == '.json':
        return 'json'

    return 'unknown'
