"""
Document assembler module for layout reconstruction.

Provides:
- Document structure and conversion result models
- Pipeline orchestration (tables, outline, plain text)
- Conversion modes and the no-content failure
- Markdown generation
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any, Callable, Mapping, Sequence, Tuple

from ..config import PipelineConfig, CONVERSION_MODES, JSON_SCHEMA_VERSION
from ..exceptions import NoExtractableContentError
from .layout import PositionedFragment, Row, TableRegion, group_into_rows, iter_pages, rows_by_region
from .tables import ExtractedTable, TableExtractor
from .classify import (
    DocumentElement,
    ElementKind,
    ImagePayload,
    TablePayload,
    classify_row,
    clean_document_elements,
    compute_font_anchor,
)

logger = logging.getLogger(__name__)

# image_provider(page) -> [(bytes, width, height, format), ...]
ImageProvider = Callable[[int], Sequence[Tuple[bytes, int, int, str]]]


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class DocumentStructure:
    """Ordered outline of a document; ``pages`` counts the pages processed."""
    title: Optional[str]
    elements: List[DocumentElement]
    pages: int

    def elements_of(self, kind: ElementKind) -> List[DocumentElement]:
        return [e for e in self.elements if e.kind is kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "pages": self.pages,
            "elements": [e.to_dict() for e in self.elements],
        }


@dataclass
class PageText:
    """Whitespace-normalised text of one page."""
    page: int
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"page": self.page, "content": self.content}


@dataclass
class ConversionResult:
    """Complete result of one conversion request."""
    tables: List[ExtractedTable] = field(default_factory=list)
    text_content: List[PageText] = field(default_factory=list)
    mode: str = "tables"  # tables, text
    structure: Optional[DocumentStructure] = None
    source_file: str = ""

    # Generated content
    markdown: str = ""

    task_id: str = ""
    created_at: str = ""
    schema_version: str = JSON_SCHEMA_VERSION

    def __post_init__(self):
        if not self.task_id:
            self.task_id = str(uuid.uuid4())
        if not self.created_at:
            self.created_at = datetime.now().isoformat()

    @property
    def is_empty(self) -> bool:
        has_text = any(p.content for p in self.text_content)
        has_outline = self.structure is not None and bool(self.structure.elements)
        return not (self.tables or has_text or has_outline)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "schema_version": self.schema_version,
            "source_file": self.source_file,
            "created_at": self.created_at,
            "mode": self.mode,
            "tables": [t.to_dict() for t in self.tables],
            "text_content": [p.to_dict() for p in self.text_content],
            "structure": self.structure.to_dict() if self.structure else None,
            "markdown": self.markdown,
        }


# ============================================================================
# Document Assembler
# ============================================================================

class DocumentAssembler:
    """
    Orchestrates the layout reconstruction pipeline.

    Coordinates:
    - Table extraction
    - Outline classification and cleanup
    - Plain text extraction
    - Result assembly
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()

        # Initialize components lazily
        self._table_extractor = None

    @property
    def table_extractor(self) -> TableExtractor:
        if self._table_extractor is None:
            self._table_extractor = TableExtractor(
                table_config=self.config.table,
                header_config=self.config.header,
                row_config=self.config.rows
            )
        return self._table_extractor

    def _group(self, fragments: Sequence[PositionedFragment]) -> List[Row]:
        return group_into_rows(fragments, self.config.rows.row_tolerance)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def extract_tables(self, fragments_by_page) -> List[ExtractedTable]:
        """Extract tables in page-then-position order."""
        return self.table_extractor.extract(fragments_by_page)

    def extract_document_structure(
        self,
        fragments_by_page,
        image_provider: Optional[ImageProvider] = None,
        page_widths: Optional[Mapping[int, float]] = None
    ) -> DocumentStructure:
        """
        Build the document outline.

        Args:
            fragments_by_page: Mapping of page number to fragments, or a
                sequence of per-page fragment lists (page 1 first)
            image_provider: Optional callable returning a page's bitmaps as
                ``(bytes, width, height, format)`` tuples
            page_widths: Optional page widths; missing pages use the default

        Returns:
            DocumentStructure in reading order
        """
        pages = iter_pages(fragments_by_page)
        if not pages:
            return DocumentStructure(title=None, elements=[], pages=0)

        font_anchor = compute_font_anchor(pages, self.config.table.default_font_size)
        page_widths = page_widths or {}
        first_page = pages[0][0]

        elements: List[DocumentElement] = []
        title = None
        tables_seen = 0
        images_seen = 0

        for page_num, fragments in pages:
            page_elements, page_title, tables_seen = self._classify_page(
                page_num,
                fragments,
                font_anchor,
                page_widths.get(page_num),
                tables_seen,
                search_title=(page_num == first_page),
            )
            if title is None:
                title = page_title
            elements.extend(page_elements)

            if image_provider is not None:
                images = self._collect_images(image_provider, page_num, images_seen)
                images_seen += len(images)
                elements.extend(images)

            logger.info(f"Page {page_num}: {len(page_elements)} outline elements")

        cleaned = clean_document_elements(elements)
        logger.info(f"Document structure: {len(cleaned)} elements from {len(elements)} rows")
        return DocumentStructure(title=title, elements=cleaned, pages=len(pages))

    def extract_text_by_page(self, fragments_by_page) -> List[PageText]:
        """Per-page plain text in reading order; empty pages are omitted."""
        result = []
        for page_num, fragments in iter_pages(fragments_by_page):
            text = " ".join(row.text for row in self._group(fragments))
            text = re.sub(r'\s+', ' ', text).strip()
            if text:
                result.append(PageText(page=page_num, content=text))
        return result

    def convert(
        self,
        fragments_by_page,
        mode: Optional[str] = None,
        include_structure: bool = True,
        image_provider: Optional[ImageProvider] = None,
        page_widths: Optional[Mapping[int, float]] = None,
        source_file: str = ""
    ) -> ConversionResult:
        """
        Run a full conversion.

        Args:
            fragments_by_page: Per-page fragments
            mode: "auto", "tables" or "text" (defaults to the configured mode)
            include_structure: Also build the document outline
            image_provider: Optional bitmap provider for the outline
            page_widths: Optional page widths for the outline
            source_file: Source path recorded on the result

        Returns:
            ConversionResult

        Raises:
            NoExtractableContentError: Nothing could be extracted at all
        """
        mode = (mode or self.config.mode).lower()
        if mode not in CONVERSION_MODES:
            raise ValueError(f"Unknown conversion mode: {mode}")

        result = ConversionResult(source_file=source_file)

        if mode in ("auto", "tables"):
            result.tables = self.extract_tables(fragments_by_page)
            result.mode = "tables"

        if mode == "text" or (mode == "auto" and not result.tables):
            result.text_content = self.extract_text_by_page(fragments_by_page)
            result.mode = "text"

        if include_structure:
            result.structure = self.extract_document_structure(
                fragments_by_page, image_provider, page_widths
            )

        if result.is_empty:
            raise NoExtractableContentError()

        result.markdown = generate_markdown(result)
        logger.info(
            f"Converted {source_file or 'document'} in {result.mode} mode: "
            f"{len(result.tables)} tables, {len(result.text_content)} text pages"
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _classify_page(
        self,
        page_num: int,
        fragments: Sequence[PositionedFragment],
        font_anchor: float,
        page_width: Optional[float],
        tables_seen: int,
        search_title: bool
    ) -> Tuple[List[DocumentElement], Optional[str], int]:
        """Classify one page's rows, replacing table regions with table elements."""
        rows = self._group(fragments)
        config = self.config.classifier

        built: List[Tuple[TableRegion, ExtractedTable]] = []
        if config.include_tables:
            built = [
                (region, table)
                for region, table in self.table_extractor.extract_page(rows, page_num, tables_seen + 1)
                if table is not None
            ]
        tables_seen += len(built)

        # Region rows collapse into one table element at the region's first row
        membership = rows_by_region([region for region, _ in built])
        table_elements = [
            DocumentElement(
                kind=ElementKind.TABLE,
                content=table.source,
                page=page_num,
                table=TablePayload(rows=table.rows, has_header=table.has_header),
            )
            for _, table in built
        ]

        elements = []
        title = None
        for index, row in enumerate(rows):
            if id(row) in membership:
                region_index = membership[id(row)]
                if row is built[region_index][0].rows[0]:
                    elements.append(table_elements[region_index])
                continue

            element = classify_row(row, font_anchor, page_num, page_width, config)
            if (
                search_title
                and title is None
                and index < config.title_search_rows
                and element.kind is ElementKind.TITLE
            ):
                title = element.content
            elements.append(element)

        return elements, title, tables_seen

    def _collect_images(
        self,
        image_provider: ImageProvider,
        page_num: int,
        images_seen: int
    ) -> List[DocumentElement]:
        try:
            images = list(image_provider(page_num))
        except Exception as e:
            logger.warning(f"Image extraction failed on page {page_num}: {e}")
            return []

        elements = []
        for item in images:
            try:
                data, width, height, fmt = item
                payload = ImagePayload(data=bytes(data), width=int(width), height=int(height), format=str(fmt))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed image on page {page_num}: {e}")
                continue
            images_seen += 1
            elements.append(DocumentElement(
                kind=ElementKind.IMAGE,
                content=f"Image {images_seen}",
                page=page_num,
                image=payload,
            ))
        return elements


# ============================================================================
# Markdown Generation
# ============================================================================

def _element_to_markdown(element: DocumentElement) -> str:
    kind = element.kind
    if kind is ElementKind.TITLE:
        return f"# {element.content}"
    if kind is ElementKind.HEADING:
        return f"## {element.content}"
    if kind is ElementKind.SUBHEADING:
        return f"### {element.content}"
    if kind is ElementKind.BULLET:
        return "  " * ((element.level or 1) - 1) + f"- {element.content}"
    if kind is ElementKind.NUMBERED:
        return "  " * ((element.level or 1) - 1) + element.content
    if kind is ElementKind.TABLE and element.table is not None:
        return ExtractedTable(
            rows=element.table.rows,
            source=element.content,
            page_number=element.page,
            header_row=element.table.rows[0] if element.table.has_header else None,
        ).table_markdown
    if kind is ElementKind.IMAGE:
        return f"*[{element.content}]*"
    if kind is ElementKind.WHITESPACE:
        return ""

    text = element.content
    if element.bold:
        text = f"**{text}**"
    if element.italic:
        text = f"*{text}*"
    return text


def generate_markdown(result: ConversionResult) -> str:
    """Generate Markdown for a conversion result."""
    lines = []

    if result.structure is not None and result.structure.elements:
        current_page = None
        for element in result.structure.elements:
            if current_page is not None and element.page != current_page:
                lines.append(f"---\n*Page {element.page}*\n")
            current_page = element.page
            block = _element_to_markdown(element)
            if block:
                lines.append(block)
                lines.append("")
        return "\n".join(lines).rstrip() + "\n"

    for table in result.tables:
        lines.append(f"## {table.source}")
        lines.append("")
        for line in table.letterhead or []:
            lines.append(f"> {line}")
        if table.letterhead:
            lines.append("")
        lines.append(table.table_markdown)
        lines.append("")

    for page in result.text_content:
        lines.append(f"## Page {page.page}")
        lines.append("")
        lines.append(page.content)
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


# ============================================================================
# Module-level Entry Points
# ============================================================================

def extract_tables(fragments_by_page, config: Optional[PipelineConfig] = None) -> List[ExtractedTable]:
    """Extract every table from per-page fragments."""
    return DocumentAssembler(config).extract_tables(fragments_by_page)


def extract_document_structure(
    fragments_by_page,
    image_provider: Optional[ImageProvider] = None,
    page_widths: Optional[Mapping[int, float]] = None,
    config: Optional[PipelineConfig] = None
) -> DocumentStructure:
    """Build the document outline from per-page fragments."""
    return DocumentAssembler(config).extract_document_structure(
        fragments_by_page, image_provider, page_widths
    )
