#!/usr/bin/env python
"""
Command-line interface for the Layout Reconstruction Pipeline.

Usage:
    restructure --input <pdf_or_fragments.json> --output <output_dir> [options]

Examples:
    # Convert a PDF to every format
    restructure --input statement.pdf --output ./output --format all

    # Tables only, first three pages
    restructure --input statement.pdf --output ./output --mode tables --pages 1-3

    # Re-run on a saved fragment dump
    restructure --input fragments.json --output ./output --format xlsx
"""

import sys
import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("restructure")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Layout Reconstruction Pipeline - Rebuild tables and document outlines from PDFs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Convert a PDF and export all formats:
    restructure --input statement.pdf --output ./output --format all

  Extract plain text only:
    restructure --input report.pdf --output ./output --mode text

  Process only specific pages:
    restructure --input report.pdf --output ./output --pages 1-5

  Save the decoded fragments for later runs:
    restructure --input report.pdf --output ./output --save-fragments
        """
    )

    # Required arguments
    parser.add_argument(
        "--input", "-i",
        required=True,
        help="Input PDF file or fragment dump (.json)"
    )

    parser.add_argument(
        "--output", "-o",
        required=True,
        help="Output directory for generated files"
    )

    # Optional arguments
    parser.add_argument(
        "--format", "-f",
        nargs="+",
        default=["json", "markdown"],
        choices=["json", "markdown", "docx", "xlsx", "all"],
        help="Output format(s) (default: json markdown)"
    )

    parser.add_argument(
        "--mode", "-m",
        choices=["auto", "tables", "text"],
        default=None,
        help="Conversion mode (default: auto - tables, falling back to text)"
    )

    parser.add_argument(
        "--pages",
        type=str,
        default=None,
        help="Page range to process, e.g., '1-5' or '1,3,5' (default: all)"
    )

    parser.add_argument(
        "--no-structure",
        action="store_true",
        help="Skip document outline extraction"
    )

    parser.add_argument(
        "--no-images",
        action="store_true",
        help="Do not embed page images in the document outline"
    )

    parser.add_argument(
        "--row-tolerance",
        type=float,
        default=None,
        help="Max y-distance for fragments sharing a row (default: 5.0)"
    )

    parser.add_argument(
        "--save-fragments",
        action="store_true",
        help="Write the decoded fragments to <output>/<name>.fragments.json"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (re-raise errors with tracebacks)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    return parser


def parse_page_range(page_str: str, max_pages: Optional[int] = None) -> List[int]:
    """Parse page range string to list of page numbers."""
    pages = []

    for part in page_str.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = part.split("-")
            start = int(start)
            end = int(end) if max_pages is None else min(int(end), max_pages)
            pages.extend(range(start, end + 1))
        else:
            page = int(part)
            if max_pages is None or 1 <= page <= max_pages:
                pages.append(page)

    return sorted(p for p in set(pages) if p >= 1)


def check_dependencies(input_type: str, formats: List[str]) -> bool:
    """Check if the dependencies needed for this run are available."""
    missing = []

    try:
        import numpy
    except ImportError:
        missing.append("numpy")

    if input_type == "pdf":
        try:
            import fitz
        except ImportError:
            missing.append("PyMuPDF (for PDF input)")

    if "docx" in formats or "all" in formats:
        try:
            import docx
        except ImportError:
            missing.append("python-docx (for DOCX export)")

    if "xlsx" in formats or "all" in formats:
        try:
            import openpyxl
        except ImportError:
            missing.append("openpyxl (for XLSX export)")

    if missing:
        logger.error("Missing required dependencies:")
        for dep in missing:
            logger.error(f"  - {dep}")
        logger.error("\nInstall with: pip install -e .")
        return False

    return True


def run_pipeline(args) -> int:
    """Run the layout reconstruction pipeline."""
    from .config import get_config
    from .exceptions import NoExtractableContentError, RestructureError
    from .utils.io import (
        PdfFragmentSource, detect_input_type, ensure_dir,
        load_fragments_json, save_fragments_json, select_pages,
    )
    from .utils.assembler import DocumentAssembler
    from .utils.export import DocumentExporter

    start_time = time.time()

    # Setup output directory
    output_dir = Path(args.output)
    ensure_dir(output_dir)

    config = get_config()
    if args.mode:
        config.mode = args.mode
    if args.row_tolerance is not None:
        config.rows.row_tolerance = args.row_tolerance
    config.debug_mode = config.debug_mode or args.debug

    input_path = Path(args.input)
    input_type = detect_input_type(input_path)
    logger.info(f"Input type detected: {input_type}")

    if input_type == "unknown":
        logger.error(f"Unsupported input: {input_path}")
        return 1

    if not check_dependencies(input_type, args.format):
        return 1

    requested_pages = None
    if args.pages:
        try:
            requested_pages = parse_page_range(args.pages)
        except ValueError:
            logger.error(f"Invalid page range: {args.pages}")
            return 1
        if not requested_pages:
            logger.error(f"Page range selects no pages: {args.pages}")
            return 1

    assembler = DocumentAssembler(config)
    include_structure = not args.no_structure

    logger.info("Processing document...")
    try:
        if input_type == "pdf":
            with PdfFragmentSource(input_path) as source:
                pages = select_pages(source.get_page_count(), config.max_pages, requested_pages)
                logger.info(f"Processing pages: {pages}")
                fragments = source.fragments_by_page(pages)
                widths = source.page_widths(pages)
                if args.save_fragments:
                    dump = save_fragments_json(
                        fragments, output_dir / f"{input_path.stem}.fragments.json", widths
                    )
                    logger.info(f"Saved fragments: {dump}")
                result = assembler.convert(
                    fragments,
                    include_structure=include_structure,
                    image_provider=None if args.no_images else source.get_images,
                    page_widths=widths,
                    source_file=str(input_path),
                )
        else:
            fragments, widths = load_fragments_json(input_path)
            if requested_pages:
                fragments = {p: f for p, f in fragments.items() if p in requested_pages}
            result = assembler.convert(
                fragments,
                include_structure=include_structure,
                page_widths=widths,
                source_file=str(input_path),
            )
    except NoExtractableContentError as e:
        logger.error(f"{e}. The document may be scanned or image-only.")
        return 1
    except (RestructureError, FileNotFoundError, ValueError) as e:
        logger.error(f"Processing failed: {e}")
        if config.debug_mode:
            raise
        return 1

    # Export to requested formats
    exporter = DocumentExporter(output_dir, input_path.stem, config.export)
    export_results = exporter.export(result, args.format)
    for fmt, path in export_results.items():
        logger.info(f"Exported {fmt}: {path}")

    # Print summary
    elapsed = time.time() - start_time
    structure = result.structure

    if not args.quiet:
        print("\n" + "="*60)
        print("LAYOUT RECONSTRUCTION COMPLETE")
        print("="*60)
        print(f"Source: {input_path}")
        print(f"Output: {output_dir}")
        print(f"Mode: {result.mode}")
        print(f"Processing time: {elapsed:.2f}s")
        print()
        print(f"  Tables: {len(result.tables)}")
        for table in result.tables:
            header = "header" if table.has_header else "no header"
            print(f"    {table.source}: {table.num_rows} x {table.num_cols} ({header})")
        print(f"  Text pages: {len(result.text_content)}")
        if structure is not None:
            print(f"  Outline elements: {len(structure.elements)} over {structure.pages} page(s)")
            if structure.title:
                print(f"  Title: {structure.title}")
        print("="*60)

    return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args(argv)

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    # Run pipeline
    try:
        exit_code = run_pipeline(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
