"""
Layout Reconstruction Pipeline
==============================

Rebuilds tables and a document outline from positioned text fragments.
Converts text-based PDFs (or fragment dumps) into JSON, Markdown, DOCX, and XLSX.

Main components:
- Row grouping and column boundary detection
- Table region detection with letterhead capture
- Header and column type inference
- Document element classification
- Multi-format export
"""

from .exceptions import RestructureError, NoExtractableContentError, DocumentLoadError

__version__ = "1.0.0"
__author__ = "Layout Reconstruction Team"
