"""Exception classes for the layout reconstruction pipeline.

Exception Hierarchy:
    RestructureError (base)
    ├── NoExtractableContentError
    └── DocumentLoadError

Heuristic misses (no table on a page, no header row, an unclassifiable line)
are never errors; they fall back to empty or default results. The only
condition surfaced from the engine is a document that yields nothing at all.
"""


class RestructureError(Exception):
    """Base exception for all pipeline errors."""


class NoExtractableContentError(RestructureError):
    """Raised when neither tables nor outline/text content could be extracted."""

    def __init__(self, message: str = "No extractable content found in this document"):
        super().__init__(message)


class DocumentLoadError(RestructureError):
    """Raised when a source document cannot be opened or decoded."""
