"""
Custom exceptions for the PDF annotation merger.

Structural failures (load, page lookup, page count, write) are fatal and
abort the whole operation. ``MalformedAnnotation`` is raised for a single
annotation entry and is recovered by the caller: the entry is logged and
skipped.
"""

from typing import Optional


class AnnotationMergerError(Exception):
    """Base exception for all annotation merger errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown annotation merger error occurred."


class DocumentLoadError(AnnotationMergerError):
    """Raised when an input PDF cannot be read."""

    @property
    def default_message(self) -> str:
        return "Unreadable or corrupted PDF file."


class DocumentWriteError(AnnotationMergerError):
    """Raised when the output PDF cannot be written."""

    @property
    def default_message(self) -> str:
        return "Failed to write the output PDF."


class PageNotFound(AnnotationMergerError):
    """Raised when an object id does not resolve to a page dictionary."""

    def __init__(self, page_id=None, message: str = "") -> None:
        self.page_id = page_id
        if not message and page_id is not None:
            message = f"Object {page_id} is not a page of this document."
        super().__init__(message)

    @property
    def default_message(self) -> str:
        return "Page not found."


class PageCountMismatch(AnnotationMergerError):
    """Raised when documents to merge do not have the same number of pages."""

    def __init__(self, document: str = "", count: Optional[int] = None,
                 expected: Optional[int] = None, message: str = "") -> None:
        self.document = document
        self.count = count
        self.expected = expected
        if not message and document:
            message = (f"Document {document} has {count} page(s), "
                       f"expected {expected}.")
        super().__init__(message)

    @property
    def default_message(self) -> str:
        return "Documents do not have the same number of pages."


class MalformedAnnotation(AnnotationMergerError):
    """Raised when a single annotation entry fails validation."""

    @property
    def default_message(self) -> str:
        return "Malformed annotation."
