"""
Page alignment across documents derived from the same base content.

Pages are aligned by index. All documents must have the same page count.
Aligned pages can optionally be cross-checked with a fingerprint of their
extracted text (PyMuPDF); a difference is only reported as a warning since
re-exported copies of a document legitimately differ in their content
streams while still sharing the same logical pages.
"""

import hashlib
import io
import logging
import sys
from typing import List, Sequence, Tuple

import fitz  # PyMuPDF

from .document import AnnotatedDocument, PageRef
from .exceptions import PageCountMismatch
from .matcher import normalize_text

LOGGER = logging.getLogger("pdf_annotation_merger.aligner")


def align_pages(documents: Sequence[AnnotatedDocument]) -> List[Tuple[PageRef, ...]]:
    """
    Return one tuple of aligned pages per page index.

    Raises:
        PageCountMismatch: a document does not have the same number of pages
            as the first one.
    """
    if not documents:
        return []

    expected = documents[0].page_count
    for document in documents[1:]:
        if document.page_count != expected:
            raise PageCountMismatch(document.name, document.page_count, expected)

    LOGGER.debug("Aligned %d page(s) across %d document(s)", expected, len(documents))
    return list(zip(*(document.pages for document in documents)))


def open_pdf_safe(data: bytes) -> fitz.Document:
    """Open PDF bytes with PyMuPDF, suppressing recoverable MuPDF warnings."""
    old_stderr = sys.stderr
    sys.stderr = io.StringIO()
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    finally:
        sys.stderr = old_stderr
    return doc


def page_fingerprints(document: AnnotatedDocument) -> List[str]:
    """Return an md5 digest of each page's normalized text, in page order."""
    doc = open_pdf_safe(document.to_bytes())
    try:
        return [hashlib.md5(normalize_text(page.get_text("text")).encode("utf-8")).hexdigest()
                for page in doc]
    finally:
        doc.close()


def verify_aligned_content(documents: Sequence[AnnotatedDocument]) -> List[int]:
    """
    Compare the text of aligned pages against the first document.

    Returns the indices of pages whose text differs in at least one
    document. Differences are logged as warnings and never raise.
    """
    if len(documents) < 2:
        return []

    try:
        fingerprints = [page_fingerprints(document) for document in documents]
    except RuntimeError as exc:
        LOGGER.warning("Page content verification skipped: %s", exc)
        return []

    base = fingerprints[0]
    mismatched = set()
    for document, pages in zip(documents[1:], fingerprints[1:]):
        for index, (expected, actual) in enumerate(zip(base, pages)):
            if expected != actual:
                LOGGER.warning("Page %d of %s does not match page %d of %s",
                               index + 1, document.name, index + 1, documents[0].name)
                mismatched.add(index)
    return sorted(mismatched)
