"""
PDF annotation merger.

Counts, merges and strips the annotations of PDF documents. Documents are
handled through pikepdf; annotations from several copies of one document
are deduplicated by subtype, position and content rather than object id.

Quick Start:
    >>> from pdf_annotation_merger import AnnotatedDocument, merge, strip
    >>> docs = [AnnotatedDocument.load(p) for p in ("mine.pdf", "theirs.pdf")]
    >>> merge(docs).save("merged.pdf")
"""

__version__ = "0.1.0"

from pdf_annotation_merger.document import AnnotatedDocument, PageRef
from pdf_annotation_merger.model import Annotation
from pdf_annotation_merger.extractor import extract_page_annotations
from pdf_annotation_merger.matcher import AnnotationMatcher, matches
from pdf_annotation_merger.aligner import align_pages, verify_aligned_content
from pdf_annotation_merger.merger import (
    MergeResult,
    merge,
    merge_documents,
    merge_pdf_annotations,
)
from pdf_annotation_merger.stripper import StripResult, strip, strip_annotations, strip_pdf_annotations
from pdf_annotation_merger.stats import StatsReport, collect_stats
from pdf_annotation_merger.exceptions import (
    AnnotationMergerError,
    DocumentLoadError,
    DocumentWriteError,
    MalformedAnnotation,
    PageCountMismatch,
    PageNotFound,
)

__all__ = [
    "AnnotatedDocument",
    "PageRef",
    "Annotation",
    "extract_page_annotations",
    "AnnotationMatcher",
    "matches",
    "align_pages",
    "verify_aligned_content",
    "MergeResult",
    "merge",
    "merge_documents",
    "merge_pdf_annotations",
    "StripResult",
    "strip",
    "strip_annotations",
    "strip_pdf_annotations",
    "StatsReport",
    "collect_stats",
    "AnnotationMergerError",
    "DocumentLoadError",
    "DocumentWriteError",
    "MalformedAnnotation",
    "PageCountMismatch",
    "PageNotFound",
    "__version__",
]
