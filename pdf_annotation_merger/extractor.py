"""
Page annotation extraction.

Walks a page's ``/Annots`` array in order and builds an ``Annotation`` view
for every entry. Entries that are not references to a valid annotation are
logged and skipped; they never abort extraction of the rest of the page.
"""

import logging
from typing import Iterator, List, Optional, Tuple

import pikepdf

from .document import AnnotatedDocument, ObjectId
from .exceptions import MalformedAnnotation
from .model import Annotation

LOGGER = logging.getLogger("pdf_annotation_merger.extractor")


def to_annotation(document: AnnotatedDocument, entry) -> Annotation:
    """
    Resolve one ``/Annots`` entry into an annotation view.

    Raises:
        MalformedAnnotation: the entry is not an indirect reference, or the
            referenced dictionary fails validation.
    """
    if not isinstance(entry, pikepdf.Object) or not entry.is_indirect:
        raise MalformedAnnotation(f"Annotation entry is not an indirect reference: {entry!r}")
    return Annotation.from_object(document.resolve(entry), page_index_of=document.page_index_of)


def iter_page_entries(document: AnnotatedDocument,
                      page_id: ObjectId) -> Iterator[Tuple[pikepdf.Object, Optional[Annotation]]]:
    """
    Yield ``(entry, annotation)`` for every raw ``/Annots`` entry of a page.

    ``annotation`` is None for entries that failed validation; the failure is
    logged. Raises PageNotFound if ``page_id`` is not a page.
    """
    for position, entry in enumerate(document.annotation_entries(page_id)):
        try:
            annotation = to_annotation(document, entry)
        except MalformedAnnotation as exc:
            LOGGER.warning("Skipping annotation #%d on page %s of %s: %s",
                           position, page_id, document.name, exc)
            annotation = None
        yield entry, annotation


def extract_page_annotations(document: AnnotatedDocument, page_id: ObjectId) -> List[Annotation]:
    """
    Return the annotations of a page, in ``/Annots`` order.

    A page without ``/Annots`` has no annotations. Raises PageNotFound if
    ``page_id`` does not identify a page of ``document``.
    """
    annotations = [annotation for _, annotation in iter_page_entries(document, page_id)
                   if annotation is not None]
    LOGGER.debug("Page %s of %s: %d annotation(s)", page_id, document.name, len(annotations))
    return annotations
