"""
Strip annotations by subtype.

Every page's ``/Annots`` array is rebuilt keeping only the entries whose
subtype is in the kept set, in their original order. Removed annotations
are no longer referenced from any page; qpdf does not write unreferenced
objects when the document is saved.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from pikepdf import Dictionary, Name

from .config import DEFAULT_KEPT_SUBTYPES
from .document import AnnotatedDocument, check_output_path
from .model import name_str

LOGGER = logging.getLogger("pdf_annotation_merger.stripper")


@dataclass
class StripResult:
    document: AnnotatedDocument
    kept: int = 0
    removed: int = 0


def entry_subtype(entry) -> Optional[str]:
    """Subtype of an ``/Annots`` entry, or None if it cannot be resolved."""
    if not isinstance(entry, Dictionary):
        return None
    return name_str(entry.get(Name.Subtype))


def strip_annotations(document: AnnotatedDocument,
                      excluded_subtypes: Iterable[str] = DEFAULT_KEPT_SUBTYPES) -> StripResult:
    """
    Remove every annotation whose subtype is not in ``excluded_subtypes``.

    Args:
        document: Source document; it is not modified.
        excluded_subtypes: Subtypes excluded from stripping, i.e. kept.

    Returns:
        StripResult with the stripped copy and kept/removed counts.
    """
    kept_subtypes = frozenset(excluded_subtypes)
    output = document.clone()
    result = StripResult(document=output)

    for page in output.pages:
        if not output.has_annotation_array(page.objgen):
            continue

        kept = []
        for entry in output.annotation_entries(page.objgen):
            subtype = entry_subtype(entry)
            if subtype in kept_subtypes:
                kept.append(entry)
                continue
            if subtype is None:
                LOGGER.warning("Removing unresolvable annotation entry on page %d of %s",
                               page.index + 1, document.name)
            result.removed += 1

        result.kept += len(kept)
        output.set_annotation_entries(page.objgen, kept)
        LOGGER.debug("Page %d: kept %d annotation(s)", page.index + 1, len(kept))

    LOGGER.info("Stripped %d annotation(s) from %s, kept %d",
                result.removed, document.name, result.kept)
    return result


def strip(document: AnnotatedDocument,
          excluded_subtypes: Iterable[str] = DEFAULT_KEPT_SUBTYPES) -> AnnotatedDocument:
    """Return a copy of ``document`` keeping only annotations of ``excluded_subtypes``."""
    return strip_annotations(document, excluded_subtypes).document


def strip_pdf_annotations(input_path: str, output_path: str,
                          excluded_subtypes: Iterable[str] = DEFAULT_KEPT_SUBTYPES) -> StripResult:
    """Strip annotations from a PDF file and write the result to ``output_path``."""
    check_output_path(output_path, [input_path])

    with AnnotatedDocument.load(input_path) as document:
        result = strip_annotations(document, excluded_subtypes)
        try:
            result.document.save(output_path)
        finally:
            result.document.close()
    return result
