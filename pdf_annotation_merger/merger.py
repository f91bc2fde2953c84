"""
PDF Annotation Merger

Merges annotations from multiple versions of the same PDF into a single
document. The first input is used as the base: its pages, content and
annotations are kept as they are, and annotations from the other inputs
are appended to each page unless an equivalent annotation is already there.

Appended annotations are deep-copied into the output with new object ids.
Links between annotations (pop-up, parent, reply-to) and references to
pages are rewritten to point at the corresponding output objects.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pikepdf
from pikepdf import Array, Dictionary

from .aligner import align_pages, verify_aligned_content
from .config import POPUP_SUBTYPE
from .document import AnnotatedDocument, ObjectId, PageRef, check_output_path
from .extractor import extract_page_annotations
from .matcher import AnnotationMatcher
from .model import Annotation

LOGGER = logging.getLogger("pdf_annotation_merger.merger")


@dataclass
class MergeResult:
    """Merged document plus merge statistics."""
    document: AnnotatedDocument
    files_processed: int = 0
    base_annotations: int = 0
    merged_annotations: int = 0
    duplicate_annotations: int = 0
    skipped_annotations: int = 0
    mismatched_pages: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            'files_processed': self.files_processed,
            'base_annotations': self.base_annotations,
            'merged_annotations': self.merged_annotations,
            'duplicate_annotations': self.duplicate_annotations,
            'skipped_annotations': self.skipped_annotations,
            'mismatched_pages': list(self.mismatched_pages),
        }


def _annotation_ids(document: AnnotatedDocument) -> Set[ObjectId]:
    """Object ids of every annotation referenced from any page of ``document``."""
    ids = set()
    for page in document.pages:
        for entry in document.annotation_entries(page.objgen):
            if isinstance(entry, pikepdf.Object) and entry.is_indirect:
                ids.add(entry.objgen)
    return ids


class AnnotationMerger:
    """Builds the merged output document for one merge operation."""

    def __init__(self, output: AnnotatedDocument, matcher: AnnotationMatcher,
                 skip_subtypes: Iterable[str] = ()):
        self.output = output
        self.matcher = matcher
        self.skip_subtypes = frozenset(skip_subtypes)
        self.stats = {
            'base_annotations': 0,
            'merged_annotations': 0,
            'duplicate_annotations': 0,
            'skipped_annotations': 0,
        }
        self._page_maps: Dict[int, Dict[ObjectId, pikepdf.Object]] = {}
        self._annotation_ids: Dict[int, Set[ObjectId]] = {}

    def _source_context(self, document: AnnotatedDocument):
        key = id(document)
        if key not in self._page_maps:
            self._page_maps[key] = {
                source.objgen: self.output.page_object(target.objgen)
                for source, target in zip(document.pages, self.output.pages)
            }
            self._annotation_ids[key] = _annotation_ids(document)
        return self._page_maps[key], self._annotation_ids[key]

    def merge_page(self, index: int, sources: Sequence[Tuple[AnnotatedDocument, PageRef]]) -> None:
        """Append the annotations of ``sources`` that are new to output page ``index``."""
        target = self.output.pages[index]
        entries = self.output.annotation_entries(target.objgen)
        combined = [(annotation, annotation.obj)
                    for annotation in extract_page_annotations(self.output, target.objgen)]
        self.stats['base_annotations'] += len(combined)

        added = []
        for document, page in sources:
            added.extend(self._merge_source_page(index, document, page, combined))

        if added:
            entries.extend(added)
            self.output.set_annotation_entries(target.objgen, entries)

    def _find_existing(self, annotation: Annotation,
                       combined: List[Tuple[Annotation, pikepdf.Object]]) -> Optional[pikepdf.Object]:
        """Return the output object of the first combined entry matching ``annotation``."""
        for seen, obj in combined:
            if self.matcher.matches(annotation, seen):
                return obj
        return None

    def _merge_source_page(self, index: int, document: AnnotatedDocument, page: PageRef,
                           combined: List[Tuple[Annotation, pikepdf.Object]]) -> List[pikepdf.Object]:
        page_map, annotation_ids = self._source_context(document)
        annotations = extract_page_annotations(document, page.objgen)
        on_page = {annotation.objgen for annotation in annotations}

        # source annotation id -> output annotation (new copy or surviving match)
        mapping: Dict[ObjectId, pikepdf.Object] = {}
        copies: List[Tuple[int, Annotation, pikepdf.Object]] = []
        popups: List[Tuple[int, Annotation]] = []
        skipped: Set[ObjectId] = set()

        for position, annotation in enumerate(annotations):
            if annotation.subtype in self.skip_subtypes:
                skipped.add(annotation.objgen)
                self.stats['skipped_annotations'] += 1
                continue
            if annotation.subtype == POPUP_SUBTYPE and annotation.refs.get('Parent') in on_page:
                popups.append((position, annotation))
                continue

            existing = self._find_existing(annotation, combined)
            if existing is not None:
                mapping[annotation.objgen] = existing
                self.stats['duplicate_annotations'] += 1
                LOGGER.debug("    = Page %d: duplicate %s from %s",
                             index + 1, annotation.describe(), document.name)
                continue

            new_obj = self.output.add_object(Dictionary())
            mapping[annotation.objgen] = new_obj
            copies.append((position, annotation, new_obj))
            combined.append((annotation, new_obj))

        # Pop-ups follow their parent annotation
        copied = {annotation.objgen for _, annotation, _ in copies}
        for position, popup in popups:
            parent = popup.refs['Parent']
            if parent in copied:
                new_obj = self.output.add_object(Dictionary())
                mapping[popup.objgen] = new_obj
                copies.append((position, popup, new_obj))
                combined.append((popup, new_obj))
            elif parent in skipped:
                self.stats['skipped_annotations'] += 1
            else:
                self.stats['duplicate_annotations'] += 1

        memo = dict(page_map)
        memo.update(mapping)
        copies.sort(key=lambda item: item[0])
        for _, annotation, new_obj in copies:
            self._fill_copy(annotation, new_obj, memo, annotation_ids)
            self.stats['merged_annotations'] += 1
            LOGGER.debug("    + Page %d: %s from %s", index + 1, annotation.describe(), document.name)

        return [new_obj for _, _, new_obj in copies]

    def _fill_copy(self, annotation: Annotation, new_obj: pikepdf.Object,
                   memo: Dict[ObjectId, pikepdf.Object], annotation_ids: Set[ObjectId]) -> None:
        for key, value in annotation.obj.items():
            copied = self._copy_value(value, memo, annotation_ids)
            if copied is None:
                LOGGER.debug("Dropping %s of %s: target was not merged", key, annotation.describe())
                continue
            new_obj[key] = copied

    def _copy_value(self, value, memo: Dict[ObjectId, pikepdf.Object], annotation_ids: Set[ObjectId]):
        """
        Copy ``value`` from a source document into the output.

        Pages and merged annotations are looked up in ``memo``; links to
        annotations that were not carried over become None. Indirect
        dictionaries and arrays (actions, destinations) are copied into new
        output objects and recorded in ``memo``, so page references inside
        them are rewritten too. Streams are copied with copy_foreign.
        """
        if isinstance(value, pikepdf.Object) and value.is_indirect:
            target = memo.get(value.objgen)
            if target is not None:
                return target
            if value.objgen in annotation_ids:
                return None
            if isinstance(value, pikepdf.Stream):
                copy = self.output.copy_foreign(value)
            elif isinstance(value, Dictionary):
                copy = self.output.add_object(Dictionary())
                memo[value.objgen] = copy
                for key, item in value.items():
                    item = self._copy_value(item, memo, annotation_ids)
                    if item is not None:
                        copy[key] = item
            elif isinstance(value, Array):
                copy = self.output.add_object(Array())
                memo[value.objgen] = copy
                for item in value:
                    copy.append(self._copy_value(item, memo, annotation_ids))
            else:
                copy = self.output.copy_foreign(value)
            memo[value.objgen] = copy
            return copy
        if isinstance(value, Dictionary):
            copy = Dictionary()
            for key, item in value.items():
                item = self._copy_value(item, memo, annotation_ids)
                if item is not None:
                    copy[key] = item
            return copy
        if isinstance(value, Array):
            return Array([self._copy_value(item, memo, annotation_ids) for item in value])
        return value


def merge_documents(documents: Sequence[AnnotatedDocument],
                    matcher: Optional[AnnotationMatcher] = None,
                    skip_subtypes: Iterable[str] = (),
                    verify_content: bool = False) -> MergeResult:
    """
    Merge the annotations of ``documents`` into a new document.

    Args:
        documents: At least two documents with the same page count. The
            first one is the base of the output; none of them is modified.
        matcher: Decides which annotations are duplicates.
        skip_subtypes: Subtypes only kept from the base document.
        verify_content: Cross-check the text of aligned pages and report
            differences as warnings.

    Returns:
        MergeResult holding the output document and merge statistics.

    Raises:
        PageCountMismatch: The documents do not have the same page count.
    """
    if len(documents) < 2:
        raise ValueError("Need at least 2 documents to merge")

    alignment = align_pages(documents)
    mismatched = verify_aligned_content(documents) if verify_content else []

    LOGGER.info("Merging annotations from %d documents (base: %s)", len(documents), documents[0].name)
    output = documents[0].clone()
    merger = AnnotationMerger(output, matcher or AnnotationMatcher(), skip_subtypes)

    for index, pages in enumerate(alignment):
        merger.merge_page(index, list(zip(documents[1:], pages[1:])))

    result = MergeResult(document=output, files_processed=len(documents),
                         mismatched_pages=mismatched, **merger.stats)
    LOGGER.info("Merged %d new annotation(s), %d duplicate(s) skipped",
                result.merged_annotations, result.duplicate_annotations)
    return result


def merge(documents: Sequence[AnnotatedDocument]) -> AnnotatedDocument:
    """Merge ``documents`` with default settings and return the output document."""
    return merge_documents(documents).document


def merge_pdf_annotations(output_path: str, input_paths: List[str], **options) -> MergeResult:
    """
    Merge annotations from multiple PDF files into a single output file.

    Args:
        output_path: Path for the merged output PDF
        input_paths: List of input PDF paths (first is used as base)
        **options: Passed to merge_documents

    Returns:
        MergeResult; its document is closed once the file is written.

    Raises:
        DocumentLoadError: An input cannot be read. Nothing is written.
        PageCountMismatch: Inputs differ in page count. Nothing is written.
        DocumentWriteError: The output cannot be written.
    """
    if len(input_paths) < 2:
        raise ValueError("Need at least 2 input files to merge")

    check_output_path(output_path, input_paths)

    documents: List[AnnotatedDocument] = []
    try:
        for path in input_paths:
            LOGGER.info("Loading %s", path)
            documents.append(AnnotatedDocument.load(path))

        result = merge_documents(documents, **options)
        try:
            result.document.save(output_path)
        finally:
            result.document.close()
    finally:
        for document in documents:
            document.close()

    return result
