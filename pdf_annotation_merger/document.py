"""
Document handle built on pikepdf.

Wraps a ``pikepdf.Pdf`` and exposes only what the annotation engines need:
pages in reading order, the annotation reference array of a page, reference
resolution and object insertion. Objects are addressed by their ``objgen``
pair (object number, generation), the same addressing the PDF format uses.
"""

import io
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pikepdf
from pikepdf import Array, Name

from .exceptions import DocumentLoadError, DocumentWriteError, PageNotFound

LOGGER = logging.getLogger("pdf_annotation_merger.document")

ObjectId = Tuple[int, int]


def check_output_path(output_path: Union[str, os.PathLike],
                      input_paths: Iterable[Union[str, os.PathLike]]) -> None:
    """Raise DocumentWriteError if ``output_path`` is one of ``input_paths``."""
    output_abs = os.path.abspath(output_path)
    for path in input_paths:
        if os.path.abspath(path) == output_abs:
            raise DocumentWriteError(f"Output file cannot be the same as an input file: {path}")


@dataclass(frozen=True)
class PageRef:
    """A page identified by its object id and 0-based reading-order index."""
    index: int
    objgen: ObjectId


class AnnotatedDocument:
    """A loaded PDF whose page annotations can be read and rewritten."""

    def __init__(self, pdf: pikepdf.Pdf, name: str = "<memory>"):
        self.pdf = pdf
        self.name = name
        self._pages: Optional[List[PageRef]] = None
        self._index_by_id: Dict[ObjectId, int] = {}

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------
    @classmethod
    def load(cls, path: Union[str, os.PathLike]) -> "AnnotatedDocument":
        """Open a PDF file, raising DocumentLoadError if it cannot be read."""
        path = os.fspath(path)
        if not os.path.isfile(path):
            raise DocumentLoadError(f"PDF file not found: {path}")
        try:
            pdf = pikepdf.open(path)
        except pikepdf.PasswordError as exc:
            raise DocumentLoadError(f"PDF is encrypted: {path}") from exc
        except pikepdf.PdfError as exc:
            raise DocumentLoadError(f"Corrupted or invalid PDF file: {path}. Error: {exc}") from exc
        except OSError as exc:
            raise DocumentLoadError(f"Unable to read PDF file: {path}. Error: {exc}") from exc

        LOGGER.debug("Loaded %s (%d pages)", path, len(pdf.pages))
        return cls(pdf, name=path)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "<memory>") -> "AnnotatedDocument":
        try:
            pdf = pikepdf.open(io.BytesIO(data))
        except pikepdf.PdfError as exc:
            raise DocumentLoadError(f"Corrupted or invalid PDF data: {name}. Error: {exc}") from exc
        return cls(pdf, name=name)

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.pdf.save(buffer)
        return buffer.getvalue()

    def clone(self, name: Optional[str] = None) -> "AnnotatedDocument":
        """Return an independent copy; changes to it never reach this document."""
        return AnnotatedDocument.from_bytes(self.to_bytes(), name=name or self.name)

    def save(self, path: Union[str, os.PathLike]) -> None:
        """
        Write the document to ``path``.

        The PDF is written to a temporary file next to the destination and
        renamed into place, so a failed write never leaves a partial file.
        """
        path = os.fspath(path)
        directory = os.path.dirname(os.path.abspath(path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".annotations_", suffix=".pdf", dir=directory)
            os.close(fd)
            self.pdf.save(tmp_path)
            os.replace(tmp_path, path)
            tmp_path = None
        except (OSError, pikepdf.PdfError) as exc:
            raise DocumentWriteError(f"Failed to write PDF to {path}: {exc}") from exc
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
        LOGGER.info("Saved %s", path)

    def close(self) -> None:
        self.pdf.close()

    def __enter__(self) -> "AnnotatedDocument":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------
    def _index_pages(self) -> None:
        self._pages = [PageRef(index, page.obj.objgen)
                       for index, page in enumerate(self.pdf.pages)]
        self._index_by_id = {page.objgen: page.index for page in self._pages}

    @property
    def pages(self) -> List[PageRef]:
        """Pages in reading order."""
        if self._pages is None:
            self._index_pages()
        return self._pages

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def page_index_of(self, page_id: ObjectId) -> Optional[int]:
        """Return the index of the page with this object id, or None."""
        if self._pages is None:
            self._index_pages()
        return self._index_by_id.get(tuple(page_id))

    def page_object(self, page_id: ObjectId) -> pikepdf.Dictionary:
        index = self.page_index_of(page_id)
        if index is None:
            raise PageNotFound(page_id)
        return self.pdf.pages[index].obj

    # ------------------------------------------------------------------
    # Annotation arrays
    # ------------------------------------------------------------------
    def annotation_entries(self, page_id: ObjectId) -> List[pikepdf.Object]:
        """
        Return the raw entries of the page's ``/Annots`` array.

        ``/Annots`` may be stored inline or as an indirect array; a page
        without one has no annotations.
        """
        page = self.page_object(page_id)
        annots = page.get(Name.Annots)
        if annots is None:
            return []
        if not isinstance(annots, Array):
            LOGGER.warning("Page %s of %s has a non-array /Annots entry; ignoring it",
                           page_id, self.name)
            return []
        return list(annots)

    def has_annotation_array(self, page_id: ObjectId) -> bool:
        return Name.Annots in self.page_object(page_id)

    def set_annotation_entries(self, page_id: ObjectId, entries: List[pikepdf.Object]) -> None:
        """Replace the page's ``/Annots`` array with ``entries``."""
        page = self.page_object(page_id)
        page[Name.Annots] = Array(entries)

    # ------------------------------------------------------------------
    # Object graph
    # ------------------------------------------------------------------
    def resolve(self, ref: Union[ObjectId, pikepdf.Object]) -> pikepdf.Object:
        """Resolve an object id (or reference handle) to its value."""
        if isinstance(ref, tuple):
            return self.pdf.get_object(ref)
        return ref

    def add_object(self, value: pikepdf.Object) -> pikepdf.Object:
        """Allocate a new object id for ``value`` and return the indirect handle."""
        return self.pdf.make_indirect(value)

    def copy_foreign(self, value: pikepdf.Object) -> pikepdf.Object:
        """Deep-copy an indirect object owned by another document into this one."""
        return self.pdf.copy_foreign(value)

    def __repr__(self) -> str:
        return f"AnnotatedDocument({self.name!r})"
