"""
Annotation matching for merge deduplication.

Two annotations match when they have the same subtype, the same rectangle
within a tolerance, and the same subtype specific identity fields. Object
ids and creation/modification dates never take part: independently edited
copies of one document give the same annotation different ids and dates.
"""

import re
import unicodedata
from typing import Optional, Tuple

from .config import DEFAULT_TOLERANCE, LINK_SUBTYPE, MARKUP_SUBTYPES
from .model import Annotation

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Normalize annotation text for comparison."""
    if not text:
        return ""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _WHITESPACE.sub(" ", text).strip()


def identity_fields(annotation: Annotation) -> Tuple:
    """
    Return the subtype specific fields that identify an annotation.

    Authors are not included: the matcher compares them only when both
    annotations carry one.
    """
    if annotation.subtype in MARKUP_SUBTYPES:
        return (normalize_text(annotation.contents),)
    if annotation.subtype == LINK_SUBTYPE:
        return (annotation.link_target,)
    return ()


class AnnotationMatcher:
    """Decides whether two annotations are the same for merge purposes."""

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE):
        if tolerance < 0:
            raise ValueError("Tolerance must not be negative")
        self.tolerance = tolerance

    def rects_match(self, a: Annotation, b: Annotation) -> bool:
        return all(abs(x - y) <= self.tolerance for x, y in zip(a.rect, b.rect))

    def authors_match(self, a: Annotation, b: Annotation) -> bool:
        author_a = normalize_text(a.author)
        author_b = normalize_text(b.author)
        if not author_a or not author_b:
            return True
        return author_a == author_b

    def matches(self, a: Annotation, b: Annotation) -> bool:
        if a.subtype != b.subtype:
            return False
        if not self.rects_match(a, b):
            return False
        if identity_fields(a) != identity_fields(b):
            return False
        if a.subtype in MARKUP_SUBTYPES:
            return self.authors_match(a, b)
        return True


def matches(a: Annotation, b: Annotation, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    return AnnotationMatcher(tolerance).matches(a, b)
