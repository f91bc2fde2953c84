"""
Typed, read-only view over a raw annotation dictionary.

The view keeps the subtype, a normalized rectangle and the remaining
fields of the dictionary. Object ids are recorded for the keys that link
annotations together (``/P``, ``/Popup``, ``/Parent``, ``/IRT``) so the
merge engine can rewrite them when an annotation moves to another document.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import pikepdf
from pikepdf import Array, Dictionary, Name

from .config import REFERENCE_KEYS
from .exceptions import MalformedAnnotation

ObjectId = Tuple[int, int]
Rect = Tuple[float, float, float, float]
PageIndexLookup = Callable[[ObjectId], Optional[int]]


def name_str(value) -> Optional[str]:
    """Return a PDF name without its leading slash, or None for non-names."""
    if isinstance(value, Name):
        return str(value)[1:]
    return None


def text_str(value) -> Optional[str]:
    """Return the decoded text of a PDF string, or None for non-strings."""
    if isinstance(value, pikepdf.String):
        return str(value)
    if isinstance(value, str) and not isinstance(value, Name):
        return value
    return None


def parse_rect(raw) -> Rect:
    """
    Parse a ``/Rect`` array into (left, bottom, right, top).

    Raises:
        MalformedAnnotation: the array is missing, has the wrong length or
            holds anything but finite numbers.
    """
    if not isinstance(raw, Array) or len(raw) != 4:
        raise MalformedAnnotation("Annotation rectangle is missing or does not have 4 components")

    values = []
    for item in raw:
        if item is None or isinstance(item, (bool, Name, pikepdf.String, Array, Dictionary)):
            raise MalformedAnnotation(f"Non-numeric rectangle component: {item!r}")
        try:
            number = float(item)
        except (TypeError, ValueError) as exc:
            raise MalformedAnnotation(f"Non-numeric rectangle component: {item!r}") from exc
        if not math.isfinite(number):
            raise MalformedAnnotation(f"Non-finite rectangle component: {number!r}")
        values.append(number)

    x0, y0, x1, y1 = values
    return (min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))


def _plain(value):
    """Convert a destination parameter to a comparable Python value."""
    if isinstance(value, Name):
        return name_str(value)
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (pikepdf.String, Array, Dictionary)):
        return str(value)
    try:
        return round(float(value), 3)
    except (TypeError, ValueError):
        return str(value)


def destination_key(dest, page_index_of: Optional[PageIndexLookup] = None):
    """
    Reduce a destination to a value comparable across documents.

    Explicit destinations point at a page object; the page is replaced by its
    index so the same target in two copies of a document compares equal.
    """
    if dest is None:
        return None
    if isinstance(dest, Name):
        return ("named", name_str(dest))
    text = text_str(dest)
    if text is not None:
        return ("named", text)
    if isinstance(dest, Dictionary):
        return destination_key(dest.get(Name.D), page_index_of)
    if isinstance(dest, Array) and len(dest) > 0:
        target = dest[0]
        if isinstance(target, pikepdf.Object) and target.is_indirect:
            page = page_index_of(target.objgen) if page_index_of else None
        else:
            page = _plain(target)
        return ("page", page) + tuple(_plain(item) for item in dest[1:])
    return None


def _file_spec(value) -> Optional[str]:
    if isinstance(value, Dictionary):
        return text_str(value.get(Name.UF)) or text_str(value.get(Name.F))
    return text_str(value)


def link_target(obj: Dictionary, page_index_of: Optional[PageIndexLookup] = None):
    """Return a comparable description of where a link annotation points."""
    action = obj.get(Name.A)
    if isinstance(action, Dictionary):
        kind = name_str(action.get(Name.S))
        if kind == "URI":
            return ("URI", text_str(action.get(Name.URI)))
        if kind == "GoTo":
            return ("GoTo", destination_key(action.get(Name.D), page_index_of))
        if kind == "GoToR":
            return ("GoToR", _file_spec(action.get(Name.F)), destination_key(action.get(Name.D)))
        if kind == "Launch":
            return ("Launch", _file_spec(action.get(Name.F)))
        if kind == "Named":
            return ("Named", name_str(action.get(Name.N)))
        return (kind,)

    dest = obj.get(Name.Dest)
    if dest is not None:
        return ("GoTo", destination_key(dest, page_index_of))
    return None


@dataclass(eq=False)
class Annotation:
    """Annotation view: subtype, rectangle and remaining fields."""
    subtype: str
    rect: Rect
    fields: Dict[str, Any] = field(default_factory=dict)
    refs: Dict[str, ObjectId] = field(default_factory=dict)
    objgen: ObjectId = (0, 0)
    link_target: Any = None
    obj: Optional[Dictionary] = field(default=None, repr=False)

    @classmethod
    def from_object(cls, obj, page_index_of: Optional[PageIndexLookup] = None) -> "Annotation":
        """
        Build a view over an annotation dictionary.

        Args:
            obj: The annotation dictionary (usually an indirect object handle).
            page_index_of: Maps a page object id to its page index; used to
                compare link destinations across documents.

        Raises:
            MalformedAnnotation: ``/Subtype`` is missing or the rectangle is
                invalid.
        """
        if not isinstance(obj, Dictionary):
            raise MalformedAnnotation(f"Annotation is not a dictionary: {obj!r}")

        subtype = name_str(obj.get(Name.Subtype))
        if subtype is None:
            raise MalformedAnnotation("Annotation has no /Subtype")
        rect = parse_rect(obj.get(Name.Rect))

        fields = {key[1:]: value for key, value in obj.items()
                  if key not in ("/Subtype", "/Rect")}

        refs = {}
        for key in REFERENCE_KEYS:
            value = obj.get("/" + key)
            if isinstance(value, pikepdf.Object) and value.is_indirect:
                refs[key] = value.objgen

        return cls(
            subtype=subtype,
            rect=rect,
            fields=fields,
            refs=refs,
            objgen=obj.objgen,
            link_target=link_target(obj, page_index_of) if subtype == "Link" else None,
            obj=obj,
        )

    @property
    def contents(self) -> Optional[str]:
        return text_str(self.fields.get("Contents"))

    @property
    def author(self) -> Optional[str]:
        return text_str(self.fields.get("T"))

    def describe(self) -> str:
        """Short human readable label used in log messages."""
        label = self.contents or ""
        if len(label) > 30:
            label = label[:30] + "..."
        rect = ", ".join(f"{x:g}" for x in self.rect)
        return f"{self.subtype} [{rect}] {label}".rstrip()
