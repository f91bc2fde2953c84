"""
Default settings for the annotation merger.

Values here are defaults only; the command line (and the matching
``PDF_ANNOTATIONS_*`` environment variables) override them per invocation.
"""

# Absolute tolerance when comparing annotation rectangles (PDF points)
DEFAULT_TOLERANCE = 1e-3

# Subtypes that `strip` keeps unless told otherwise
DEFAULT_KEPT_SUBTYPES = frozenset({"Link"})

DEFAULT_MERGE_OUTPUT = "merged_annotations.pdf"
DEFAULT_STRIP_OUTPUT = "stripped_annotations.pdf"

ENV_PREFIX = "PDF_ANNOTATIONS"

# Markup annotations: identified by their text contents and author
MARKUP_SUBTYPES = frozenset({
    "Text", "FreeText", "Highlight", "Underline", "StrikeOut", "Squiggly",
    "Caret", "Ink", "Square", "Circle", "Line", "Polygon", "PolyLine",
    "Stamp", "FileAttachment", "Sound",
})

LINK_SUBTYPE = "Link"
POPUP_SUBTYPE = "Popup"

# Keys that point at other annotations or at the owning page
REFERENCE_KEYS = ("P", "Popup", "Parent", "IRT")
