from __future__ import annotations

from pathlib import Path

import pytest

from builders import add_annotations, highlight, make_uri_link, new_pdf, write_pdf


@pytest.fixture()
def pdf_factory(tmp_path: Path):
    """Write a PDF built by ``build(pdf)`` to ``tmp_path / filename``."""
    def _create(filename: str, pages: int = 1, build=None) -> Path:
        pdf = new_pdf(pages)
        if build is not None:
            build(pdf)
        return write_pdf(pdf, tmp_path / filename)

    return _create


@pytest.fixture()
def annotated_pdfs(pdf_factory):
    """Two copies of a 2-page document sharing one highlight; the second adds a link."""
    def build_first(pdf):
        add_annotations(pdf, 0, [highlight(pdf, "foo")])

    def build_second(pdf):
        add_annotations(pdf, 0, [
            highlight(pdf, "foo", M="D:20240101000000"),
            make_uri_link(pdf, (0, 0, 20, 20), "https://example.com"),
        ])
        add_annotations(pdf, 1, [highlight(pdf, "bar", rect=(30, 30, 60, 40))])

    return [
        pdf_factory("first.pdf", pages=2, build=build_first),
        pdf_factory("second.pdf", pages=2, build=build_second),
    ]
