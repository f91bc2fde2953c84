from __future__ import annotations

import logging

import pytest

from builders import as_document, new_pdf
from pdf_annotation_merger.aligner import align_pages, page_fingerprints, verify_aligned_content
from pdf_annotation_merger.exceptions import PageCountMismatch


def test_pages_aligned_by_index() -> None:
    first = as_document(new_pdf(pages=3), "first.pdf")
    second = as_document(new_pdf(pages=3), "second.pdf")

    alignment = align_pages([first, second])

    assert len(alignment) == 3
    for index, (a, b) in enumerate(alignment):
        assert a.index == b.index == index
        assert a == first.pages[index]
        assert b == second.pages[index]


def test_page_count_mismatch_names_document() -> None:
    first = as_document(new_pdf(pages=3), "first.pdf")
    second = as_document(new_pdf(pages=4), "second.pdf")

    with pytest.raises(PageCountMismatch) as excinfo:
        align_pages([first, second])

    assert excinfo.value.document == "second.pdf"
    assert excinfo.value.count == 4
    assert excinfo.value.expected == 3
    assert "second.pdf" in str(excinfo.value)


def test_identical_text_verifies_cleanly() -> None:
    first = as_document(new_pdf(pages=2, texts=["Hello", "World"]))
    second = as_document(new_pdf(pages=2, texts=["Hello", "World"]))

    assert verify_aligned_content([first, second]) == []


def test_differing_text_is_reported_as_warning(caplog) -> None:
    first = as_document(new_pdf(pages=2, texts=["Hello", "World"]), "first.pdf")
    second = as_document(new_pdf(pages=2, texts=["Hello", "Planet"]), "second.pdf")

    with caplog.at_level(logging.WARNING, logger="pdf_annotation_merger"):
        mismatched = verify_aligned_content([first, second])

    assert mismatched == [1]
    assert any("second.pdf" in record.getMessage() for record in caplog.records)


def test_fingerprints_one_per_page() -> None:
    document = as_document(new_pdf(pages=3, texts=["a", "b", "a"]))

    fingerprints = page_fingerprints(document)

    assert len(fingerprints) == 3
    assert fingerprints[0] == fingerprints[2] != fingerprints[1]
