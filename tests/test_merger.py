from __future__ import annotations

import os

import pytest
from pikepdf import Array, Dictionary, Name

from builders import (
    add_annotations,
    as_document,
    highlight,
    make_annotation,
    make_page_link,
    make_uri_link,
    new_pdf,
    page_annotations,
    summary,
)
from pdf_annotation_merger.document import AnnotatedDocument
from pdf_annotation_merger.exceptions import DocumentLoadError, DocumentWriteError, PageCountMismatch
from pdf_annotation_merger.matcher import AnnotationMatcher
from pdf_annotation_merger.merger import merge, merge_documents, merge_pdf_annotations
from pdf_annotation_merger.stats import collect_stats


def equivalent_sets(first, second) -> bool:
    """Same annotations up to matcher equivalence, ignoring order."""
    matcher = AnnotationMatcher()
    if len(first) != len(second):
        return False
    return (all(any(matcher.matches(a, b) for b in second) for a in first)
            and all(any(matcher.matches(b, a) for a in first) for b in second))


def test_duplicate_highlight_deduped_and_link_kept() -> None:
    first = new_pdf()
    add_annotations(first, 0, [highlight(first, "foo")])
    second = new_pdf()
    add_annotations(second, 0, [
        highlight(second, "foo"),
        make_uri_link(second, (0, 0, 20, 20), "https://example.com"),
    ])

    result = merge_documents([as_document(first), as_document(second)])

    assert summary(result.document, 0) == [("Highlight", "foo"), ("Link", None)]
    assert result.base_annotations == 1
    assert result.merged_annotations == 1
    assert result.duplicate_annotations == 1


def test_merging_document_with_itself_is_idempotent() -> None:
    pdf = new_pdf(pages=2)
    add_annotations(pdf, 0, [highlight(pdf, "foo"), make_annotation(pdf, "Text", (0, 0, 5, 5), "note")])
    add_annotations(pdf, 1, [make_uri_link(pdf, (0, 0, 5, 5), "https://example.com")])
    document = as_document(pdf)

    merged = merge([document, document])

    for index in range(2):
        assert summary(merged, index) == summary(document, index)


def test_merge_is_order_independent_for_sets() -> None:
    first = new_pdf()
    add_annotations(first, 0, [highlight(first, "shared"), highlight(first, "mine", rect=(0, 0, 5, 5))])
    second = new_pdf()
    add_annotations(second, 0, [highlight(second, "theirs", rect=(5, 5, 9, 9)), highlight(second, "shared")])
    d1, d2 = as_document(first), as_document(second)

    forward = page_annotations(merge([d1, d2]), 0)
    backward = page_annotations(merge([d2, d1]), 0)

    assert len(forward) == 3
    assert equivalent_sets(forward, backward)


def test_disjoint_annotations_add_up_in_stats() -> None:
    first = new_pdf(pages=2)
    add_annotations(first, 0, [highlight(first, "a")])
    add_annotations(first, 1, [highlight(first, "b"), highlight(first, "c", rect=(1, 1, 2, 2))])
    second = new_pdf(pages=2)
    add_annotations(second, 0, [make_uri_link(second, (0, 0, 5, 5), "https://example.com")])
    add_annotations(second, 1, [highlight(second, "d")])
    d1, d2 = as_document(first), as_document(second)

    report = collect_stats(merge([d1, d2]), per_page=True)

    for index in range(2):
        expected = collect_stats(d1, per_page=True).pages[index] + collect_stats(d2, per_page=True).pages[index]
        assert sum(report.pages[index].values()) == sum(expected.values())
        assert report.pages[index] == expected


def test_inputs_are_not_modified() -> None:
    first = new_pdf()
    add_annotations(first, 0, [highlight(first, "foo")])
    second = new_pdf()
    add_annotations(second, 0, [highlight(second, "bar")])
    d1, d2 = as_document(first), as_document(second)

    merged = merge([d1, d2])

    assert len(page_annotations(merged, 0)) == 2
    assert summary(d1, 0) == [("Highlight", "foo")]
    assert summary(d2, 0) == [("Highlight", "bar")]


def test_duplicates_within_one_source_are_merged_once() -> None:
    first = new_pdf()
    second = new_pdf()
    add_annotations(second, 0, [highlight(second, "foo"), highlight(second, "foo")])

    result = merge_documents([as_document(first), as_document(second)])

    assert summary(result.document, 0) == [("Highlight", "foo")]
    assert result.duplicate_annotations == 1


def test_three_documents_first_seen_wins() -> None:
    docs = []
    for name in ("a", "b", "c"):
        pdf = new_pdf()
        add_annotations(pdf, 0, [highlight(pdf, "shared"), highlight(pdf, name, rect=(0, 0, 1, 1))])
        docs.append(as_document(pdf, f"{name}.pdf"))

    result = merge_documents(docs)

    assert summary(result.document, 0) == [
        ("Highlight", "shared"), ("Highlight", "a"), ("Highlight", "b"), ("Highlight", "c"),
    ]
    assert result.files_processed == 3
    assert result.duplicate_annotations == 2


def test_page_count_mismatch_aborts() -> None:
    with pytest.raises(PageCountMismatch):
        merge([as_document(new_pdf(pages=3)), as_document(new_pdf(pages=4))])


def test_needs_two_documents() -> None:
    with pytest.raises(ValueError):
        merge([as_document(new_pdf())])


def test_popup_follows_new_parent() -> None:
    first = new_pdf()
    second = new_pdf()
    parent = highlight(second, "new", P=second.pages[0].obj)
    popup = make_annotation(second, "Popup", (60, 60, 120, 100), Parent=parent)
    parent[Name.Popup] = popup
    add_annotations(second, 0, [parent, popup])

    merged = merge([as_document(first), as_document(second)])
    out_parent, out_popup = page_annotations(merged, 0)

    assert (out_parent.subtype, out_popup.subtype) == ("Highlight", "Popup")
    assert out_parent.refs["Popup"] == out_popup.objgen
    assert out_popup.refs["Parent"] == out_parent.objgen
    assert out_parent.refs["P"] == merged.pages[0].objgen


def test_popup_of_duplicate_parent_is_dropped() -> None:
    first = new_pdf()
    add_annotations(first, 0, [highlight(first, "foo")])
    second = new_pdf()
    parent = highlight(second, "foo")
    popup = make_annotation(second, "Popup", (60, 60, 120, 100), Parent=parent)
    parent[Name.Popup] = popup
    add_annotations(second, 0, [parent, popup])

    result = merge_documents([as_document(first), as_document(second)])

    assert summary(result.document, 0) == [("Highlight", "foo")]
    assert result.duplicate_annotations == 2


def test_reply_to_duplicate_points_at_surviving_annotation() -> None:
    first = new_pdf()
    original = highlight(first, "foo")
    add_annotations(first, 0, [original])
    second = new_pdf()
    copy = highlight(second, "foo")
    reply = make_annotation(second, "Text", (0, 0, 5, 5), "I agree", IRT=copy)
    add_annotations(second, 0, [copy, reply])

    merged = merge([as_document(first), as_document(second)])
    base, out_reply = page_annotations(merged, 0)

    assert out_reply.contents == "I agree"
    assert out_reply.refs["IRT"] == base.objgen


def test_link_destination_rewritten_to_output_page() -> None:
    first = new_pdf(pages=2)
    second = new_pdf(pages=2)
    add_annotations(second, 0, [make_page_link(second, (0, 0, 5, 5), 1)])

    merged = merge([as_document(first), as_document(second)])
    (link,) = page_annotations(merged, 0)

    assert link.fields["Dest"][0].objgen == merged.pages[1].objgen
    assert link.link_target == ("GoTo", ("page", 1, "Fit"))


def test_indirect_goto_action_rewritten_to_output_page() -> None:
    first = new_pdf(pages=2)
    second = new_pdf(pages=2)
    action = second.make_indirect(Dictionary(S=Name.GoTo, D=Array([second.pages[1].obj, Name.Fit])))
    add_annotations(second, 0, [make_annotation(second, "Link", (0, 0, 5, 5), A=action)])
    d2 = as_document(second)

    merged = merge([as_document(first), d2])
    (link,) = page_annotations(merged, 0)

    assert link.fields["A"].is_indirect
    assert link.fields["A"].D[0].objgen == merged.pages[1].objgen
    assert link.link_target == ("GoTo", ("page", 1, "Fit"))
    assert len(page_annotations(merge([merged, d2]), 0)) == 1


def test_indirect_dest_array_rewritten_to_output_page() -> None:
    first = new_pdf(pages=2)
    second = new_pdf(pages=2)
    dest = second.make_indirect(Array([second.pages[1].obj, Name.XYZ, 0, 200, 0]))
    add_annotations(second, 0, [make_annotation(second, "Link", (0, 0, 5, 5), Dest=dest)])
    d2 = as_document(second)

    merged = merge([as_document(first), d2])
    (link,) = page_annotations(merged, 0)

    assert link.fields["Dest"][0].objgen == merged.pages[1].objgen
    assert link.link_target == ("GoTo", ("page", 1, "XYZ", 0.0, 200.0, 0.0))
    assert len(page_annotations(merge([merged, d2]), 0)) == 1


def test_shared_action_copied_once() -> None:
    first = new_pdf(pages=2)
    second = new_pdf(pages=2)
    action = second.make_indirect(Dictionary(S=Name.GoTo, D=Array([second.pages[1].obj, Name.Fit])))
    add_annotations(second, 0, [
        make_annotation(second, "Link", (0, 0, 5, 5), A=action),
        make_annotation(second, "Link", (5, 5, 9, 9), A=action),
    ])

    merged = merge([as_document(first), as_document(second)])
    first_link, second_link = page_annotations(merged, 0)

    assert first_link.fields["A"].objgen == second_link.fields["A"].objgen


def test_nested_objects_are_copied() -> None:
    first = new_pdf()
    second = new_pdf()
    appearance = second.make_stream(b"0 0 1 rg 0 0 40 10 re f")
    border = Dictionary(W=2, S=Name.S)
    add_annotations(second, 0, [make_annotation(
        second, "Square", (0, 0, 40, 10), "box",
        AP=Dictionary(N=appearance), BS=border, C=Array([1, 0, 0]),
    )])

    merged = merge([as_document(first), as_document(second)])
    (square,) = page_annotations(merged, 0)

    assert square.fields["AP"].N.read_bytes() == b"0 0 1 rg 0 0 40 10 re f"
    assert int(square.fields["BS"].W) == 2
    assert len(square.fields["C"]) == 3


def test_skip_subtypes_only_kept_from_base() -> None:
    first = new_pdf()
    add_annotations(first, 0, [make_uri_link(first, (0, 0, 5, 5), "https://base.example")])
    second = new_pdf()
    add_annotations(second, 0, [
        make_uri_link(second, (5, 5, 9, 9), "https://other.example"),
        highlight(second, "foo"),
    ])

    result = merge_documents([as_document(first), as_document(second)], skip_subtypes={"Link"})

    assert summary(result.document, 0) == [("Link", None), ("Highlight", "foo")]
    assert result.skipped_annotations == 1


def test_malformed_base_entries_are_preserved() -> None:
    first = new_pdf()
    broken = first.make_indirect(Dictionary(Subtype=Name.Text))
    add_annotations(first, 0, [broken])
    second = new_pdf()
    add_annotations(second, 0, [highlight(second, "foo")])

    merged = merge([as_document(first), as_document(second)])
    entries = merged.annotation_entries(merged.pages[0].objgen)

    assert len(entries) == 2
    assert Name.Rect not in entries[0]
    assert summary(merged, 0) == [("Highlight", "foo")]


def test_custom_matcher_tolerance() -> None:
    first = new_pdf()
    add_annotations(first, 0, [highlight(first, "foo")])
    second = new_pdf()
    add_annotations(second, 0, [highlight(second, "foo", rect=(10.5, 10, 50, 20))])
    documents = [as_document(first), as_document(second)]

    assert len(page_annotations(merge(documents), 0)) == 2
    loose = merge_documents(documents, matcher=AnnotationMatcher(tolerance=1.0))
    assert len(page_annotations(loose.document, 0)) == 1


def test_merge_files_writes_output(annotated_pdfs, tmp_path) -> None:
    output = tmp_path / "merged.pdf"

    result = merge_pdf_annotations(str(output), [str(p) for p in annotated_pdfs])

    assert output.exists()
    assert result.as_dict()["merged_annotations"] == 2
    with AnnotatedDocument.load(output) as merged:
        assert summary(merged, 0) == [("Highlight", "foo"), ("Link", None)]
        assert summary(merged, 1) == [("Highlight", "bar")]


def test_merge_files_page_mismatch_writes_nothing(pdf_factory, tmp_path) -> None:
    first = pdf_factory("three.pdf", pages=3)
    second = pdf_factory("four.pdf", pages=4)
    output = tmp_path / "merged.pdf"

    with pytest.raises(PageCountMismatch):
        merge_pdf_annotations(str(output), [str(first), str(second)])

    assert not output.exists()
    assert sorted(os.listdir(tmp_path)) == ["four.pdf", "three.pdf"]


def test_merge_files_unreadable_input(pdf_factory, tmp_path) -> None:
    good = pdf_factory("good.pdf")
    bad = tmp_path / "bad.pdf"
    bad.write_bytes(b"not a pdf at all")
    output = tmp_path / "merged.pdf"

    with pytest.raises(DocumentLoadError):
        merge_pdf_annotations(str(output), [str(good), str(bad)])

    assert not output.exists()


def test_merge_files_rejects_input_as_output(annotated_pdfs) -> None:
    with pytest.raises(DocumentWriteError):
        merge_pdf_annotations(str(annotated_pdfs[0]), [str(p) for p in annotated_pdfs])
