import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from citelens.core.types import CitationToken, Document, DocumentKind, ResolutionStatus
from citelens.retrieval.matcher import (
    SourceMatcher,
    is_url_citation,
    kind_from_filename,
    strip_duplicate_suffix,
    strip_extension,
)


def doc(name: str, doc_id: str = "") -> Document:
    return Document(id=doc_id or name, name=name, kind=kind_from_filename(name))


@pytest.fixture
def matcher() -> SourceMatcher:
    return SourceMatcher()


def test_exact_match_is_case_and_whitespace_insensitive(matcher):
    docs = [doc("Annual Report.pdf")]
    assert matcher.resolve("  annual report.PDF ", docs) is docs[0]


def test_exact_match_wins_over_later_tiers(matcher):
    docs = [doc("report"), doc("report.pdf")]
    assert matcher.resolve("report.pdf", docs) is docs[1]


def test_extension_tier_both_directions(matcher):
    with_ext = [doc("Report.pdf")]
    without_ext = [doc("Report")]
    assert matcher.resolve("Report", with_ext) is with_ext[0]
    assert matcher.resolve("Report.pdf", without_ext) is without_ext[0]


def test_extension_tier_does_not_need_containment(matcher):
    # "summary" is contained in "summary-old.pdf"; the stem match must win first
    docs = [doc("summary-old.pdf"), doc("summary.xlsx")]
    assert matcher.resolve("summary.csv", docs) is docs[1]


def test_duplicate_suffix_tier(matcher):
    docs = [doc("invoice.pdf")]
    assert matcher.resolve("invoice (2).pdf", docs) is docs[0]


def test_duplicate_suffix_on_document_side(matcher):
    docs = [doc("invoice (3).pdf")]
    assert matcher.resolve("invoice.pdf", docs) is docs[0]


def test_containment_either_direction(matcher):
    truncated = [doc("2024 Quarterly Financial Statements.pdf")]
    prefixed = [doc("budget.xlsx")]
    assert matcher.resolve("Quarterly Financial", truncated) is truncated[0]
    assert matcher.resolve("uploads/budget.xlsx", prefixed) is prefixed[0]


def test_containment_tie_break_prefers_longest_common_prefix(matcher):
    docs = [doc("old plan notes.txt"), doc("plan v2 draft.txt")]
    assert matcher.resolve("plan", docs) is docs[1]


def test_containment_tie_break_then_closest_length(matcher):
    docs = [doc("plan appendix long.txt"), doc("plan b.txt")]
    assert matcher.resolve("plan", docs) is docs[1]


def test_containment_tie_break_then_input_order(matcher):
    docs = [doc("plan-a.txt", "first"), doc("plan-b.txt", "second")]
    assert matcher.resolve("plan", docs).id == "first"


def test_no_match_returns_none(matcher):
    assert matcher.resolve("missing.pdf", [doc("other.pdf")]) is None


@pytest.mark.parametrize("source", ["", "   ", "https://example.com/a.pdf"])
def test_degenerate_sources_return_none(matcher, source):
    assert matcher.resolve(source, [doc("a.pdf"), doc("")]) is None


def test_empty_document_list(matcher):
    assert matcher.resolve("a.pdf", []) is None


def test_url_citation_skips_matching(matcher):
    token = CitationToken(source_name="https://example.com/doc", location_hint="", quote="x", ordinal=0)
    # A document whose name contains the URL text must not be picked
    resolved = matcher.resolve_citation(token, [doc("example.com")])
    assert resolved.is_url_citation
    assert resolved.matched_document is None
    assert resolved.status == ResolutionStatus.URL


def test_unmatched_citation_status(matcher):
    token = CitationToken(source_name="ghost.pdf", location_hint="Page 1", quote="x", ordinal=3)
    resolved = matcher.resolve_citation(token, [doc("a.pdf")])
    assert resolved.status == ResolutionStatus.NOT_FOUND
    assert resolved.token.ordinal == 3


def test_resolve_all_keeps_order(matcher):
    docs = [doc("a.pdf"), doc("b.csv")]
    tokens = [
        CitationToken(source_name=name, location_hint="", quote="", ordinal=i)
        for i, name in enumerate(["b", "a.pdf", "zzz"])
    ]
    resolved = matcher.resolve_all(tokens, docs)
    assert [r.matched_document.name if r.matched_document else None for r in resolved] == ["b.csv", "a.pdf", None]


def test_name_helpers():
    assert strip_extension("report.v2.pdf") == "report.v2"
    assert strip_extension(".env") == ".env"
    assert strip_duplicate_suffix("invoice (12)") == "invoice"
    assert strip_duplicate_suffix("invoice(2)") == "invoice(2)"
    assert is_url_citation("http://x.org")
    assert not is_url_citation("httpfile.pdf")


@pytest.mark.parametrize(
    "name, kind",
    [
        ("a.PDF", DocumentKind.PDF),
        ("b.xlsx", DocumentKind.TABULAR),
        ("c.csv", DocumentKind.TABULAR),
        ("d.md", DocumentKind.PLAIN_TEXT),
        ("e.png", DocumentKind.OTHER),
        ("noext", DocumentKind.OTHER),
    ],
)
def test_kind_from_filename(name, kind):
    assert kind_from_filename(name) == kind
