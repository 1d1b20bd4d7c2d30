"""Tests for evidence gathering and budgeting.

All capabilities are in-memory fakes; no network access.
"""

from __future__ import annotations

import asyncio

import pytest

from cartcompare.capabilities.mock_stubs import FakePageFetcher, FakeSearchClient
from cartcompare.errors import UpstreamAuthError, UpstreamTransportError
from cartcompare.models.contracts import EvidenceDocument, SearchHit
from cartcompare.pipeline.evidence import (
    EvidenceBudget,
    clean_page_text,
    gather_evidence,
    is_http_url,
    select_within_budget,
)


def _page(word: str, repeat: int = 100) -> str:
    body = " ".join([word] * repeat)
    return f"<html><head><style>.x{{color:red}}</style></head><body><p>{body}</p></body></html>"


def _hit(url: str) -> SearchHit:
    return SearchHit(title="t", url=url, snippet="s", display_url=url)


def _gather(queries, search, fetcher, **kwargs):
    defaults = {
        "results_per_query": 5,
        "max_docs": 6,
        "min_doc_chars": 400,
        "page_char_cap": 8000,
        "total_corpus_chars": 100_000,
    }
    defaults.update(kwargs)
    return asyncio.run(gather_evidence(queries, search, fetcher, **defaults))


class TestCleanPageText:
    def test_strips_scripts_styles_and_markup(self):
        html = (
            "<html><head><script>var price = 1;</script><style>p {}</style></head>"
            "<body><h1>Milk</h1>\n\n<p>Tnuva   3%  <b>6.90</b></p><noscript>x</noscript></body></html>"
        )
        assert clean_page_text(html, 1000) == "Milk Tnuva 3% 6.90"

    def test_truncates_to_cap(self):
        assert len(clean_page_text(_page("milk"), 50)) == 50

    def test_empty_input(self):
        assert clean_page_text("", 100) == ""


class TestIsHttpUrl:
    @pytest.mark.parametrize(
        "url", ["https://shop.co.il/p/1", "http://shop.co.il"]
    )
    def test_accepts_http(self, url):
        assert is_http_url(url)

    @pytest.mark.parametrize(
        "url", ["ftp://shop.co.il/file", "javascript:alert(1)", "/relative/path", ""]
    )
    def test_rejects_non_http(self, url):
        assert not is_http_url(url)


class TestEvidenceBudget:
    def test_rejects_short_documents(self):
        budget = EvidenceBudget(max_docs=2, min_doc_chars=10, page_char_cap=100)
        assert not budget.accept("short")
        assert budget.doc_count == 0

    def test_counts_until_exhausted(self):
        budget = EvidenceBudget(max_docs=2, min_doc_chars=1, page_char_cap=100)
        assert budget.accept("aaa")
        assert budget.accept("bbbb")
        assert budget.exhausted
        assert not budget.accept("ccc")
        assert budget.doc_count == 2
        assert budget.char_total == 7


class TestSelectWithinBudget:
    def test_greedy_prefix_stops_at_first_overflow(self):
        docs = [
            EvidenceDocument(url="https://a/1", excerpt="a" * 40),
            EvidenceDocument(url="https://a/2", excerpt="b" * 40),
            EvidenceDocument(url="https://a/3", excerpt="c" * 5),
        ]
        selected = select_within_budget(docs, 60)
        # The short third doc would fit, but selection stops at the overflow
        assert [d.url for d in selected] == ["https://a/1"]

    def test_exact_fit_is_kept(self):
        docs = [
            EvidenceDocument(url="https://a/1", excerpt="a" * 30),
            EvidenceDocument(url="https://a/2", excerpt="b" * 30),
        ]
        assert len(select_within_budget(docs, 60)) == 2

    def test_cumulative_length_never_exceeds_cap(self):
        docs = [EvidenceDocument(url=f"https://a/{i}", excerpt="x" * (i * 7 + 3)) for i in range(20)]
        for cap in (0, 10, 57, 300, 10_000):
            selected = select_within_budget(docs, cap)
            assert sum(len(d.excerpt) for d in selected) <= cap
            assert selected == docs[: len(selected)]


class TestGatherEvidence:
    def test_collects_documents_in_order(self):
        search = FakeSearchClient(
            hits_by_query={
                "q1": [_hit("https://shop.a/p/1"), _hit("https://shop.b/p/2")],
                "q2": [_hit("https://shop.c/p/3")],
            }
        )
        fetcher = FakePageFetcher(
            {
                "https://shop.a/p/1": _page("alpha"),
                "https://shop.b/p/2": _page("bravo"),
                "https://shop.c/p/3": _page("charlie"),
            }
        )
        docs = _gather(["q1", "q2"], search, fetcher)
        assert [d.url for d in docs] == [
            "https://shop.a/p/1",
            "https://shop.b/p/2",
            "https://shop.c/p/3",
        ]
        assert docs[0].excerpt.startswith("alpha alpha")
        assert "color:red" not in docs[0].excerpt

    def test_skips_non_http_hits_without_fetching(self):
        search = FakeSearchClient(
            default_hits=[_hit("ftp://files.example/list"), _hit("https://shop.a/p/1")]
        )
        fetcher = FakePageFetcher({"https://shop.a/p/1": _page("alpha")})
        docs = _gather(["q1"], search, fetcher)
        assert [d.url for d in docs] == ["https://shop.a/p/1"]
        assert fetcher.fetched == ["https://shop.a/p/1"]

    def test_failed_and_short_pages_are_dropped(self):
        search = FakeSearchClient(
            default_hits=[
                _hit("https://shop.a/p/missing"),
                _hit("https://shop.a/p/short"),
                _hit("https://shop.a/p/good"),
            ]
        )
        fetcher = FakePageFetcher(
            {
                "https://shop.a/p/short": "<p>Milk 6.90</p>",
                "https://shop.a/p/good": _page("good"),
            }
        )
        docs = _gather(["q1"], search, fetcher)
        assert [d.url for d in docs] == ["https://shop.a/p/good"]
        assert all(len(d.excerpt) >= 400 for d in docs)

    def test_duplicate_urls_fetched_once(self):
        search = FakeSearchClient(default_hits=[_hit("https://shop.a/p/1")])
        fetcher = FakePageFetcher({"https://shop.a/p/1": _page("alpha")})
        docs = _gather(["q1", "q2", "q3"], search, fetcher)
        assert len(docs) == 1
        assert fetcher.fetched == ["https://shop.a/p/1"]

    def test_stops_querying_when_doc_budget_reached(self):
        search = FakeSearchClient(
            hits_by_query={
                "q1": [_hit("https://shop.a/p/1"), _hit("https://shop.a/p/2")],
                "q2": [_hit("https://shop.a/p/3")],
            }
        )
        fetcher = FakePageFetcher(
            {
                "https://shop.a/p/1": _page("one", repeat=200),
                "https://shop.a/p/2": _page("two", repeat=200),
                "https://shop.a/p/3": _page("three", repeat=200),
            }
        )
        docs = _gather(["q1", "q2"], search, fetcher, max_docs=2)
        assert len(docs) == 2
        assert [q for q, _ in search.calls] == ["q1"]

    def test_page_cap_applied(self):
        search = FakeSearchClient(default_hits=[_hit("https://shop.a/p/1")])
        fetcher = FakePageFetcher({"https://shop.a/p/1": _page("alpha", repeat=1000)})
        docs = _gather(["q1"], search, fetcher, page_char_cap=500)
        assert len(docs[0].excerpt) == 500

    def test_total_corpus_cap_applied(self):
        search = FakeSearchClient(
            default_hits=[_hit(f"https://shop.a/p/{i}") for i in range(4)]
        )
        fetcher = FakePageFetcher(
            {f"https://shop.a/p/{i}": _page("x", repeat=1000) for i in range(4)}
        )
        docs = _gather(["q1"], search, fetcher, page_char_cap=500, total_corpus_chars=1200)
        assert len(docs) == 2
        assert sum(len(d.excerpt) for d in docs) <= 1200

    def test_passes_result_count_to_search(self):
        search = FakeSearchClient()
        _gather(["q1"], search, FakePageFetcher(), results_per_query=3)
        assert search.calls == [("q1", 3)]

    def test_search_transport_error_aborts(self):
        error = UpstreamTransportError(
            "search request failed (500)", capability="search", status_code=500
        )
        search = FakeSearchClient(error=error)
        fetcher = FakePageFetcher()
        with pytest.raises(UpstreamTransportError):
            _gather(["q1", "q2"], search, fetcher)
        assert fetcher.fetched == []

    def test_search_auth_error_aborts(self):
        search = FakeSearchClient(
            error=UpstreamAuthError("denied", capability="search", status_code=401)
        )
        with pytest.raises(UpstreamAuthError):
            _gather(["q1"], search, FakePageFetcher())
