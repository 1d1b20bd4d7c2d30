"""Evidence gathering: search, fetch, clean, and budget page excerpts.

Queries and fetches run one at a time, in order. The gatherer stops issuing
queries as soon as the document budget is spent, and the final corpus is the
longest in-order prefix that fits the total character budget.

Search failures propagate (hard). Fetch failures only shrink the corpus.
"""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass, field

import structlog
from bs4 import BeautifulSoup

from cartcompare.capabilities.fetch import PageFetcher
from cartcompare.capabilities.search import SearchClient
from cartcompare.config import settings
from cartcompare.models.contracts import EvidenceDocument

log = structlog.get_logger("cartcompare.evidence")

_NOISE_TAGS = ["script", "style", "noscript", "template"]
_WHITESPACE = re.compile(r"\s+")


@dataclass
class EvidenceBudget:
    """Accumulator threaded through the query/hit loop."""

    max_docs: int
    min_doc_chars: int
    page_char_cap: int
    doc_count: int = 0
    char_total: int = 0
    seen_urls: set[str] = field(default_factory=set)

    @property
    def exhausted(self) -> bool:
        return self.doc_count >= self.max_docs

    def accept(self, excerpt: str) -> bool:
        """Count a document if it is long enough. Returns whether it was taken."""
        if self.exhausted or len(excerpt) < self.min_doc_chars:
            return False
        self.doc_count += 1
        self.char_total += len(excerpt)
        return True


def is_http_url(url: str) -> bool:
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def clean_page_text(html: str, char_cap: int) -> str:
    """Strip scripts, styles and markup, collapse whitespace, truncate."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    text = _WHITESPACE.sub(" ", soup.get_text(separator=" ")).strip()
    return text[:char_cap]


def select_within_budget(
    docs: list[EvidenceDocument], total_char_cap: int
) -> list[EvidenceDocument]:
    """Keep documents in order while the running length fits the cap.

    Stops at the first document that would overflow; later (possibly
    shorter) documents are not considered.
    """
    selected: list[EvidenceDocument] = []
    running = 0
    for doc in docs:
        if running + len(doc.excerpt) > total_char_cap:
            break
        running += len(doc.excerpt)
        selected.append(doc)
    return selected


async def gather_evidence(
    queries: list[str],
    search_client: SearchClient,
    fetcher: PageFetcher,
    *,
    results_per_query: int | None = None,
    max_docs: int | None = None,
    min_doc_chars: int | None = None,
    page_char_cap: int | None = None,
    total_corpus_chars: int | None = None,
) -> list[EvidenceDocument]:
    """Run the queries and return the budgeted evidence corpus."""
    budget = EvidenceBudget(
        max_docs=settings.max_docs if max_docs is None else max_docs,
        min_doc_chars=settings.min_doc_chars if min_doc_chars is None else min_doc_chars,
        page_char_cap=settings.page_char_cap if page_char_cap is None else page_char_cap,
    )
    count = settings.search_results_per_query if results_per_query is None else results_per_query
    total_cap = settings.total_corpus_chars if total_corpus_chars is None else total_corpus_chars

    accepted: list[EvidenceDocument] = []
    queries_run = 0
    for query in queries:
        if budget.exhausted:
            break
        hits = await search_client.search(query, count)
        queries_run += 1
        for hit in hits:
            if budget.exhausted:
                break
            if not is_http_url(hit.url):
                log.debug("evidence_hit_skipped", reason="not_http", url=hit.url[:100])
                continue
            if hit.url in budget.seen_urls:
                continue
            budget.seen_urls.add(hit.url)

            html = await fetcher.fetch(hit.url)
            excerpt = clean_page_text(html or "", budget.page_char_cap)
            if budget.accept(excerpt):
                accepted.append(EvidenceDocument(url=hit.url, excerpt=excerpt))
            else:
                log.debug("evidence_page_too_short", url=hit.url[:100], chars=len(excerpt))

    corpus = select_within_budget(accepted, total_cap)
    log.info(
        "evidence_gathered",
        queries_run=queries_run,
        queries_total=len(queries),
        accepted=len(accepted),
        kept=len(corpus),
        chars=sum(len(d.excerpt) for d in corpus),
    )
    return corpus
