"""Evidence Aggregator — multi-channel retrieval for one claim.

Builds search queries for a claim, fans them out across the selected
retrieval channels, and turns the merged hits into ranked evidence:

1. Queries: model-supplied search_queries when usable, otherwise
   deterministic queries from the normalized claim (optionally expanded
   by the model).
2. Scatter: every (channel, query) pair runs in a thread pool. Each call
   yields a ChannelOutcome holding either evidence or the error.
3. Gather: errors are logged and discarded at the join point, so one
   failing channel never aborts the others.
4. Deduplicate by normalized URL, rank by token overlap with the claim,
   and drop unreachable web URLs while filling up to the limit.
5. Enrich the top results with the best-matching sentences from the page.

Channels:
- web: general web search (Google CSE / Brave with fallback)
- wikipedia: Wikipedia full-text search
- wikidata: Wikidata entity label search
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional, Sequence
from urllib.parse import urlparse, urlunparse

from checkai.errors import UpstreamUnavailable, ValidationError
from checkai.llm.structured_client import StructuredModelClient
from checkai.models import Claim, EvidenceCandidate, is_valid_url
from checkai.retrieval.authority import infer_source, score_domain
from checkai.retrieval.queries import (
    claim_queries,
    expand_queries,
    sanitize_queries,
    sanitize_text,
)
from checkai.retrieval.ranking import rank_by_relevance
from checkai.retrieval.reachability import ReachabilityProber
from checkai.retrieval.scrape import PageScraper
from checkai.retrieval.web_search import WebResult, WebSearchClient
from checkai.retrieval.wikidata import WIKIDATA_AUTHORITY, WikidataClient, WikidataEntity
from checkai.retrieval.wikipedia import WIKIPEDIA_AUTHORITY, WikipediaClient, WikipediaPage

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CHANNELS = ("web", "wikipedia", "wikidata")
DEFAULT_CHANNELS = ("web", "wikipedia")
DEFAULT_LIMIT = 10
MAX_LIMIT = 20
MAX_RESULTS_PER_QUERY = 10
ENRICH_TOP_K = 3
MAX_FANOUT_WORKERS = 6

_EVIDENCE_NAMESPACE = uuid.UUID("0f7b7d2a-3c55-4d0e-a1c8-5e9b2f6d4a90")


@dataclass
class ChannelOutcome:
    """Result of one (channel, query) call: evidence, or the error it raised."""
    channel: str
    query: str
    evidence: list[EvidenceCandidate] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_url(url: str) -> str:
    """Comparison key for a URL: lowercased scheme and host, no fragment or trailing slash."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return url.strip()
    path = parsed.path.rstrip("/")
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, ""))


def deduplicate_by_url(evidence: Sequence[EvidenceCandidate]) -> list[EvidenceCandidate]:
    """Keep the first candidate per normalized URL."""
    seen: set[str] = set()
    unique = []
    for ev in evidence:
        key = normalize_url(ev.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(ev)
    return unique


def _evidence_id(url: str) -> str:
    return str(uuid.uuid5(_EVIDENCE_NAMESPACE, url))


# ---------------------------------------------------------------------------
# Evidence conversion: one function per channel
# ---------------------------------------------------------------------------


def _web_to_evidence(
    results: list[WebResult],
    preferred: Sequence[str],
    blocklist: Sequence[str],
) -> list[EvidenceCandidate]:
    evidence = []
    for r in results:
        if not is_valid_url(r.url):
            continue
        evidence.append(EvidenceCandidate(
            id=_evidence_id(r.url),
            source=infer_source(r.url),
            url=r.url,
            title=r.title.strip() or "Untitled",
            quote=r.snippet.strip() or "No snippet",
            published_at=r.published_at,
            authority=score_domain(r.url, preferred, blocklist),
        ))
    return evidence


def _wikipedia_to_evidence(pages: list[WikipediaPage]) -> list[EvidenceCandidate]:
    return [
        EvidenceCandidate(
            id=_evidence_id(p.url),
            source="wikipedia",
            url=p.url,
            title=p.title,
            quote=p.snippet.strip() or p.title,
            published_at=p.timestamp,
            authority=WIKIPEDIA_AUTHORITY,
        )
        for p in pages
    ]


def _wikidata_to_evidence(entities: list[WikidataEntity]) -> list[EvidenceCandidate]:
    return [
        EvidenceCandidate(
            id=_evidence_id(e.url),
            source="wikidata",
            url=e.url,
            title=e.label,
            quote=(e.description or "").strip() or e.label,
            authority=WIKIDATA_AUTHORITY,
        )
        for e in entities
    ]


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class EvidenceAggregator:
    """Gathers ranked evidence for a claim from several channels.

    Args:
        web: Web search client (validated by reachability probing).
        wikipedia: Wikipedia client.
        wikidata: Wikidata client.
        prober: Reachability prober for web URLs; None disables probing.
        scraper: Page scraper for enrichment; None disables enrichment.
        model_client: Used only for optional LLM query expansion.
    """

    def __init__(
        self,
        web: Optional[WebSearchClient] = None,
        wikipedia: Optional[WikipediaClient] = None,
        wikidata: Optional[WikidataClient] = None,
        prober: Optional[ReachabilityProber] = None,
        scraper: Optional[PageScraper] = None,
        model_client: Optional[StructuredModelClient] = None,
        preferred_domains: Sequence[str] = (),
        domain_blocklist: Sequence[str] = (),
        max_workers: int = MAX_FANOUT_WORKERS,
    ):
        self.web = web
        self.wikipedia = wikipedia
        self.wikidata = wikidata
        self.prober = prober
        self.scraper = scraper
        self.model_client = model_client
        self.preferred_domains = tuple(preferred_domains)
        self.domain_blocklist = tuple(domain_blocklist)
        self.max_workers = max_workers

    # -- queries -------------------------------------------------------------

    def build_queries(self, claim: Claim, context: Optional[str] = None, llm_expand: bool = False) -> list[str]:
        """Queries for the web channel."""
        if llm_expand and not sanitize_queries(claim.search_queries or []) and self.model_client:
            expanded = expand_queries(claim.text, self.model_client)
            if expanded:
                return expanded
        return claim_queries(claim, context)

    @staticmethod
    def _channel_queries(channel: str, claim: Claim, web_queries: list[str]) -> list[str]:
        if channel == "web":
            return web_queries
        if channel == "wikidata":
            label = sanitize_text(claim.normalized.subject)
            return [label] if len(label) >= 2 else [sanitize_text(claim.text)]
        return [sanitize_text(claim.text)]

    # -- scatter / gather ----------------------------------------------------

    def _search_channel(self, channel: str, query: str) -> list[EvidenceCandidate]:
        if channel == "web":
            if self.web is None:
                raise UpstreamUnavailable("web channel not configured")
            return _web_to_evidence(
                self.web.search(query, max_results=MAX_RESULTS_PER_QUERY),
                self.preferred_domains,
                self.domain_blocklist,
            )
        if channel == "wikipedia":
            if self.wikipedia is None:
                raise UpstreamUnavailable("wikipedia channel not configured")
            return _wikipedia_to_evidence(self.wikipedia.search(query))
        if self.wikidata is None:
            raise UpstreamUnavailable("wikidata channel not configured")
        return _wikidata_to_evidence(self.wikidata.search(query))

    def _run_channel(self, channel: str, query: str) -> ChannelOutcome:
        try:
            return ChannelOutcome(channel, query, evidence=self._search_channel(channel, query))
        except UpstreamUnavailable as e:
            return ChannelOutcome(channel, query, error=e)
        except Exception as e:
            logger.exception("Unexpected %s channel error for '%s'", channel, query)
            return ChannelOutcome(channel, query, error=e)

    def gather(self, tasks: Sequence[tuple[str, str]]) -> list[ChannelOutcome]:
        """Run (channel, query) tasks in parallel; outcomes keep task order."""
        if not tasks:
            return []
        workers = max(1, min(self.max_workers, len(tasks)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._run_channel, channel, query) for channel, query in tasks]
            return [f.result() for f in futures]

    # -- post-processing -----------------------------------------------------

    def _needs_probe(self, ev: EvidenceCandidate, web_ids: set[str]) -> bool:
        return self.prober is not None and ev.id in web_ids

    def _accept_reachable(
        self,
        ranked: list[EvidenceCandidate],
        web_ids: set[str],
        limit: int,
    ) -> list[EvidenceCandidate]:
        accepted = []
        for ev in ranked:
            if len(accepted) >= limit:
                break
            if self._needs_probe(ev, web_ids) and not self.prober.is_reachable(ev.url):
                continue
            accepted.append(ev)
        return accepted

    def _enrich(self, claim_text: str, evidence: list[EvidenceCandidate]) -> list[EvidenceCandidate]:
        if self.scraper is None:
            return evidence
        enriched = list(evidence)
        for i, ev in enumerate(enriched[:ENRICH_TOP_K]):
            try:
                quote = self.scraper.best_quote(claim_text, ev.url)
            except Exception as e:
                logger.warning("Enrichment failed for %s: %s", ev.url, e)
                continue
            if quote:
                enriched[i] = ev.model_copy(update={"quote": quote})
        return enriched

    # -- entry point ---------------------------------------------------------

    def aggregate(
        self,
        claim: Claim,
        context: Optional[str] = None,
        channels: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_LIMIT,
        enrich: bool = True,
        llm_expand: bool = False,
    ) -> list[EvidenceCandidate]:
        """Retrieve ranked evidence for one claim.

        Args:
            claim: The claim to find evidence for.
            context: Optional document context for query building.
            channels: Subset of CHANNELS; defaults to web + wikipedia.
            limit: Maximum results (1-20).
            enrich: Replace top quotes with page-extracted sentences.
            llm_expand: Let the model propose queries when the claim has none.

        Returns:
            Evidence sorted by relevance. Empty when every channel failed.

        Raises:
            ValidationError: on an unknown channel or out-of-range limit.
        """
        selected = list(dict.fromkeys(channels)) if channels else list(DEFAULT_CHANNELS)
        unknown = [c for c in selected if c not in CHANNELS]
        if unknown:
            raise ValidationError(f"Unknown channels: {unknown}. Valid: {list(CHANNELS)}")
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be an integer between 1 and {MAX_LIMIT}")

        web_queries = self.build_queries(claim, context, llm_expand)
        tasks = [
            (channel, query)
            for channel in selected
            for query in self._channel_queries(channel, claim, web_queries)
        ]
        logger.debug("Claim %s: %d channel tasks", claim.id, len(tasks))

        outcomes = self.gather(tasks)

        merged: list[EvidenceCandidate] = []
        web_ids: set[str] = set()
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning(
                    "Channel %s failed for '%s': %s", outcome.channel, outcome.query, outcome.error
                )
                continue
            merged.extend(outcome.evidence)
            if outcome.channel == "web":
                web_ids.update(ev.id for ev in outcome.evidence)

        if outcomes and not any(o.ok for o in outcomes):
            logger.warning("All retrieval channels failed for claim %s", claim.id)
            return []

        unique = deduplicate_by_url(merged)
        ranked = rank_by_relevance(claim.text, unique, limit=len(unique))
        accepted = self._accept_reachable(ranked, web_ids, limit)
        if enrich:
            accepted = self._enrich(claim.text, accepted)

        logger.info(
            "Claim %s: %d hits, %d unique, %d returned", claim.id, len(merged), len(unique), len(accepted)
        )
        return accepted
