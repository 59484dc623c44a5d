"""Retrieval clients for web, encyclopedic and knowledge-base evidence."""

from checkai.retrieval.web_search import WebResult, WebSearchClient
from checkai.retrieval.wikipedia import WikipediaClient, WikipediaPage
from checkai.retrieval.wikidata import WikidataClient, WikidataEntity
from checkai.retrieval.reachability import ReachabilityProber
from checkai.retrieval.scrape import PageScraper, pick_best_sentences
from checkai.retrieval.authority import score_domain
from checkai.retrieval.ranking import rank_by_relevance

__all__ = [
    "WebResult",
    "WebSearchClient",
    "WikipediaClient",
    "WikipediaPage",
    "WikidataClient",
    "WikidataEntity",
    "ReachabilityProber",
    "PageScraper",
    "pick_best_sentences",
    "score_domain",
    "rank_by_relevance",
]
