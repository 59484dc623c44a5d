"""Page fetching and main-text extraction for snippet enrichment."""

from __future__ import annotations

import logging
import re
from typing import Optional

import requests
from bs4 import BeautifulSoup

from checkai.config import PAGE_FETCH_TIMEOUT
from checkai.errors import UpstreamUnavailable
from checkai.retrieval.ranking import overlap

logger = logging.getLogger(__name__)

USER_AGENT = "CheckAI/0.1 (fact-checking evidence fetcher)"

MIN_SENTENCE_CHARS = 20
MAX_SENTENCE_CHARS = 400

_NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside"]
_CONTENT_SELECTORS = [
    "article",
    "main",
    "[itemprop=articleBody]",
    "#content",
]
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|(?<=[。！？])")


def extract_main_text(html: str) -> str:
    """Visible main text of an HTML page.

    Scripts, styles and navigation blocks are removed; the longest of the
    article/main-like containers is preferred over the whole document.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for element in soup(_NOISE_TAGS):
        element.decompose()

    candidates = []
    for selector in _CONTENT_SELECTORS:
        for node in soup.select(selector):
            text = node.get_text(" ", strip=True)
            if text:
                candidates.append(text)

    if candidates:
        text = max(candidates, key=len)
    else:
        root = soup.body or soup
        text = root.get_text(" ", strip=True)
    return re.sub(r"\s+", " ", text).strip()


def split_sentences(text: str) -> list[str]:
    """Sentences of 20-400 characters."""
    parts = (s.strip() for s in _SENTENCE_BOUNDARY.split(text or ""))
    return [s for s in parts if MIN_SENTENCE_CHARS <= len(s) <= MAX_SENTENCE_CHARS]


def pick_best_sentences(claim_text: str, text: str, limit: int = 2) -> list[str]:
    """The ``limit`` sentences of text that overlap most with the claim."""
    sentences = split_sentences(text)
    scored = [(overlap(claim_text, s), s) for s in sentences]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [s for score, s in scored[:limit] if score > 0]


class PageScraper:
    """Fetches pages and extracts their main text."""

    def __init__(self, session: requests.Session, timeout: float = PAGE_FETCH_TIMEOUT):
        self.session = session
        self.timeout = timeout

    def fetch_main_text(self, url: str) -> str:
        """Main text of the page at url.

        Raises:
            UpstreamUnavailable: if the page cannot be fetched.
        """
        try:
            resp = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"page fetch failed for {url}: {e}") from e
        return extract_main_text(resp.text)

    def best_quote(self, claim_text: str, url: str, limit: int = 2) -> Optional[str]:
        """Best-matching sentences from the page joined into a quote, or None."""
        try:
            text = self.fetch_main_text(url)
        except UpstreamUnavailable as e:
            logger.warning("Enrichment skipped: %s", e)
            return None
        sentences = pick_best_sentences(claim_text, text, limit=limit)
        return " ".join(sentences) if sentences else None
