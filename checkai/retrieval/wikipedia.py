"""Wikipedia search client (MediaWiki action API)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import requests

from checkai.config import SEARCH_TIMEOUT
from checkai.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

_API_URL = "https://{lang}.wikipedia.org/w/api.php"
_PAGE_URL = "https://{lang}.wikipedia.org/wiki/{title}"
_TAG = re.compile(r"<[^>]+>")

WIKIPEDIA_AUTHORITY = 0.8


@dataclass
class WikipediaPage:
    """A Wikipedia search hit."""
    title: str
    snippet: str
    lang: str = "en"
    timestamp: Optional[str] = None

    @property
    def url(self) -> str:
        return _PAGE_URL.format(lang=self.lang, title=quote(self.title.replace(" ", "_")))


class WikipediaClient:
    """Full-text search over one Wikipedia language edition."""

    def __init__(self, session: requests.Session, lang: str = "en", timeout: float = SEARCH_TIMEOUT):
        self.session = session
        self.lang = lang
        self.timeout = timeout

    def search(self, query: str, max_results: int = 5) -> list[WikipediaPage]:
        """Search Wikipedia.

        Raises:
            UpstreamUnavailable: on network errors, non-2xx replies or a
                malformed payload.
        """
        params = {
            "action": "query",
            "list": "search",
            "format": "json",
            "utf8": "1",
            "srsearch": query,
            "srlimit": max_results,
        }
        try:
            resp = self.session.get(_API_URL.format(lang=self.lang), params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
            hits = data["query"]["search"]
        except requests.exceptions.HTTPError as e:
            raise UpstreamUnavailable(f"Wikipedia search failed (HTTP {e.response.status_code})") from e
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            raise UpstreamUnavailable(f"Wikipedia search failed: {e}") from e

        pages = []
        for hit in hits:
            title = hit.get("title") if isinstance(hit, dict) else None
            if not title:
                continue
            pages.append(WikipediaPage(
                title=title,
                snippet=_TAG.sub("", hit.get("snippet") or ""),
                lang=self.lang,
                timestamp=hit.get("timestamp"),
            ))

        logger.info("Wikipedia search '%s' returned %d results", query, len(pages))
        return pages
