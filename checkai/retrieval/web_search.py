"""General web search with provider priority fallback (Google CSE, Brave)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from checkai.config import SEARCH_TIMEOUT
from checkai.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

_GOOGLE_URL = "https://www.googleapis.com/customsearch/v1"
_BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"

PROVIDERS = ("google", "brave")


@dataclass
class WebResult:
    """A general web search hit."""
    title: str
    url: str
    snippet: str = ""
    published_at: Optional[str] = None
    provider: str = ""


class WebSearchClient:
    """Searches the web through the primary provider, then the secondary one.

    The secondary provider is consulted when the primary fails or returns
    no results for a query.

    Args:
        session: HTTP session.
        google_api_key: Google Custom Search API key.
        google_cse_id: Google Custom Search engine id.
        brave_api_key: Brave Search subscription token.
        provider: Primary provider name; defaults to google when configured.
    """

    def __init__(
        self,
        session: requests.Session,
        google_api_key: Optional[str] = None,
        google_cse_id: Optional[str] = None,
        brave_api_key: Optional[str] = None,
        provider: Optional[str] = None,
        timeout: float = SEARCH_TIMEOUT,
    ):
        self.session = session
        self.google_api_key = google_api_key
        self.google_cse_id = google_cse_id
        self.brave_api_key = brave_api_key
        self.timeout = timeout
        if provider not in PROVIDERS:
            provider = "google" if self._configured("google") else "brave"
        self.provider = provider

    def _configured(self, provider: str) -> bool:
        if provider == "google":
            return bool(self.google_api_key and self.google_cse_id)
        if provider == "brave":
            return bool(self.brave_api_key)
        return False

    @property
    def configured(self) -> bool:
        return any(self._configured(p) for p in PROVIDERS)

    def provider_order(self) -> list[str]:
        secondary = [p for p in PROVIDERS if p != self.provider]
        return [p for p in [self.provider, *secondary] if self._configured(p)]

    def _google(self, query: str, max_results: int) -> list[WebResult]:
        params = {
            "key": self.google_api_key,
            "cx": self.google_cse_id,
            "q": query,
            "num": min(max_results, 10),
        }
        resp = self.session.get(_GOOGLE_URL, params=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()

        results = []
        for item in data.get("items", []) or []:
            url = (item.get("link") or "").strip()
            if not url:
                continue
            metatags = (item.get("pagemap") or {}).get("metatags") or [{}]
            results.append(WebResult(
                title=item.get("title") or "Untitled",
                url=url,
                snippet=item.get("snippet") or "",
                published_at=metatags[0].get("article:published_time") if metatags else None,
                provider="google",
            ))
        return results

    def _brave(self, query: str, max_results: int) -> list[WebResult]:
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self.brave_api_key,
        }
        params = {"q": query, "count": min(max_results, 20)}
        resp = self.session.get(_BRAVE_URL, params=params, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()

        results = []
        for item in (data.get("web") or {}).get("results", []) or []:
            url = (item.get("url") or "").strip()
            if not url:
                continue
            age = item.get("age")
            results.append(WebResult(
                title=item.get("title") or "Untitled",
                url=url,
                snippet=item.get("description") or "",
                published_at=age if isinstance(age, str) else None,
                provider="brave",
            ))
        return results

    def search(self, query: str, max_results: int = 10) -> list[WebResult]:
        """Search the web for a query.

        Raises:
            UpstreamUnavailable: if no provider is configured or every
                configured provider failed.
        """
        order = self.provider_order()
        if not order:
            raise UpstreamUnavailable("no web search provider configured")

        failures = []
        for provider in order:
            search_fn = self._google if provider == "google" else self._brave
            try:
                results = search_fn(query, max_results)
            except requests.exceptions.HTTPError as e:
                logger.warning("%s search failed (HTTP %s): %s", provider, e.response.status_code, e)
                failures.append(provider)
                continue
            except (requests.RequestException, ValueError, AttributeError, TypeError) as e:
                logger.warning("%s search failed: %s", provider, e)
                failures.append(provider)
                continue

            if results:
                logger.info("%s search '%s' returned %d results", provider, query, len(results))
                return results
            logger.debug("%s search '%s' returned no results", provider, query)

        if len(failures) == len(order):
            raise UpstreamUnavailable(f"all web search providers failed: {', '.join(failures)}")
        return []
