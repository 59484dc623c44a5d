"""Wikidata entity search client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from checkai.config import SEARCH_TIMEOUT
from checkai.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

_API_URL = "https://www.wikidata.org/w/api.php"
_ENTITY_URL = "https://www.wikidata.org/wiki/{id}"

WIKIDATA_AUTHORITY = 0.75


@dataclass
class WikidataEntity:
    """A Wikidata item matched by label."""
    entity_id: str
    label: str
    description: Optional[str] = None

    @property
    def url(self) -> str:
        return _ENTITY_URL.format(id=self.entity_id)


class WikidataClient:
    """Label search over Wikidata items."""

    def __init__(self, session: requests.Session, language: str = "en", timeout: float = SEARCH_TIMEOUT):
        self.session = session
        self.language = language
        self.timeout = timeout

    def search(self, query: str, max_results: int = 5) -> list[WikidataEntity]:
        """Search Wikidata entities by label.

        Raises:
            UpstreamUnavailable: on network errors, non-2xx replies or a
                malformed payload.
        """
        params = {
            "action": "wbsearchentities",
            "language": self.language,
            "format": "json",
            "type": "item",
            "search": query,
            "limit": max_results,
        }
        try:
            resp = self.session.get(_API_URL, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
            results = data.get("search", [])
        except requests.exceptions.HTTPError as e:
            raise UpstreamUnavailable(f"Wikidata search failed (HTTP {e.response.status_code})") from e
        except (requests.RequestException, ValueError, AttributeError) as e:
            raise UpstreamUnavailable(f"Wikidata search failed: {e}") from e
        if not isinstance(results, list):
            raise UpstreamUnavailable("Wikidata search returned a malformed payload")

        entities = []
        for item in results:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            entities.append(WikidataEntity(
                entity_id=item["id"],
                label=item.get("label") or item["id"],
                description=item.get("description"),
            ))

        logger.info("Wikidata search '%s' returned %d results", query, len(entities))
        return entities
