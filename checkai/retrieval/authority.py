"""Domain-reputation authority scores for evidence URLs."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import urlparse

from checkai.config import DOMAIN_BLOCKLIST, PREFERRED_DOMAINS
from checkai.models import EvidenceSource, clamp_authority

PREFERRED_SCORE = 0.95
GOV_SCORE = 0.9
EDU_SCORE = 0.85
ORG_SCORE = 0.75
BLOCKED_SCORE = 0.2
DEFAULT_SCORE = 0.6
UNPARSEABLE_SCORE = 0.5


def _hostname(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _matches(hostname: str, domain: str) -> bool:
    return hostname == domain or hostname.endswith("." + domain)


def score_domain(
    url: str,
    preferred: Sequence[str] = PREFERRED_DOMAINS,
    blocklist: Sequence[str] = DOMAIN_BLOCKLIST,
) -> float:
    """Authority in [0.2, 0.95] derived from the URL's host suffix."""
    hostname = _hostname(url)
    if not hostname:
        return UNPARSEABLE_SCORE
    if any(_matches(hostname, blocked) for blocked in blocklist):
        score = BLOCKED_SCORE
    elif any(_matches(hostname, domain) for domain in preferred):
        score = PREFERRED_SCORE
    elif hostname.endswith(".gov") or ".gov." in hostname:
        score = GOV_SCORE
    elif hostname.endswith(".edu") or ".edu." in hostname:
        score = EDU_SCORE
    elif hostname.endswith(".org"):
        score = ORG_SCORE
    else:
        score = DEFAULT_SCORE
    return clamp_authority(score)


def infer_source(url: str) -> EvidenceSource:
    """Tag encyclopedia URLs found by the web channel with their source."""
    hostname = _hostname(url)
    if _matches(hostname, "wikipedia.org"):
        return "wikipedia"
    if _matches(hostname, "wikidata.org"):
        return "wikidata"
    return "web"
