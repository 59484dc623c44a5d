"""Configuration and settings for the CheckAI fact-checking core."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# API Keys
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GOOGLE_CSE_ID = os.getenv("GOOGLE_CSE_ID")
BRAVE_API_KEY = os.getenv("BRAVE_API_KEY")
HF_API_KEY = os.getenv("HF_API_KEY")

# Model configs
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")
HF_NLI_MODEL = os.getenv("HF_NLI_MODEL", "roberta-large-mnli")
WEB_SEARCH_PROVIDER = os.getenv("WEB_SEARCH_PROVIDER")

# Timeouts (seconds)
SEARCH_TIMEOUT = 15
PAGE_FETCH_TIMEOUT = 10
REACHABILITY_TIMEOUT = 2.5
MODEL_TIMEOUT = 60

# Pipeline
DEFAULT_WORKERS = 2
MAX_WORKERS = 6
PIPELINE_WORKERS = _env_int("PIPELINE_WORKERS", DEFAULT_WORKERS)
MAX_CONTEXT_LENGTH = 6000

# Domain reputation
PREFERRED_DOMAINS = [
    "wikipedia.org",
    "wikidata.org",
    "reuters.com",
    "apnews.com",
    "bbc.com",
    "nytimes.com",
    "un.org",
    "who.int",
    "worldbank.org",
    "imf.org",
]

DOMAIN_BLOCKLIST = ["baidu.com", "baijiahao.baidu.com", "toutiao.com"]


@dataclass(frozen=True)
class FusionPolicy:
    """Thresholds and blend weights for evidence fusion.

    None of these carry a validated statistical meaning; they are policy
    knobs and may be tuned per deployment.
    """
    support_threshold: float = 0.5
    refute_threshold: float = 0.5
    dominance_ratio: float = 1.2
    dispute_floor: float = 0.35
    confidence_base_weight: float = 0.7
    coverage_divisor: float = 6.0

    @classmethod
    def from_env(cls) -> "FusionPolicy":
        return cls(
            support_threshold=_env_float("SUPPORT_THRESHOLD", 0.5),
            refute_threshold=_env_float("REFUTE_THRESHOLD", 0.5),
            dominance_ratio=_env_float("DOMINANCE_RATIO", 1.2),
            dispute_floor=_env_float("DISPUTE_FLOOR", 0.35),
            confidence_base_weight=_env_float("CONFIDENCE_BASE_WEIGHT", 0.7),
            coverage_divisor=_env_float("COVERAGE_DIVISOR", 6.0),
        )


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once at start-up and passed down."""
    anthropic_api_key: Optional[str] = None
    claude_model: str = "claude-sonnet-4-20250514"
    google_api_key: Optional[str] = None
    google_cse_id: Optional[str] = None
    brave_api_key: Optional[str] = None
    web_search_provider: Optional[str] = None
    hf_api_key: Optional[str] = None
    hf_nli_model: str = "roberta-large-mnli"
    workers: int = DEFAULT_WORKERS
    fusion: FusionPolicy = field(default_factory=FusionPolicy)
    preferred_domains: tuple[str, ...] = tuple(PREFERRED_DOMAINS)
    domain_blocklist: tuple[str, ...] = tuple(DOMAIN_BLOCKLIST)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            anthropic_api_key=ANTHROPIC_API_KEY,
            claude_model=CLAUDE_MODEL,
            google_api_key=GOOGLE_API_KEY,
            google_cse_id=GOOGLE_CSE_ID,
            brave_api_key=BRAVE_API_KEY,
            web_search_provider=WEB_SEARCH_PROVIDER,
            hf_api_key=HF_API_KEY,
            hf_nli_model=HF_NLI_MODEL,
            workers=PIPELINE_WORKERS,
            fusion=FusionPolicy.from_env(),
        )

    @property
    def effective_workers(self) -> int:
        return max(1, min(MAX_WORKERS, self.workers))
