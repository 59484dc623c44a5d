"""Data model shared by every stage of the fact-checking core."""

from __future__ import annotations

import math
from typing import List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

NORMALIZED_SCHEMA_VERSION = 1

GateDecision = Literal["ALLOW", "REVIEW", "REJECT"]
EvidenceSource = Literal["web", "wikipedia", "wikidata"]
VerdictLabel = Literal["SUPPORTED", "REFUTED", "DISPUTED", "INSUFFICIENT"]
NumberQualifier = Literal["AT_LEAST", "AT_MOST", "APPROX", "GREATER", "LESS", "EQUAL"]

AUTHORITY_MIN = 0.2
AUTHORITY_MAX = 0.95
DEFAULT_AUTHORITY = 0.6


def _as_float(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def clamp(value: object, low: float, high: float, default: float) -> float:
    """Clamp any raw value into [low, high]; non-numeric input yields default."""
    number = _as_float(value)
    if number is None:
        return default
    return max(low, min(high, number))


def clamp_confidence(value: object, default: float = 0.0) -> float:
    return clamp(value, 0.0, 1.0, default)


def clamp_authority(value: object) -> float:
    return round(clamp(value, AUTHORITY_MIN, AUTHORITY_MAX, DEFAULT_AUTHORITY), 2)


def is_valid_url(url: object) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class SourceSpan(BaseModel):
    """Location of a sentence in the source document."""
    model_config = ConfigDict(frozen=True)

    paragraphIndex: int = Field(ge=0)
    sentenceIndex: int = Field(ge=0)

    @property
    def key(self) -> tuple[int, int]:
        return (self.paragraphIndex, self.sentenceIndex)


class ClaimNumber(BaseModel):
    """A quantity mentioned in a claim."""
    model_config = ConfigDict(frozen=True)

    key: Optional[str] = None
    value: float
    qualifier: Optional[NumberQualifier] = None
    unit: Optional[str] = None

    @field_validator("value")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("value must be finite")
        return v


class NormalizedClaim(BaseModel):
    """Subject/predicate/object form of a claim with explicit optional facets."""
    model_config = ConfigDict(frozen=True)

    schema_version: int = NORMALIZED_SCHEMA_VERSION
    subject: str = Field(min_length=1)
    predicate: str = Field(min_length=1)
    object: str = Field(min_length=1)
    time: Optional[str] = None
    unit: Optional[str] = None
    location: Optional[str] = None
    event: Optional[str] = None
    entities: Optional[List[str]] = None
    numbers: Optional[List[ClaimNumber]] = None
    qualifiers: Optional[List[str]] = None


class Claim(BaseModel):
    """A checkable assertion extracted from one sentence."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    text: str = Field(min_length=3)
    normalized: NormalizedClaim
    checkworthy: bool = True
    confidence: float = 0.5
    source_span: SourceSpan
    search_queries: Optional[List[str]] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: object) -> float:
        return clamp_confidence(v, default=0.5)


class EvidenceCandidate(BaseModel):
    """A retrieved source proposed as support or refutation for a claim."""
    id: str = Field(min_length=1)
    source: EvidenceSource
    url: str
    title: str = Field(min_length=1)
    quote: str = Field(min_length=1)
    published_at: Optional[str] = None
    authority: float = DEFAULT_AUTHORITY

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        if not is_valid_url(v):
            raise ValueError(f"not a valid http(s) URL: {v!r}")
        return v.strip()

    @field_validator("authority", mode="before")
    @classmethod
    def _clamp_authority(cls, v: object) -> float:
        return clamp_authority(v)


class Verification(BaseModel):
    """Final verdict for one claim."""
    claimId: str = Field(min_length=1)
    label: VerdictLabel
    confidence: float
    reason: str = Field(min_length=3)
    citations: List[str] = Field(default_factory=list, max_length=10)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: object) -> float:
        return clamp_confidence(v)


class GateResult(BaseModel):
    """Outcome of the sentence admissibility heuristic."""
    decision: GateDecision
    score: int
    signals: List[str] = []


class EntailmentScore(BaseModel):
    """How an evidence snippet relates to a claim; the three parts sum to 1."""
    entail: float
    contradict: float
    neutral: float
    uncertain: bool = False


class StageTrace(BaseModel):
    """Trace of a single pipeline stage."""
    stage: str
    duration_seconds: float
    cost_usd: float = 0.0
    input_summary: str
    output_summary: str
    success: bool = True
