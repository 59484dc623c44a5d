"""Request/response operations exposed by the fact-checking core.

1. extract_claims: (sentences, spans, context?) -> list[Claim]
2. retrieve_evidence: (claim, context?, channels?, limit?) -> list[EvidenceCandidate]
3. verify: (claim, evidences, context?) -> [Verification]

Each operation validates caller input first; malformed input raises
checkai.errors.ValidationError. Backend failures never reach the caller.
All three are safe to retry with identical input.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import requests
from pydantic import ValidationError as PydanticValidationError

from checkai.agents.evidence_aggregator import DEFAULT_LIMIT, EvidenceAggregator
from checkai.agents.nli import EntailmentScorer
from checkai.agents.verification_fuser import VerificationFuser
from checkai.config import MAX_CONTEXT_LENGTH, Settings
from checkai.errors import ValidationError
from checkai.functions.claim_synthesizer import ClaimSynthesizer
from checkai.llm.structured_client import StructuredModelClient
from checkai.models import Claim, EvidenceCandidate, SourceSpan, Verification
from checkai.retrieval.reachability import ReachabilityProber
from checkai.retrieval.scrape import USER_AGENT, PageScraper
from checkai.retrieval.web_search import WebSearchClient
from checkai.retrieval.wikidata import WikidataClient
from checkai.retrieval.wikipedia import WikipediaClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def _validate_context(context: Any) -> Optional[str]:
    if context is None:
        return None
    if not isinstance(context, str):
        raise ValidationError("context must be a string")
    return context[:MAX_CONTEXT_LENGTH]


def _validate_sentences(sentences: Any, spans: Any) -> tuple[list[str], list[SourceSpan]]:
    if not isinstance(sentences, (list, tuple)) or not all(isinstance(s, str) for s in sentences):
        raise ValidationError("sentences must be a list of strings")
    if not isinstance(spans, (list, tuple)):
        raise ValidationError("spans must be a list")
    if len(sentences) != len(spans):
        raise ValidationError(
            f"sentences and spans differ in length ({len(sentences)} vs {len(spans)})"
        )
    try:
        parsed = [s if isinstance(s, SourceSpan) else SourceSpan.model_validate(s) for s in spans]
    except PydanticValidationError as e:
        raise ValidationError(f"invalid source span: {e}") from e
    return list(sentences), parsed


def _validate_claim(claim: Any) -> Claim:
    if isinstance(claim, Claim):
        return claim
    try:
        return Claim.model_validate(claim)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid claim: {e}") from e


def _validate_evidences(evidences: Any) -> list[EvidenceCandidate]:
    if evidences is None:
        return []
    if not isinstance(evidences, (list, tuple)):
        raise ValidationError("evidences must be a list")
    try:
        return [
            ev if isinstance(ev, EvidenceCandidate) else EvidenceCandidate.model_validate(ev)
            for ev in evidences
        ]
    except PydanticValidationError as e:
        raise ValidationError(f"invalid evidence: {e}") from e


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class FactCheckService:
    """The three core operations over explicitly constructed components."""

    def __init__(
        self,
        synthesizer: ClaimSynthesizer,
        aggregator: EvidenceAggregator,
        fuser: VerificationFuser,
        model_client: Optional[StructuredModelClient] = None,
        session: Optional[requests.Session] = None,
    ):
        self.synthesizer = synthesizer
        self.aggregator = aggregator
        self.fuser = fuser
        self.model_client = model_client
        self.session = session

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        model_client: Optional[StructuredModelClient] = None,
    ) -> "FactCheckService":
        """Wire every backend client from one Settings object."""
        settings = settings or Settings.from_env()
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": USER_AGENT})
        if model_client is None:
            model_client = StructuredModelClient(
                api_key=settings.anthropic_api_key,
                model=settings.claude_model,
            )

        aggregator = EvidenceAggregator(
            web=WebSearchClient(
                session,
                google_api_key=settings.google_api_key,
                google_cse_id=settings.google_cse_id,
                brave_api_key=settings.brave_api_key,
                provider=settings.web_search_provider,
            ),
            wikipedia=WikipediaClient(session),
            wikidata=WikidataClient(session),
            prober=ReachabilityProber(session),
            scraper=PageScraper(session),
            model_client=model_client,
            preferred_domains=settings.preferred_domains,
            domain_blocklist=settings.domain_blocklist,
        )
        scorer = EntailmentScorer(
            session=session,
            hf_api_key=settings.hf_api_key,
            hf_model=settings.hf_nli_model,
            model_client=model_client,
        )
        return cls(
            synthesizer=ClaimSynthesizer(model_client),
            aggregator=aggregator,
            fuser=VerificationFuser(model_client, scorer, settings.fusion),
            model_client=model_client,
            session=session,
        )

    def extract_claims(
        self,
        sentences: Sequence[str],
        spans: Sequence[Any],
        context: Optional[str] = None,
    ) -> list[Claim]:
        texts, parsed_spans = _validate_sentences(sentences, spans)
        return self.synthesizer.synthesize(texts, parsed_spans, _validate_context(context))

    def retrieve_evidence(
        self,
        claim: Any,
        context: Optional[str] = None,
        channels: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_LIMIT,
        enrich: bool = True,
        llm_expand: bool = False,
    ) -> list[EvidenceCandidate]:
        return self.aggregator.aggregate(
            _validate_claim(claim),
            context=_validate_context(context),
            channels=channels,
            limit=limit,
            enrich=enrich,
            llm_expand=llm_expand,
        )

    def verify(
        self,
        claim: Any,
        evidences: Sequence[Any],
        context: Optional[str] = None,
    ) -> list[Verification]:
        """Returns a singleton list holding the claim's verdict."""
        verdict = self.fuser.verify(
            _validate_claim(claim),
            _validate_evidences(evidences),
            _validate_context(context),
        )
        return [verdict]

    def close(self) -> None:
        """Abort in-flight network calls by closing the shared clients."""
        if self.session is not None:
            self.session.close()
        if self.model_client is not None:
            self.model_client.close()
