"""Two-phase document pipeline.

Phase 1: SentenceGate + ClaimSynthesizer run once over the whole document.
Phase 2: a bounded pool of workers pulls claims from a shared queue; each
worker runs EvidenceAggregator then VerificationFuser for one claim at a
time and writes only that claim's entries.

Cancellation is cooperative: stop() sets a flag checked before each new
claim and closes the shared HTTP clients so in-flight calls abort.
Results completed before the stop are kept. The flag is cleared when the
next run() starts, and the closed clients reopen on their next request.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional, Sequence

from checkai.config import DEFAULT_WORKERS, MAX_WORKERS, Settings
from checkai.models import Claim, EvidenceCandidate, SourceSpan, StageTrace, Verification
from checkai.service import FactCheckService

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything produced for one document."""
    claims: list[Claim] = field(default_factory=list)
    evidence: dict[str, list[EvidenceCandidate]] = field(default_factory=dict)
    verifications: dict[str, Verification] = field(default_factory=dict)
    traces: list[StageTrace] = field(default_factory=list)
    stopped: bool = False

    @property
    def total_cost_usd(self) -> float:
        return round(sum(t.cost_usd for t in self.traces), 6)

    @property
    def total_duration_seconds(self) -> float:
        return round(sum(t.duration_seconds for t in self.traces), 2)


class FactCheckPipeline:
    """Runs claim extraction, then per-claim retrieval and verification.

    Args:
        service: The wired core operations.
        workers: Phase 2 concurrency, clamped to [1, 6].
        channels: Retrieval channels for every claim (None for the default).
        limit: Evidence limit per claim.
    """

    def __init__(
        self,
        service: FactCheckService,
        workers: int = DEFAULT_WORKERS,
        channels: Optional[Sequence[str]] = None,
        limit: int = 10,
        enrich: bool = True,
    ):
        self.service = service
        self.workers = max(1, min(MAX_WORKERS, workers))
        self.channels = channels
        self.limit = limit
        self.enrich = enrich
        self._stop = threading.Event()
        self._results_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        service: FactCheckService,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> "FactCheckPipeline":
        """Pipeline whose worker count comes from PIPELINE_WORKERS."""
        settings = settings or Settings.from_env()
        return cls(service, workers=settings.effective_workers, **kwargs)

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request cancellation and abort in-flight network calls."""
        if self._stop.is_set():
            return
        logger.info("Pipeline stop requested")
        self._stop.set()
        self.service.close()

    def _cost(self) -> float:
        client = self.service.model_client
        return client.total_cost_usd if client is not None else 0.0

    # -- phase 2 worker ------------------------------------------------------

    def _process_claim(self, claim: Claim, context: Optional[str], result: PipelineResult) -> None:
        evidence = self.service.retrieve_evidence(
            claim, context=context, channels=self.channels, limit=self.limit, enrich=self.enrich
        )
        with self._results_lock:
            result.evidence[claim.id] = evidence
        if self._stop.is_set():
            return
        verdict = self.service.verify(claim, evidence, context)[0]
        with self._results_lock:
            result.verifications[claim.id] = verdict

    def _worker(self, claims: "queue.Queue[Claim]", context: Optional[str], result: PipelineResult) -> int:
        processed = 0
        while not self._stop.is_set():
            try:
                claim = claims.get_nowait()
            except queue.Empty:
                break
            try:
                self._process_claim(claim, context, result)
                processed += 1
            except Exception:
                logger.exception("Claim %s failed", claim.id)
            finally:
                claims.task_done()
        return processed

    # -- entry point ---------------------------------------------------------

    def run(
        self,
        sentences: Sequence[str],
        spans: Sequence[SourceSpan],
        context: Optional[str] = None,
    ) -> PipelineResult:
        """Process one document.

        Raises:
            ValidationError: if sentences/spans are malformed.
        """
        self._stop.clear()
        result = PipelineResult()

        # Phase 1: claims
        start_time = time.time()
        cost_before = self._cost()
        result.claims = self.service.extract_claims(sentences, spans, context)
        result.traces.append(StageTrace(
            stage="claim_synthesis",
            duration_seconds=round(time.time() - start_time, 2),
            cost_usd=round(self._cost() - cost_before, 6),
            input_summary=f"{len(sentences)} sentences",
            output_summary=f"{len(result.claims)} claims",
        ))

        if not result.claims or self._stop.is_set():
            result.stopped = self._stop.is_set()
            return result

        # Phase 2: evidence + verdict per claim
        start_time = time.time()
        cost_before = self._cost()
        claims: "queue.Queue[Claim]" = queue.Queue()
        for claim in result.claims:
            claims.put(claim)

        workers = min(self.workers, len(result.claims))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="checkai-worker") as pool:
            futures = [pool.submit(self._worker, claims, context, result) for _ in range(workers)]
            processed = sum(f.result() for f in futures)

        result.stopped = self._stop.is_set()
        result.traces.append(StageTrace(
            stage="evidence_verification",
            duration_seconds=round(time.time() - start_time, 2),
            cost_usd=round(self._cost() - cost_before, 6),
            input_summary=f"{len(result.claims)} claims, {workers} workers",
            output_summary=(
                f"{len(result.verifications)} verdicts"
                + (" (stopped)" if result.stopped else "")
            ),
            success=processed == len(result.claims),
        ))
        logger.info(
            "Pipeline finished: %d claims, %d verdicts, $%.4f",
            len(result.claims), len(result.verifications), result.total_cost_usd,
        )
        return result
