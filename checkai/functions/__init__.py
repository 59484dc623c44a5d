"""Functions (single-pass nodes) for the fact-checking pipeline.

Functions execute a fixed sequence of steps with at most one LLM call per
batch. They do NOT have a reasoning loop.

Modules:
    sentence_gate: Sentence → ALLOW / REVIEW / REJECT (pure heuristic, no I/O)
    claim_synthesizer: Gated sentences → Claims (one LLM call per batch)
"""

from checkai.functions import claim_synthesizer, sentence_gate

__all__ = ["claim_synthesizer", "sentence_gate"]
