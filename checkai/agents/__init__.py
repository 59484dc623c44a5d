"""Agents (multi-step components) for the fact-checking pipeline.

Agents combine several backends and choose between strategies at runtime.
Each one absorbs backend failures and always returns a usable result.

Modules:
    evidence_aggregator: Claim → ranked evidence (scatter/gather over channels)
    nli: Claim + evidence snippet → entailment triple (classifier → model → uniform)
    verification_fuser: Claim + evidence → verdict (model verdict or weighted fusion)
"""

from checkai.agents import evidence_aggregator, nli, verification_fuser

__all__ = ["evidence_aggregator", "nli", "verification_fuser"]
