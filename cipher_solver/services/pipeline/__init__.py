"""
Pipeline services for the solving engine.

This module implements the ensemble flow that:
1. Classifies the cipher family from letter statistics
2. Runs every solver regardless of the classification
3. Deduplicates and shortlists the merged candidates
4. Optionally hands the shortlist to an external re-ranking collaborator
"""

from cipher_solver.services.pipeline.filter import CandidateFilter
from cipher_solver.services.pipeline.orchestrator import DecryptionOrchestrator, Reranker

__all__ = [
    "CandidateFilter",
    "DecryptionOrchestrator",
    "Reranker",
]
