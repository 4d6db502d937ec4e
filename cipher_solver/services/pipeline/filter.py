"""
Candidate filter for the ensemble aggregator.

Solvers frequently reach the same plaintext by different routes (a Caesar
shift and a Vigenère key of repeated letters, or a substitution mapping that
happens to be a rotation). This module collapses those duplicates and cuts
the merged list down to a shortlist.
"""

from dataclasses import dataclass, field

from cipher_solver.core.config import get_settings
from cipher_solver.models.schemas import CipherCandidate


@dataclass
class FilterResult:
    """Result of filtering candidates."""

    passed: list[CipherCandidate]
    duplicates_removed: int
    truncated: int
    fingerprints: list[str] = field(default_factory=list)


class CandidateFilter:
    """
    Deduplicates candidates by plaintext fingerprint and keeps the best.

    The fingerprint is the case-folded plaintext truncated to a fixed
    prefix. Among duplicates the highest-confidence candidate survives;
    ties keep the one seen first.
    """

    def __init__(self, fingerprint_length: int | None = None, shortlist_size: int | None = None):
        settings = get_settings()
        self.fingerprint_length = fingerprint_length or settings.fingerprint_length
        self.shortlist_size = shortlist_size or settings.shortlist_size

    def fingerprint(self, plaintext: str) -> str:
        return plaintext.lower()[:self.fingerprint_length]

    def filter(
        self,
        candidates: list[CipherCandidate],
        max_results: int | None = None,
    ) -> FilterResult:
        """
        Deduplicate, sort by confidence and truncate.

        Args:
            candidates: Candidates from every solver, in solver order
            max_results: Shortlist size; defaults to the configured size

        Returns:
            FilterResult with the shortlist and filter statistics
        """
        max_results = max_results or self.shortlist_size

        best_by_print: dict[str, CipherCandidate] = {}
        for candidate in candidates:
            key = self.fingerprint(candidate.plaintext)
            current = best_by_print.get(key)
            if current is None or candidate.confidence > current.confidence:
                best_by_print[key] = candidate

        unique = sorted(best_by_print.values(), key=lambda c: c.confidence, reverse=True)
        passed = unique[:max_results]

        return FilterResult(
            passed=passed,
            duplicates_removed=len(candidates) - len(unique),
            truncated=len(unique) - len(passed),
            fingerprints=[self.fingerprint(c.plaintext) for c in passed],
        )
