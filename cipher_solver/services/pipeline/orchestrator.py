"""
Decryption orchestrator - the ensemble aggregator of the solving engine.

This module implements the core decryption flow:
1. Normalize and classify the ciphertext
2. Run every solver, whatever the detected family
3. Deduplicate and shortlist the merged candidates
4. Optionally hand the shortlist to an external re-ranking collaborator
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Protocol

from cipher_solver.core.config import get_settings
from cipher_solver.core.exceptions import RerankContractError, RerankError
from cipher_solver.models.schemas import (
    AnalysisResult,
    AnalysisStage,
    CipherCandidate,
    DetectionResult,
    ProgressEvent,
    RerankResponse,
)
from cipher_solver.services.detection.cipher_detector import CipherDetector
from cipher_solver.services.engines.registry import EngineRegistry
from cipher_solver.services.pipeline.filter import CandidateFilter
from cipher_solver.services.preprocessing.normalizer import normalize

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class Reranker(Protocol):
    """External collaborator that orders a shortlist by plausibility."""

    async def rerank(
        self,
        ciphertext: str,
        candidates: list[CipherCandidate],
    ) -> RerankResponse:
        ...


class DecryptionOrchestrator:
    """
    Orchestrates the decryption process across all cipher engines.

    Every registered solver runs on every request so that a wrong
    classification never hides the right decryption. The detector result
    only feeds key-length hints and reporting.
    """

    SOLVE_PROGRESS_START = 20
    SOLVE_PROGRESS_END = 85

    def __init__(
        self,
        registry: EngineRegistry | None = None,
        detector: CipherDetector | None = None,
        candidate_filter: CandidateFilter | None = None,
        reranker: Reranker | None = None,
    ):
        self.registry = registry or EngineRegistry()
        self.detector = detector or CipherDetector()
        self.filter = candidate_filter or CandidateFilter()
        self.reranker = reranker

    def analyze(
        self,
        ciphertext: str,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> AnalysisResult:
        """
        Run detection and all solvers, returning the deduplicated shortlist.

        Args:
            ciphertext: Raw ciphertext (normalized internally)
            progress: Optional callback receiving stage notifications
            cancel: Advisory cancellation; solvers return partial lists

        Returns:
            AnalysisResult with the detection and up to ``shortlist_size``
            candidates sorted by confidence
        """
        normalized = normalize(ciphertext)
        self._emit(progress, AnalysisStage.DETECTING, 0, "Analyzing letter statistics")

        if not normalized:
            detection = self.detector.default_result()
            self._emit(progress, AnalysisStage.COMPLETED, 100, "No letters to analyze", detection)
            return AnalysisResult(detection=detection, candidates=[])

        detection = self.detector.detect(normalized)
        self._emit(
            progress,
            AnalysisStage.DETECTING,
            self.SOLVE_PROGRESS_START - 5,
            f"Likely {detection.likely_type.value} cipher",
            detection,
        )

        candidates: list[CipherCandidate] = []
        engines = self.registry.get_all_engines()
        span = self.SOLVE_PROGRESS_END - self.SOLVE_PROGRESS_START
        for i, engine in enumerate(engines):
            if cancel is not None and cancel.is_set():
                logger.debug("Analysis cancelled before %s", engine.name)
                break
            self._emit(
                progress,
                AnalysisStage.SOLVING,
                self.SOLVE_PROGRESS_START + span * i // len(engines),
                f"Running {engine.name}",
            )
            found = engine.solve(normalized, detection=detection, cancel_event=cancel)
            logger.debug("%s produced %d candidates", engine.name, len(found))
            candidates.extend(found)

        self._emit(progress, AnalysisStage.RANKING, 90, "Ranking candidates")
        result = self.filter.filter(candidates)
        logger.debug(
            "Kept %d of %d candidates (%d duplicates)",
            len(result.passed), len(candidates), result.duplicates_removed,
        )

        self._emit(progress, AnalysisStage.COMPLETED, 100, "Analysis complete")
        return AnalysisResult(detection=detection, candidates=result.passed)

    async def analyze_and_rerank(
        self,
        ciphertext: str,
        reranker: Reranker | None = None,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> AnalysisResult:
        """
        Analyze, then let the external collaborator order the shortlist.

        The collaborator may only reorder, truncate and annotate. When it
        is missing, fails, times out or answers with indices that do not
        refer to the shortlist, the local top candidates are returned with
        a warning instead.
        """
        settings = get_settings()
        reranker = reranker or self.reranker
        timeout = settings.rerank_timeout_seconds if timeout is None else timeout

        result = await asyncio.to_thread(self.analyze, ciphertext, progress, cancel)
        if not result.candidates:
            return result

        if reranker is None:
            return self._fallback(result, "No re-ranking collaborator configured")

        # The collaborator only ever sees copies of the shortlist
        submitted = [c.model_copy(deep=True) for c in result.candidates]
        try:
            response = await asyncio.wait_for(
                reranker.rerank(ciphertext, submitted),
                timeout=timeout,
            )
            ranked = self.apply_ranking(result.candidates, response)
        except asyncio.TimeoutError:
            return self._fallback(result, f"Re-ranking timed out after {timeout:g}s")
        except RerankContractError as e:
            return self._fallback(result, f"Re-ranking response rejected: {e.message}")
        except RerankError as e:
            return self._fallback(result, f"Re-ranking failed: {e.message}")
        except Exception as e:
            # Third-party collaborators may raise anything
            return self._fallback(result, f"Re-ranking failed: {e}")

        return result.model_copy(update={"candidates": ranked, "reranked": True})

    def apply_ranking(
        self,
        shortlist: list[CipherCandidate],
        response: RerankResponse,
    ) -> list[CipherCandidate]:
        """
        Reorder the shortlist as the response says, annotating copies.

        Raises:
            RerankContractError: If the response is empty or refers to
                indices outside the shortlist or repeats one
        """
        if not response.entries:
            raise RerankContractError("Empty ranking")

        seen: set[int] = set()
        ranked = []
        for entry in response.entries:
            index = entry.candidate_index
            if index >= len(shortlist):
                raise RerankContractError(
                    f"Candidate index {index} out of range",
                    {"index": index, "shortlist_size": len(shortlist)},
                )
            if index in seen:
                raise RerankContractError(f"Candidate index {index} repeated", {"index": index})
            seen.add(index)

            ranked.append(shortlist[index].model_copy(
                update={
                    "external_score": entry.external_score,
                    "external_reasoning": entry.reasoning,
                },
                deep=True,
            ))

        return ranked

    def _fallback(self, result: AnalysisResult, warning: str) -> AnalysisResult:
        logger.warning("%s; using local ranking", warning)
        size = get_settings().fallback_size
        return result.model_copy(update={
            "candidates": result.candidates[:size],
            "warnings": [*result.warnings, warning],
        })

    @staticmethod
    def _emit(
        progress: ProgressCallback | None,
        stage: AnalysisStage,
        percent: int,
        message: str,
        detection: DetectionResult | None = None,
    ) -> None:
        if progress is not None:
            progress(ProgressEvent(stage=stage, progress=percent, message=message, detection=detection))
