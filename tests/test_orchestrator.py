"""Tests for the ensemble aggregator and re-ranking hook."""

import asyncio
import threading

import pytest

from cipher_solver.core.exceptions import RerankError
from cipher_solver.models.schemas import (
    AnalysisStage,
    CipherCandidate,
    CipherType,
    RerankedEntry,
    RerankResponse,
)
from cipher_solver.services.engines.monoalphabetic.caesar import CaesarEngine
from cipher_solver.services.engines.registry import EngineRegistry
from cipher_solver.services.pipeline.filter import CandidateFilter
from cipher_solver.services.pipeline.orchestrator import DecryptionOrchestrator
from cipher_solver.services.preprocessing.normalizer import normalize

SECRET = "WKDW LV D VHFUHW PHVVDJH"


class StaticReranker:
    """Answers with a fixed ordering."""

    def __init__(self, *indices: int):
        self.indices = indices
        self.seen: list[CipherCandidate] = []
        self.ciphertext: str | None = None

    async def rerank(self, ciphertext, candidates):
        self.seen = candidates
        self.ciphertext = ciphertext
        return RerankResponse(entries=[
            RerankedEntry(candidate_index=i, external_score=1.0 - n / 10, reasoning=f"rank {n}")
            for n, i in enumerate(self.indices)
        ])


class MappingEditingReranker:
    """Scribbles over the first substitution mapping it is shown, then picks it."""

    async def rerank(self, ciphertext, candidates):
        index = next(i for i, c in enumerate(candidates) if c.mapping is not None)
        candidates[index].mapping["A"] = "!"
        candidates[index].mapping["B"] = "?"
        return RerankResponse(entries=[RerankedEntry(candidate_index=index)])


class FailingReranker:
    async def rerank(self, ciphertext, candidates):
        raise RerankError("service unavailable")


class SlowReranker:
    async def rerank(self, ciphertext, candidates):
        await asyncio.sleep(5)
        return RerankResponse(entries=[RerankedEntry(candidate_index=0)])


def make_candidate(plaintext: str, confidence: float, shift: int = 0) -> CipherCandidate:
    return CipherCandidate(
        cipher_type=CipherType.CAESAR,
        plaintext=plaintext,
        ngram_score=-5.0,
        confidence=confidence,
        formula=f"D(x) = (x - {shift}) mod 26",
        method="brute_force",
        shift=shift,
    )


class TestCandidateFilter:
    """Test suite for fingerprint deduplication."""

    def test_duplicates_keep_highest_confidence(self):
        candidates = [
            make_candidate("HELLOWORLD", 0.4, shift=1),
            make_candidate("helloworld", 0.9, shift=2),
            make_candidate("GOODBYE", 0.5, shift=3),
        ]

        result = CandidateFilter().filter(candidates)

        assert [c.shift for c in result.passed] == [2, 3]
        assert result.duplicates_removed == 1

    def test_fingerprint_uses_prefix(self):
        base = "A" * 100
        candidates = [make_candidate(base + "X", 0.3), make_candidate(base + "Y", 0.6, shift=4)]

        result = CandidateFilter(fingerprint_length=100).filter(candidates)

        assert len(result.passed) == 1
        assert result.passed[0].shift == 4

    def test_shortlist_truncates(self):
        candidates = [make_candidate(f"TEXT{chr(65 + i)}", i / 30, shift=i % 26) for i in range(20)]

        result = CandidateFilter(shortlist_size=15).filter(candidates)

        assert len(result.passed) == 15
        assert result.truncated == 5
        confidences = [c.confidence for c in result.passed]
        assert confidences == sorted(confidences, reverse=True)


class TestDecryptionOrchestrator:
    """Test suite for the aggregator."""

    @pytest.fixture
    def orchestrator(self):
        return DecryptionOrchestrator()

    def test_short_caesar_message(self, orchestrator):
        result = orchestrator.analyze(SECRET)

        assert result.detection.likely_type == CipherType.CAESAR
        assert "THATISASECRETMESSAGE" in [c.plaintext for c in result.candidates]
        assert len(result.candidates) <= 15

    def test_long_caesar_text_ranks_first(self, orchestrator, english_text):
        ciphertext = CaesarEngine().encrypt(english_text, 11)

        result = orchestrator.analyze(ciphertext)

        assert result.candidates[0].plaintext == normalize(english_text)

    def test_runs_every_solver(self, monkeypatch, english_text):
        registry = EngineRegistry()
        calls = []
        for engine in registry.get_all_engines():
            def recording(ciphertext, *args, _solve=engine.solve, _type=engine.cipher_type, **kwargs):
                calls.append(_type)
                return _solve(ciphertext, *args, **kwargs)
            monkeypatch.setattr(engine, "solve", recording)

        # Detected as caesar, yet every solver still runs
        orchestrator = DecryptionOrchestrator(registry=registry)
        result = orchestrator.analyze(CaesarEngine().encrypt(english_text, 11))

        assert result.detection.likely_type == CipherType.CAESAR
        assert calls == list(CipherType)

    def test_candidates_unique_and_sorted(self, orchestrator, english_text):
        result = orchestrator.analyze(CaesarEngine().encrypt(english_text, 2))

        prints = [c.plaintext.lower()[:100] for c in result.candidates]
        assert len(prints) == len(set(prints))
        confidences = [c.confidence for c in result.candidates]
        assert confidences == sorted(confidences, reverse=True)

    def test_empty_input(self, orchestrator):
        result = orchestrator.analyze("  123 ... ")

        assert result.candidates == []
        assert result.detection.likely_type == CipherType.VIGENERE
        assert result.detection.confidence == 0.0

    def test_progress_events(self, orchestrator):
        events = []

        orchestrator.analyze(SECRET, progress=events.append)

        assert events[0].stage == AnalysisStage.DETECTING
        assert events[-1].stage == AnalysisStage.COMPLETED
        assert events[-1].progress == 100
        percents = [e.progress for e in events]
        assert percents == sorted(percents)
        assert any(e.detection is not None for e in events)

    def test_cancel_before_solving(self, orchestrator):
        cancel = threading.Event()
        cancel.set()

        result = orchestrator.analyze(SECRET, cancel=cancel)

        assert result.candidates == []
        assert result.detection.likely_type == CipherType.CAESAR


class TestReranking:
    """Test suite for the external re-ranking hook."""

    @pytest.fixture
    def orchestrator(self):
        return DecryptionOrchestrator()

    def test_applies_ordering_and_annotations(self, orchestrator):
        local = orchestrator.analyze(SECRET)
        reranker = StaticReranker(2, 0)

        result = asyncio.run(orchestrator.analyze_and_rerank(SECRET, reranker=reranker))

        assert result.reranked
        assert result.warnings == []
        assert len(result.candidates) == 2
        assert result.candidates[0].plaintext == local.candidates[2].plaintext
        assert result.candidates[1].plaintext == local.candidates[0].plaintext
        assert result.candidates[0].external_score == 1.0
        assert result.candidates[1].external_reasoning == "rank 1"
        # Key material and confidence come from the solver
        assert result.candidates[0].shift == local.candidates[2].shift
        assert result.candidates[0].confidence == local.candidates[2].confidence
        assert len(reranker.seen) == len(local.candidates)

    def test_receives_original_ciphertext(self, orchestrator):
        reranker = StaticReranker(0)

        asyncio.run(orchestrator.analyze_and_rerank(SECRET, reranker=reranker))

        assert reranker.ciphertext == SECRET

    def test_reranker_cannot_edit_mappings(self):
        orchestrator = DecryptionOrchestrator(candidate_filter=CandidateFilter(shortlist_size=100))
        local = orchestrator.analyze(SECRET)
        index = next(i for i, c in enumerate(local.candidates) if c.mapping is not None)
        expected = dict(local.candidates[index].mapping)

        result = asyncio.run(
            orchestrator.analyze_and_rerank(SECRET, reranker=MappingEditingReranker())
        )

        assert result.reranked
        assert result.candidates[0].cipher_type == CipherType.MONO
        assert result.candidates[0].mapping == expected
        assert sorted(result.candidates[0].mapping.values()) == sorted(expected)

    def test_uses_configured_reranker(self):
        orchestrator = DecryptionOrchestrator(reranker=StaticReranker(0))

        result = asyncio.run(orchestrator.analyze_and_rerank(SECRET))

        assert result.reranked
        assert len(result.candidates) == 1

    @pytest.mark.parametrize("indices", [(0, 99), (1, 1), ()])
    def test_contract_violation_falls_back(self, orchestrator, indices):
        result = asyncio.run(
            orchestrator.analyze_and_rerank(SECRET, reranker=StaticReranker(*indices))
        )

        assert not result.reranked
        assert len(result.candidates) == 3
        assert result.warnings and "rejected" in result.warnings[0]

    def test_missing_reranker_falls_back(self, orchestrator):
        local = orchestrator.analyze(SECRET)

        result = asyncio.run(orchestrator.analyze_and_rerank(SECRET))

        assert result.candidates == local.candidates[:3]
        assert result.warnings == ["No re-ranking collaborator configured"]

    def test_failure_falls_back(self, orchestrator):
        result = asyncio.run(
            orchestrator.analyze_and_rerank(SECRET, reranker=FailingReranker())
        )

        assert len(result.candidates) == 3
        assert "service unavailable" in result.warnings[0]

    def test_timeout_falls_back(self, orchestrator):
        result = asyncio.run(
            orchestrator.analyze_and_rerank(SECRET, reranker=SlowReranker(), timeout=0.05)
        )

        assert len(result.candidates) == 3
        assert "timed out" in result.warnings[0]

    def test_empty_input_skips_reranker(self, orchestrator):
        reranker = StaticReranker(0)

        result = asyncio.run(orchestrator.analyze_and_rerank("", reranker=reranker))

        assert result.candidates == []
        assert result.warnings == []
        assert reranker.seen == []
