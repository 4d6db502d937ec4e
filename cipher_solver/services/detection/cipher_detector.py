import logging
from dataclasses import dataclass
from typing import ClassVar

from cipher_solver.models.schemas import CipherType, DetectionResult
from cipher_solver.services.analysis.statistics import StatisticalAnalyzer
from cipher_solver.services.preprocessing.normalizer import TextNormalizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionThresholds:
    """Thresholds for cipher family detection."""

    # Index of Coincidence thresholds
    ioc_caesar: float = 0.063    # At or above: frequencies preserved
    ioc_mono: float = 0.055      # Lower edge of scrambled monoalphabetic
    ioc_poly_low: float = 0.038  # Vigenère band
    ioc_poly_high: float = 0.052

    # Chi-squared (best rotation) against English
    chi_caesar: float = 60.0     # Below: English up to a shift
    chi_mono: float = 40.0       # Above: permuted alphabet
    chi_confirm: float = 30.0

    # Repeated trigrams; "few" grows with the text, floored at few_repeats
    few_repeats: int = 3
    few_repeats_per_letter: float = 0.25
    many_repeats: int = 3

    # Confidence bands
    max_confidence: float = 0.95
    confirmed_confidence: float = 0.99
    correlation_confirm: float = 0.9


class CipherDetector:
    """
    Rule-based cipher family detection.

    Combines Index of Coincidence, Friedman and Kasiski key-length
    estimates, chi-squared distance from English and repeated-trigram
    density into a single classification. This narrows down the likely
    family; the aggregator still runs every solver.
    """

    THRESHOLDS: ClassVar[DetectionThresholds] = DetectionThresholds()
    DEFAULT_KEY_LENGTHS: ClassVar[list[int]] = [2, 3, 4, 5, 6]
    MAX_KEY_LENGTHS: ClassVar[int] = 8

    FRIEDMAN_WEIGHT: ClassVar[int] = 2
    KASISKI_WEIGHT: ClassVar[int] = 3

    def __init__(self, analyzer: StatisticalAnalyzer | None = None):
        self.analyzer = analyzer or StatisticalAnalyzer()
        self.normalizer = TextNormalizer()

    def detect(self, text: str) -> DetectionResult:
        """
        Classify the cipher family of raw text.

        Args:
            text: Ciphertext as received (normalized internally)

        Returns:
            DetectionResult with the likely family, confidence and
            candidate key lengths
        """
        normalized = self.normalizer.normalize(text)

        if not normalized:
            return self.default_result()

        a = self.analyzer
        ioc = a.index_of_coincidence(normalized)
        positions = a.trigram_positions(normalized)
        friedman = a.friedman_key_lengths(normalized)
        kasiski = a.kasiski_key_lengths(normalized, positions)
        repeats = a.repeated_patterns(normalized, positions)
        chi_raw = a.chi_squared(normalized)
        chi, best_shift = a.rotated_chi_squared(normalized)
        correlation = a.frequency_correlation(normalized)

        key_lengths = self._merge_key_lengths(friedman, kasiski)

        likely_type, confidence, reasoning = self._classify(
            ioc=ioc,
            chi=chi,
            pattern_count=repeats.pattern_count,
            key_lengths=key_lengths,
            length=len(normalized),
            correlation=correlation,
        )
        reasoning.insert(
            0,
            f"{len(normalized)} letters, IoC={ioc:.4f}, chi-squared={chi_raw:.1f} "
            f"(best rotation {best_shift}: {chi:.1f}), "
            f"{repeats.pattern_count} repeated trigrams",
        )

        logger.debug(
            "Detected %s (confidence %.2f, IoC %.4f, key lengths %s)",
            likely_type.value, confidence, ioc, key_lengths,
        )

        return DetectionResult(
            likely_type=likely_type,
            index_of_coincidence=ioc,
            candidate_key_lengths=key_lengths or list(self.DEFAULT_KEY_LENGTHS),
            confidence=confidence,
            length=len(normalized),
            chi_squared=chi_raw,
            rotated_chi_squared=chi,
            repeated_trigrams=repeats.pattern_count,
            mean_repeat_distance=repeats.mean_distance,
            friedman_key_lengths=friedman,
            kasiski_key_lengths=kasiski,
            frequency_correlation=correlation,
            reasoning=reasoning,
        )

    def default_result(self) -> DetectionResult:
        """Classification used when there is nothing to analyze."""
        return DetectionResult(
            likely_type=CipherType.VIGENERE,
            index_of_coincidence=0.0,
            candidate_key_lengths=list(self.DEFAULT_KEY_LENGTHS),
            confidence=0.0,
            reasoning=["No letters to analyze"],
        )

    def _merge_key_lengths(self, friedman: list[int], kasiski: list[int]) -> list[int]:
        """Weighted vote of both estimators; Kasiski counts for more."""
        votes: dict[int, int] = {}
        for k in friedman:
            votes[k] = votes.get(k, 0) + self.FRIEDMAN_WEIGHT
        for k in kasiski:
            votes[k] = votes.get(k, 0) + self.KASISKI_WEIGHT

        ranked = sorted(votes.items(), key=lambda item: (-item[1], item[0]))
        return [k for k, _ in ranked[:self.MAX_KEY_LENGTHS]]

    def _classify(
        self,
        ioc: float,
        chi: float,
        pattern_count: int,
        key_lengths: list[int],
        correlation: float,
        length: int = 0,
    ) -> tuple[CipherType, float, list[str]]:
        """Apply the ordered threshold rules."""
        t = self.THRESHOLDS
        reasoning: list[str] = []
        few_repeats = max(t.few_repeats, t.few_repeats_per_letter * length)

        if ioc >= t.ioc_caesar and chi < t.chi_caesar and pattern_count <= few_repeats:
            likely_type = CipherType.CAESAR
            confidence = (ioc - 0.050) * 18 + (t.chi_caesar - chi) / 120
            reasoning.append("High IoC with English frequencies up to a shift and few repeats")
        elif (
            t.ioc_poly_low <= ioc <= t.ioc_poly_high
            and pattern_count >= t.many_repeats
            and key_lengths
        ):
            likely_type = CipherType.VIGENERE
            confidence = (0.070 - ioc) * 12 + pattern_count / 8
            reasoning.append(
                "Depressed IoC with repeated trigrams suggests a repeating key"
            )
        elif t.ioc_mono <= ioc < t.ioc_caesar and chi > t.chi_mono:
            likely_type = CipherType.MONO
            confidence = (ioc - 0.040) * 10 + min(chi / 120, 0.25)
            reasoning.append("Language-like IoC but frequencies match no rotation of English")
        elif ioc >= t.ioc_caesar and chi >= t.chi_caesar:
            likely_type = CipherType.MONO
            confidence = min(0.85, (ioc - 0.040) * 8)
            reasoning.append("High IoC with a permuted frequency profile")
        elif ioc >= t.ioc_mono:
            likely_type = CipherType.CAESAR if ioc >= t.ioc_caesar else CipherType.MONO
            confidence = min(0.75, ioc * 10)
            reasoning.append("Fallback on IoC alone: single alphabet")
        else:
            likely_type = CipherType.VIGENERE
            confidence = min(0.75, (0.070 - ioc) * 12)
            reasoning.append("Fallback on IoC alone: flattened frequencies")

        confidence = max(0.0, min(t.max_confidence, confidence))

        # The top band needs independent confirmation
        if (
            likely_type == CipherType.CAESAR
            and chi < t.chi_confirm
            and correlation >= t.correlation_confirm
        ):
            confidence = min(t.confirmed_confidence, confidence + 0.04)
            reasoning.append(
                f"Rank correlation {correlation:.2f} with English confirms a shift"
            )

        return likely_type, confidence, reasoning


def detect(text: str) -> DetectionResult:
    """Classify raw ciphertext with a default detector."""
    return CipherDetector().detect(text)
