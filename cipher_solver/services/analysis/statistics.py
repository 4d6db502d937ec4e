import math
import string
from collections import Counter
from dataclasses import dataclass
from typing import ClassVar

from scipy import stats

from cipher_solver.services.preprocessing.normalizer import normalize


@dataclass(frozen=True)
class RepeatStats:
    """Repeated-trigram density of a text."""

    pattern_count: int
    mean_distance: float


def _english_probs(freqs: dict[str, float], alphabet: str) -> list[float]:
    total = sum(freqs.values())
    return [freqs[c] / total for c in alphabet]


class StatisticalAnalyzer:
    """
    Classical cryptanalytic statistics over the 26-letter alphabet.

    Every public method accepts raw text and normalizes it first, so callers
    can pass ciphertext as received. Letter counts are kept in fixed
    26-slot lists indexed A=0 .. Z=25.

    - Index of Coincidence (IOC)
    - Chi-squared against English, plain and minimized over rotations
    - Friedman key-length estimate
    - Kasiski examination over repeated trigrams
    - Frequency-shape rank correlation
    """

    ALPHABET: ClassVar[str] = string.ascii_uppercase

    IOC_ENGLISH: ClassVar[float] = 0.0667
    IOC_RANDOM: ClassVar[float] = 0.0385

    MIN_KEY_LENGTH: ClassVar[int] = 2
    MAX_KEY_LENGTH: ClassVar[int] = 20
    MAX_FRIEDMAN_CANDIDATES: ClassVar[int] = 8
    MAX_KASISKI_CANDIDATES: ClassVar[int] = 5
    # Occurrences of one trigram paired up by Kasiski; bounds the pair loop
    MAX_KASISKI_OCCURRENCES: ClassVar[int] = 50
    SHORT_KEY_FALLBACK: ClassVar[tuple[int, ...]] = (2, 3, 4, 5, 6)

    # English letter frequencies for chi-squared testing
    ENGLISH_FREQ: ClassVar[dict[str, float]] = {
        "E": 12.70, "T": 9.06, "A": 8.17, "O": 7.51, "I": 6.97,
        "N": 6.75, "S": 6.33, "H": 6.09, "R": 5.99, "D": 4.25,
        "L": 4.03, "C": 2.78, "U": 2.76, "M": 2.41, "W": 2.36,
        "F": 2.23, "G": 2.02, "Y": 1.97, "P": 1.93, "B": 1.29,
        "V": 0.98, "K": 0.77, "J": 0.15, "X": 0.15, "Q": 0.10,
        "Z": 0.07,
    }

    # Probabilities in alphabet order, normalized to sum to 1
    ENGLISH_PROBS: ClassVar[list[float]] = _english_probs(ENGLISH_FREQ, ALPHABET)

    def letter_counts(self, text: str) -> list[int]:
        """Count each letter of the normalized text, indexed A=0 .. Z=25."""
        counts = [0] * 26
        for char in normalize(text):
            counts[ord(char) - 65] += 1
        return counts

    def index_of_coincidence(self, text: str) -> float:
        """
        Calculate Index of Coincidence.

        IOC measures how likely two randomly chosen letters are the same.
        - English text: ~0.0667
        - Random text: ~0.0385 (1/26)

        Returns exactly 0.0 for texts of one letter or fewer.
        """
        counts = self.letter_counts(text)
        return self._ioc_from_counts(counts)

    def chi_squared(self, text: str) -> float:
        """
        Calculate chi-squared statistic against English frequencies.

        Lower values indicate closer match to English.
        """
        return self._chi_from_counts(self.letter_counts(text))

    def rotated_chi_squared(self, text: str) -> tuple[float, int]:
        """
        Minimum chi-squared over the 26 Caesar rotations.

        A shift cipher keeps the frequency profile up to rotation, so its
        best rotation fits English about as well as the plaintext does.

        Returns:
            Tuple of (minimum chi-squared, shift that achieves it)
        """
        counts = self.letter_counts(text)
        best_chi = math.inf
        best_shift = 0

        for shift in range(26):
            rotated = [counts[(i + shift) % 26] for i in range(26)]
            chi = self._chi_from_counts(rotated)
            if chi < best_chi:
                best_chi = chi
                best_shift = shift

        return best_chi, best_shift

    def frequency_correlation(self, text: str) -> float:
        """
        Best Spearman rank correlation with English over all rotations.

        Near 1 when the letter frequencies follow English up to a shift.
        """
        counts = self.letter_counts(text)
        if len(set(counts)) < 2:
            return 0.0

        best = 0.0
        for shift in range(26):
            rotated = [counts[(i + shift) % 26] for i in range(26)]
            corr, _ = stats.spearmanr(rotated, self.ENGLISH_PROBS)
            if not math.isnan(corr) and corr > best:
                best = float(corr)

        return best

    def friedman_key_lengths(self, text: str) -> list[int]:
        """
        Estimate Vigenère key lengths with the Friedman test.

        Uses m = (kp - kr) / (IC - kr) and returns a window of integers
        around round(m). Small estimates also pull in the usual short key
        lengths.
        """
        ioc = self.index_of_coincidence(text)
        kp, kr = self.IOC_ENGLISH, self.IOC_RANDOM

        if ioc <= kr:
            return []

        estimate = (kp - kr) / (ioc - kr)
        base = math.floor(estimate + 0.5)

        lo = max(self.MIN_KEY_LENGTH, base - 3)
        hi = min(self.MAX_KEY_LENGTH, base + 3)
        candidates = list(range(lo, hi + 1))

        if base < 5:
            for k in self.SHORT_KEY_FALLBACK:
                if k not in candidates:
                    candidates.append(k)

        return [
            k for k in candidates
            if self.MIN_KEY_LENGTH <= k <= self.MAX_KEY_LENGTH
        ][:self.MAX_FRIEDMAN_CANDIDATES]

    def trigram_positions(self, text: str) -> dict[str, list[int]]:
        """Index every trigram of the normalized text by start position."""
        text = normalize(text)
        positions: dict[str, list[int]] = {}
        for i in range(len(text) - 2):
            positions.setdefault(text[i:i + 3], []).append(i)
        return positions

    def kasiski_key_lengths(
        self,
        text: str,
        positions: dict[str, list[int]] | None = None,
    ) -> list[int]:
        """
        Kasiski examination over repeated trigrams.

        Every pair of occurrences of the same trigram votes for each divisor
        of its distance in [2, 20]. Only the first fifty occurrences of a
        trigram are paired. Returns the five most voted divisors.
        """
        if positions is None:
            positions = self.trigram_positions(text)

        factor_counts: Counter = Counter()
        for occurrences in positions.values():
            if len(occurrences) < 2:
                continue
            occurrences = occurrences[:self.MAX_KASISKI_OCCURRENCES]
            for a in range(len(occurrences) - 1):
                for b in range(a + 1, len(occurrences)):
                    distance = occurrences[b] - occurrences[a]
                    for factor in range(self.MIN_KEY_LENGTH, min(self.MAX_KEY_LENGTH, distance) + 1):
                        if distance % factor == 0:
                            factor_counts[factor] += 1

        ranked = sorted(factor_counts.items(), key=lambda item: (-item[1], item[0]))
        return [factor for factor, _ in ranked[:self.MAX_KASISKI_CANDIDATES]]

    def repeated_patterns(
        self,
        text: str,
        positions: dict[str, list[int]] | None = None,
    ) -> RepeatStats:
        """Count distinct repeating trigrams and their mean repeat distance."""
        if positions is None:
            positions = self.trigram_positions(text)

        total_distance = 0
        pattern_count = 0
        for occurrences in positions.values():
            if len(occurrences) > 1:
                pattern_count += 1
                for i in range(len(occurrences) - 1):
                    total_distance += occurrences[i + 1] - occurrences[i]

        mean = total_distance / pattern_count if pattern_count else 0.0
        return RepeatStats(pattern_count=pattern_count, mean_distance=mean)

    def _ioc_from_counts(self, counts: list[int]) -> float:
        n = sum(counts)
        if n <= 1:
            return 0.0
        numerator = sum(f * (f - 1) for f in counts)
        return numerator / (n * (n - 1))

    def _chi_from_counts(self, counts: list[int]) -> float:
        n = sum(counts)
        if n == 0:
            return 0.0

        chi_squared = 0.0
        for observed, prob in zip(counts, self.ENGLISH_PROBS):
            expected = prob * n
            if expected > 0:
                chi_squared += ((observed - expected) ** 2) / expected

        return chi_squared


_analyzer = StatisticalAnalyzer()


def calculate_ic(text: str) -> float:
    """Index of Coincidence of the normalized text."""
    return _analyzer.index_of_coincidence(text)


def chi_squared(text: str) -> float:
    """Chi-squared distance of the text's letters from English."""
    return _analyzer.chi_squared(text)
