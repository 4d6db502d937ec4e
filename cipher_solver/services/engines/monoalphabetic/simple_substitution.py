import logging
import threading
from collections import Counter
from typing import Any, ClassVar

from cipher_solver.core.config import get_settings
from cipher_solver.core.exceptions import InvalidKeyError
from cipher_solver.models.schemas import CipherCandidate, CipherType, DetectionResult
from cipher_solver.services.engines.base import CipherEngine, DecryptionResult
from cipher_solver.services.engines.registry import EngineRegistry
from cipher_solver.services.optimization.hill_climbing import SubstitutionHillClimber
from cipher_solver.services.optimization.seeded_random import SeededRandom
from cipher_solver.services.preprocessing.normalizer import normalize

logger = logging.getLogger(__name__)


@EngineRegistry.register
class SimpleSubstitutionEngine(CipherEngine):
    """
    Simple Substitution cipher engine.

    Each letter is replaced with another letter according to a fixed permutation
    of the alphabet. Unlike Caesar (shift), this is an arbitrary permutation
    with 26! possible keys.

    Breaking starts from frequency analysis and improves the mapping with a
    pattern sweep and seeded hill climbing. Mappings are stored as
    cipher letter -> plaintext letter.
    """

    name = "Simple Substitution Cipher"
    cipher_type = CipherType.MONO
    description = (
        "Each letter is mapped to a different letter using a random permutation. "
        "With 26! (about 4 x 10^26) possible keys, brute force is impossible. "
        "Solved using frequency analysis and hill-climbing optimization."
    )

    ENGLISH_ORDER: ClassVar[str] = "ETAOINSHRDLCUMWFGYPBVKJXQZ"
    MAX_RESULTS: ClassVar[int] = 5
    MIN_CLIMB_LENGTH: ClassVar[int] = 20
    MIN_CLIMB_GAIN: ClassVar[float] = 0.5

    def solve(
        self,
        ciphertext: str,
        detection: DetectionResult | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[CipherCandidate]:
        """
        Frequency mapping, pattern refinement and local search.

        The frequency mapping is always returned; the other strategies only
        contribute when they improve on it.
        """
        normalized = normalize(ciphertext)
        if not normalized:
            return []

        n = len(normalized)
        ioc = self.analyzer.index_of_coincidence(normalized)
        ranked = self._rank_cipher_letters(normalized)

        baseline = self.frequency_mapping(normalized)
        baseline_plain = self._decrypt(normalized, baseline)
        baseline_score = self.model.score_normalized(baseline_plain)

        # (score, plaintext, mapping, formula, method)
        results = [(
            baseline_score, baseline_plain, baseline,
            "E(x) = σ⁻¹(x), frequency analysis", "frequency_analysis",
        )]
        best_mapping, best_score = baseline, baseline_score

        refined, refined_score = self._refine_by_pattern(normalized, baseline, baseline_score, ranked)
        if refined_score > baseline_score:
            results.append((
                refined_score, self._decrypt(normalized, refined), refined,
                "E(x) = σ⁻¹(x), pattern analysis", "pattern_analysis",
            ))
            best_mapping, best_score = refined, refined_score

        if n > self.MIN_CLIMB_LENGTH and not self._cancelled(cancel_event):
            seed = (n + round(1000 * baseline_score)) % SeededRandom.MODULUS
            climber = SubstitutionHillClimber(
                ciphertext=normalized,
                fitness_fn=self.model.fitness,
                initial_mapping=best_mapping,
                rng=SeededRandom(seed),
                max_iterations=get_settings().hill_climb_iterations,
                cancel_event=cancel_event,
            )
            climb = climber.optimize()
            logger.debug(
                "Hill climb: %d iterations, %d improvements, %.3f -> %.3f",
                climb.iterations, climb.improvements, climb.initial_score, climb.best_score,
            )

            if climb.best_score > baseline_score + self.MIN_CLIMB_GAIN:
                results.append((
                    climb.best_score, self._decrypt(normalized, climb.best_mapping),
                    climb.best_mapping, "E(x) = σ⁻¹(x), optimized", "hill_climbing",
                ))

        results.sort(key=lambda item: item[0], reverse=True)

        candidates = []
        for score, plaintext, mapping, formula, method in results[:self.MAX_RESULTS]:
            chi = self.analyzer.chi_squared(plaintext)
            confidence = (score + 8) / 5
            if ioc > 0.06:
                confidence += 0.1
            if chi > 30:
                confidence -= 0.1

            candidates.append(CipherCandidate(
                cipher_type=self.cipher_type,
                mapping=dict(mapping),
                plaintext=plaintext,
                ngram_score=score,
                confidence=self._clamp(confidence),
                formula=formula,
                method=method,
            ))

        return candidates

    def frequency_mapping(self, text: str) -> dict[str, str]:
        """
        Map cipher letters to English letters by frequency rank.

        Ties keep first-occurrence order; letters absent from the text take
        the remaining English letters in frequency order.
        """
        mapping: dict[str, str] = {}
        for cipher_letter, english_letter in zip(self._rank_cipher_letters(text), self.ENGLISH_ORDER):
            mapping[cipher_letter] = english_letter
        return mapping

    def decrypt_with_key(self, ciphertext: str, key: Any) -> DecryptionResult:
        """Decrypt with a known substitution key."""
        mapping = self._parse_key(key)
        plaintext = self._decrypt(ciphertext.upper(), mapping)
        key_str = self._encryption_alphabet(mapping)

        return DecryptionResult(
            plaintext=plaintext,
            key=key_str,
            formula=f"E(x) = σ⁻¹(x), σ = {key_str}",
        )

    def encrypt(self, plaintext: str, key: Any) -> str:
        """Encrypt using the substitution key."""
        mapping = self._parse_key(key)
        inverse = {plain: cipher for cipher, plain in mapping.items()}
        table = str.maketrans(self.ALPHABET, "".join(inverse[c] for c in self.ALPHABET))
        return plaintext.upper().translate(table)

    def validate_key(self, key: Any) -> bool:
        """Validate that key is a valid 26-letter permutation."""
        try:
            self._parse_key(key)
            return True
        except InvalidKeyError:
            return False

    def _parse_key(self, key: Any) -> dict[str, str]:
        """
        Parse a key into a cipher -> plaintext mapping.

        Accepts a 26-letter encryption alphabet (plain ``A`` encrypts to
        ``key[0]``), a dict with a ``key`` entry holding one, or a full
        cipher -> plaintext letter mapping.
        """
        if isinstance(key, dict) and "key" in key:
            key = key["key"]

        alphabet = set(self.ALPHABET)
        if isinstance(key, str):
            key_upper = key.upper()
            if len(key_upper) == 26 and set(key_upper) == alphabet:
                return {key_upper[i]: self.ALPHABET[i] for i in range(26)}
        elif isinstance(key, dict):
            mapping = {str(k).upper(): str(v).upper() for k, v in key.items()}
            if set(mapping) == alphabet and set(mapping.values()) == alphabet:
                return mapping

        raise InvalidKeyError(self.cipher_type.value, key)

    def _rank_cipher_letters(self, text: str) -> list[str]:
        """All 26 cipher letters, most frequent first."""
        ranked = [letter for letter, _ in Counter(text).most_common()]
        seen = set(ranked)
        ranked.extend(c for c in self.ALPHABET if c not in seen)
        return ranked

    def _refine_by_pattern(
        self,
        text: str,
        mapping: dict[str, str],
        score: float,
        ranked: list[str],
    ) -> tuple[dict[str, str], float]:
        """One sweep swapping the targets of neighbouring frequency ranks."""
        best = dict(mapping)
        best_score = score

        for first, second in zip(ranked, ranked[1:]):
            trial = dict(best)
            trial[first], trial[second] = trial[second], trial[first]
            trial_score = self.model.score_normalized(self._decrypt(text, trial))
            if trial_score > best_score:
                best, best_score = trial, trial_score

        return best, best_score

    def _decrypt(self, text: str, mapping: dict[str, str]) -> str:
        table = str.maketrans(self.ALPHABET, "".join(mapping[c] for c in self.ALPHABET))
        return text.translate(table)

    def _encryption_alphabet(self, mapping: dict[str, str]) -> str:
        inverse = {plain: cipher for cipher, plain in mapping.items()}
        return "".join(inverse[c] for c in self.ALPHABET)
