import logging
import threading
from typing import Any, ClassVar

from cipher_solver.core.config import get_settings
from cipher_solver.core.exceptions import InvalidKeyError
from cipher_solver.models.schemas import CipherCandidate, CipherType, DetectionResult
from cipher_solver.services.engines.base import CipherEngine, DecryptionResult
from cipher_solver.services.engines.registry import EngineRegistry
from cipher_solver.services.preprocessing.normalizer import normalize

logger = logging.getLogger(__name__)


@EngineRegistry.register
class VigenereEngine(CipherEngine):
    """
    Vigenère cipher engine.

    A polyalphabetic substitution cipher that uses a keyword to determine
    the shift for each letter. Each letter of the keyword represents a
    different Caesar shift applied in sequence.

    Breaking involves:
    1. Taking candidate key lengths from the detector (Friedman/Kasiski)
    2. Breaking each column as an independent Caesar cipher
    3. Refining the assembled key against the full plaintext
    """

    name = "Vigenère Cipher"
    cipher_type = CipherType.VIGENERE
    description = (
        "A polyalphabetic cipher where each letter is shifted by a different amount "
        "based on a repeating keyword. More secure than Caesar but vulnerable to "
        "Kasiski examination and frequency analysis per key position."
    )

    MIN_KEY_LENGTH: ClassVar[int] = 2
    DEFAULT_KEY_LENGTHS: ClassVar[list[int]] = [2, 3, 4, 5, 6]
    EMPTY_COLUMN_SCORE: ClassVar[float] = -999.0
    REFINE_PASSES: ClassVar[int] = 2

    IOC_BONUS_FLOOR: ClassVar[float] = 0.060
    CHI_PENALTY_FLOOR: ClassVar[float] = 30.0
    COLUMN_WEIGHT: ClassVar[float] = 0.3

    def solve(
        self,
        ciphertext: str,
        detection: DetectionResult | None = None,
        cancel_event: threading.Event | None = None,
        key_lengths: list[int] | None = None,
    ) -> list[CipherCandidate]:
        """
        Break the cipher for each plausible key length.

        Key lengths come from ``key_lengths`` if given, else from the
        detection result, else a short-key default.
        """
        if key_lengths is None:
            key_lengths = (
                detection.candidate_key_lengths if detection is not None
                else list(self.DEFAULT_KEY_LENGTHS)
            )
        return self.solve_with_lengths(ciphertext, key_lengths, cancel_event)

    def solve_with_lengths(
        self,
        ciphertext: str,
        key_lengths: list[int],
        cancel_event: threading.Event | None = None,
    ) -> list[CipherCandidate]:
        settings = get_settings()
        normalized = normalize(ciphertext)
        n = len(normalized)

        # Each column needs at least three letters to be solvable
        upper = min(settings.max_key_length, n / 3)
        lengths = [k for k in key_lengths if self.MIN_KEY_LENGTH <= k <= upper]
        lengths = lengths[:settings.max_key_candidates]
        top_detected = key_lengths[:3]

        scored: list[tuple[float, CipherCandidate]] = []
        for key_length in lengths:
            if self._cancelled(cancel_event):
                logger.debug("Vigenère search cancelled after %d key lengths", len(scored))
                break

            key = self._find_key(normalized, key_length)
            key = self._refine_key(normalized, key)
            column_scores = [
                self._column_score(normalized[i::key_length], shift)
                for i, shift in enumerate(key)
            ]

            plaintext = self._apply_key(normalized, key, decrypt=True)
            final_score = self.model.score_normalized(plaintext)
            ioc = self.analyzer.index_of_coincidence(plaintext)
            ioc_bonus = (ioc - self.IOC_BONUS_FLOOR) * 8 if ioc > self.IOC_BONUS_FLOOR else 0.0
            avg_column = sum(column_scores) / len(column_scores)

            combined = final_score + ioc_bonus + avg_column * self.COLUMN_WEIGHT

            confidence = self._clamp((combined + 10) / 8)
            if key_length in top_detected:
                confidence = min(0.99, confidence + 0.05)

            keyword = "".join(self.ALPHABET[k] for k in key)
            scored.append((combined, CipherCandidate(
                cipher_type=self.cipher_type,
                key=tuple(key),
                plaintext=plaintext,
                ngram_score=combined,
                confidence=confidence,
                formula=f'D(x_i) = (x_i - k_i) mod 26, key="{keyword}"',
                method=f"column_analysis_L{key_length}",
            )))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [candidate for _, candidate in scored[:settings.max_key_candidates]]

    def decrypt_with_key(self, ciphertext: str, key: Any) -> DecryptionResult:
        """Decrypt with a known keyword."""
        shifts = self._parse_key(key)
        plaintext = self._apply_key(ciphertext.upper(), shifts, decrypt=True)
        keyword = "".join(self.ALPHABET[k] for k in shifts)

        return DecryptionResult(
            plaintext=plaintext,
            key=keyword,
            formula=f'D(x_i) = (x_i - k_i) mod 26, key="{keyword}"',
        )

    def encrypt(self, plaintext: str, key: Any) -> str:
        """Encrypt using the keyword."""
        shifts = self._parse_key(key)
        return self._apply_key(plaintext.upper(), shifts, decrypt=False)

    def validate_key(self, key: Any) -> bool:
        """Validate that key is alphabetic or a list of shifts."""
        try:
            self._parse_key(key)
            return True
        except InvalidKeyError:
            return False

    def _parse_key(self, key: Any) -> list[int]:
        """Parse a keyword or a sequence of shifts."""
        if isinstance(key, dict):
            key = key.get("key", key.get("keyword", ""))

        if isinstance(key, str):
            key_upper = key.upper()
            if key_upper and all(c in self.ALPHABET for c in key_upper):
                return [self.ALPHABET.index(c) for c in key_upper]
        elif isinstance(key, (list, tuple)) and key:
            if all(isinstance(k, int) and 0 <= k <= 25 for k in key):
                return list(key)

        raise InvalidKeyError(self.cipher_type.value, key)

    def _column_score(self, column: str, shift: int) -> float:
        """Language-model score of a decrypted column with IoC and chi adjustments."""
        if not column:
            return self.EMPTY_COLUMN_SCORE

        decrypted = self._shift_letters(column, -shift)
        ioc = self.analyzer.index_of_coincidence(decrypted)
        ioc_bonus = (ioc - self.IOC_BONUS_FLOOR) * 5 if ioc > self.IOC_BONUS_FLOOR else 0.0
        chi = self.analyzer.chi_squared(decrypted)
        chi_penalty = (chi - self.CHI_PENALTY_FLOOR) / 100 if chi > self.CHI_PENALTY_FLOOR else 0.0

        return self.model.score_normalized(decrypted) + ioc_bonus - chi_penalty

    def _find_key(self, ciphertext: str, key_length: int) -> list[int]:
        """
        Find the key by breaking each Caesar column independently.

        For each position, try all 26 shifts and keep the best scoring one.
        Empty columns default to shift 0.
        """
        key = []

        for i in range(key_length):
            column = ciphertext[i::key_length]
            if not column:
                key.append(0)
                continue

            best_shift = 0
            best_score = float("-inf")
            for shift in range(26):
                column_score = self._column_score(column, shift)
                if column_score > best_score:
                    best_score = column_score
                    best_shift = shift

            key.append(best_shift)

        return key

    def _refine_key(self, ciphertext: str, key: list[int]) -> list[int]:
        """
        Greedy per-position polish against the full plaintext.

        Columns only see every L-th letter, so a column can settle on a
        neighbouring shift; rescoring whole plaintexts repairs that.
        """
        key = list(key)
        best_score = self.model.score_normalized(self._apply_key(ciphertext, key, decrypt=True))

        for _ in range(self.REFINE_PASSES):
            improved = False
            for position in range(len(key)):
                original = key[position]
                for shift in range(26):
                    if shift == original:
                        continue
                    key[position] = shift
                    trial = self.model.score_normalized(self._apply_key(ciphertext, key, decrypt=True))
                    if trial > best_score:
                        best_score = trial
                        original = shift
                        improved = True
                key[position] = original
            if not improved:
                break

        return key

    def _apply_key(self, text: str, shifts: list[int], decrypt: bool) -> str:
        """Apply the repeating key to the letters of text, passing others through."""
        result = []
        key_idx = 0
        sign = -1 if decrypt else 1
        period = len(shifts)

        for char in text:
            if char in self.ALPHABET:
                shift = shifts[key_idx % period]
                result.append(self.ALPHABET[(ord(char) - 65 + sign * shift) % 26])
                key_idx += 1
            else:
                result.append(char)

        return "".join(result)

