import logging
import threading
from typing import Any, ClassVar

from cipher_solver.core.exceptions import InvalidKeyError
from cipher_solver.models.schemas import CipherCandidate, CipherType, DetectionResult
from cipher_solver.services.engines.base import CipherEngine, DecryptionResult
from cipher_solver.services.engines.registry import EngineRegistry
from cipher_solver.services.preprocessing.normalizer import normalize

logger = logging.getLogger(__name__)


@EngineRegistry.register
class CaesarEngine(CipherEngine):
    """
    Caesar cipher engine.

    The Caesar cipher shifts each letter by a fixed amount. With only 26
    possible keys, it is broken by trying every shift and ranking the
    results with the language model plus IoC and chi-squared adjustments.
    """

    name = "Caesar Cipher"
    cipher_type = CipherType.CAESAR
    description = (
        "A substitution cipher where each letter is shifted by a fixed amount. "
        "Named after Julius Caesar who used it for military communications."
    )

    MAX_RESULTS: ClassVar[int] = 10

    # Bonus above this IoC, penalty above this chi-squared
    IOC_BONUS_FLOOR: ClassVar[float] = 0.060
    CHI_PENALTY_FLOOR: ClassVar[float] = 30.0

    # Heuristic tie-breaks for historically common shifts (ROT13, +-1)
    COMMON_SHIFT_BONUS: ClassVar[dict[int, float]] = {13: 0.05, 1: 0.03, 25: 0.03}

    def solve(
        self,
        ciphertext: str,
        detection: DetectionResult | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[CipherCandidate]:
        """
        Try all 26 shifts and return the ten best candidates.
        """
        normalized = normalize(ciphertext)
        if not normalized:
            return []

        # Shifting never changes the letter multiset, so IoC is shared
        ioc = self.analyzer.index_of_coincidence(normalized)
        ioc_bonus = (ioc - self.IOC_BONUS_FLOOR) * 10 if ioc > self.IOC_BONUS_FLOOR else 0.0

        scored: list[tuple[float, int, str]] = []
        for shift in range(26):
            plaintext = self._shift_letters(normalized, -shift)
            chi = self.analyzer.chi_squared(plaintext)
            chi_penalty = (chi - self.CHI_PENALTY_FLOOR) / 100 if chi > self.CHI_PENALTY_FLOOR else 0.0

            combined = self.model.score_normalized(plaintext) + ioc_bonus - chi_penalty
            scored.append((combined, shift, plaintext))

        scored.sort(key=lambda item: item[0], reverse=True)

        candidates = []
        for combined, shift, plaintext in scored[:self.MAX_RESULTS]:
            confidence = self._clamp((combined + 10) / 6)
            bonus = self.COMMON_SHIFT_BONUS.get(shift)
            if bonus:
                confidence = min(0.99, confidence + bonus)

            candidates.append(CipherCandidate(
                cipher_type=self.cipher_type,
                shift=shift,
                plaintext=plaintext,
                ngram_score=combined,
                confidence=confidence,
                formula=f"D(x) = (x - {shift}) mod 26",
                method="brute_force",
            ))

        logger.debug("Caesar best shift %d (score %.3f)", scored[0][1], scored[0][0])
        return candidates

    def decrypt_with_key(self, ciphertext: str, key: Any) -> DecryptionResult:
        """Decrypt with a known shift value."""
        shift = self._parse_key(key)
        plaintext = self._shift_letters(ciphertext.upper(), -shift)

        return DecryptionResult(
            plaintext=plaintext,
            key=shift,
            formula=f"D(x) = (x - {shift}) mod 26",
        )

    def encrypt(self, plaintext: str, key: Any) -> str:
        """Encrypt plaintext with the given shift."""
        shift = self._parse_key(key)
        return self._shift_letters(plaintext.upper(), shift)

    def validate_key(self, key: Any) -> bool:
        """Validate that key is an integer shift."""
        try:
            self._parse_key(key)
            return True
        except InvalidKeyError:
            return False

    def _parse_key(self, key: Any) -> int:
        """Parse key to integer shift value."""
        if isinstance(key, dict):
            key = key.get("shift", key.get("key"))
        try:
            return int(key) % 26
        except (TypeError, ValueError):
            raise InvalidKeyError(self.cipher_type.value, key) from None
