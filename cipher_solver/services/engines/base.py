import string
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from cipher_solver.models.schemas import CipherCandidate, CipherType, DetectionResult
from cipher_solver.services.analysis.statistics import StatisticalAnalyzer
from cipher_solver.services.optimization.scoring import QuadgramModel, get_language_model


@dataclass
class DecryptionResult:
    """Result of a decryption with a known key."""

    plaintext: str
    key: Any
    formula: str


class CipherEngine(ABC):
    """
    Abstract base class for all cipher engines.

    Each cipher implementation must provide:
    - solve(): Recover ranked candidates without a known key
    - decrypt_with_key(): Decrypt with a known key
    - encrypt(): Encrypt plaintext
    - validate_key(): Check a key for this cipher
    """

    # Cipher metadata
    name: str
    cipher_type: CipherType
    description: str

    ALPHABET: ClassVar[str] = string.ascii_uppercase

    def __init__(
        self,
        model: QuadgramModel | None = None,
        analyzer: StatisticalAnalyzer | None = None,
    ):
        self._model = model
        self.analyzer = analyzer or StatisticalAnalyzer()

    @property
    def model(self) -> QuadgramModel:
        """Language model, resolved lazily to the process-wide instance."""
        if self._model is None:
            return get_language_model()
        return self._model

    @abstractmethod
    def solve(
        self,
        ciphertext: str,
        detection: DetectionResult | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[CipherCandidate]:
        """
        Attempt to decrypt without a known key.

        Args:
            ciphertext: The ciphertext to decrypt (normalized internally)
            detection: Detector output, used for key-length hints
            cancel_event: Advisory cancellation signal

        Returns:
            Candidates ranked best first
        """
        pass

    @abstractmethod
    def decrypt_with_key(self, ciphertext: str, key: Any) -> DecryptionResult:
        """
        Decrypt with a known key.

        Raises:
            InvalidKeyError: If the key is not valid for this cipher
        """
        pass

    @abstractmethod
    def encrypt(self, plaintext: str, key: Any) -> str:
        """
        Encrypt the letters of plaintext with the given key.

        Raises:
            InvalidKeyError: If the key is not valid for this cipher
        """
        pass

    @abstractmethod
    def validate_key(self, key: Any) -> bool:
        """Validate that a key is valid for this cipher."""
        pass

    def score(self, plaintext: str) -> float:
        """Score a plaintext candidate (higher is better)."""
        return self.model.score(plaintext)

    @staticmethod
    def _cancelled(cancel_event: threading.Event | None) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    @staticmethod
    def _clamp(value: float, low: float = 0.01, high: float = 0.99) -> float:
        return max(low, min(high, value))

    @classmethod
    def _shift_letters(cls, text: str, shift: int) -> str:
        """Shift every A-Z letter of text forward by ``shift`` positions."""
        shift %= 26
        table = str.maketrans(cls.ALPHABET, cls.ALPHABET[shift:] + cls.ALPHABET[:shift])
        return text.translate(table)
