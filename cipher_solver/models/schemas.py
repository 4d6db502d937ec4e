import string
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Enums
# ============================================================================


class CipherType(str, Enum):
    """Cipher families the engine can solve."""

    CAESAR = "caesar"
    VIGENERE = "vigenere"
    MONO = "mono"


class AnalysisStage(str, Enum):
    """Pipeline stages reported to progress listeners."""

    DETECTING = "detecting"
    SOLVING = "solving"
    RANKING = "ranking"
    COMPLETED = "completed"


# ============================================================================
# Detection Schemas
# ============================================================================


class DetectionResult(BaseModel):
    """Cipher family classification with supporting statistics."""

    model_config = ConfigDict(frozen=True)

    likely_type: CipherType
    index_of_coincidence: float = Field(ge=0.0, le=1.0)
    candidate_key_lengths: list[int] = Field(default_factory=list, max_length=8)
    confidence: float = Field(ge=0.0, le=1.0)

    # Diagnostics
    length: int = 0
    chi_squared: float = 0.0
    rotated_chi_squared: float = 0.0
    repeated_trigrams: int = 0
    mean_repeat_distance: float = 0.0
    friedman_key_lengths: list[int] = Field(default_factory=list)
    kasiski_key_lengths: list[int] = Field(default_factory=list)
    frequency_correlation: float = 0.0
    reasoning: list[str] = Field(default_factory=list)


# ============================================================================
# Candidate Schemas
# ============================================================================


class CipherCandidate(BaseModel):
    """
    A solver's decryption candidate.

    Exactly one of ``shift``, ``key`` or ``mapping`` is set, matching
    ``cipher_type``. The annotation fields are only ever written by the
    re-ranking step, which works on copies.
    """

    model_config = ConfigDict(frozen=True)

    cipher_type: CipherType
    plaintext: str
    ngram_score: float
    confidence: float = Field(ge=0.0, le=1.0)
    formula: str
    method: str

    shift: int | None = Field(default=None, ge=0, le=25)
    key: tuple[int, ...] | None = None
    mapping: dict[str, str] | None = None

    # External annotations
    external_score: float | None = None
    external_reasoning: str | None = None

    @model_validator(mode="after")
    def _check_key_material(self) -> "CipherCandidate":
        if self.cipher_type == CipherType.CAESAR:
            if self.shift is None or self.key is not None or self.mapping is not None:
                raise ValueError("caesar candidates carry only a shift")
        elif self.cipher_type == CipherType.VIGENERE:
            if self.key is None or self.shift is not None or self.mapping is not None:
                raise ValueError("vigenere candidates carry only a key")
            if not 2 <= len(self.key) <= 20 or any(not 0 <= k <= 25 for k in self.key):
                raise ValueError("vigenere key must be 2..20 shifts in 0..25")
        else:
            if self.mapping is None or self.shift is not None or self.key is not None:
                raise ValueError("mono candidates carry only a mapping")
            alphabet = set(string.ascii_uppercase)
            if set(self.mapping) != alphabet or set(self.mapping.values()) != alphabet:
                raise ValueError("mono mapping must be a permutation of A-Z")
        return self

    @property
    def keyword(self) -> str | None:
        """Vigenère key rendered as letters."""
        if self.key is None:
            return None
        return "".join(string.ascii_uppercase[k] for k in self.key)


# ============================================================================
# Pipeline Schemas
# ============================================================================


class ProgressEvent(BaseModel):
    """Advisory progress notification emitted between pipeline stages."""

    stage: AnalysisStage
    progress: int = Field(ge=0, le=100)
    message: str
    detection: DetectionResult | None = None


class RerankedEntry(BaseModel):
    """One position in an external ranking, referring to a shortlist index."""

    candidate_index: int = Field(ge=0)
    external_score: float | None = None
    reasoning: str | None = None


class RerankResponse(BaseModel):
    """Ordering returned by the external re-ranking collaborator."""

    entries: list[RerankedEntry]


class AnalysisResult(BaseModel):
    """Final output of an analysis run."""

    detection: DetectionResult
    candidates: list[CipherCandidate]
    warnings: list[str] = Field(default_factory=list)
    reranked: bool = False
