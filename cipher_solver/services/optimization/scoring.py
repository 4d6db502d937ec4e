import logging
import math
import threading
from pathlib import Path

from cipher_solver.core.config import get_settings
from cipher_solver.core.exceptions import LanguageModelError
from cipher_solver.services.preprocessing.normalizer import normalize

logger = logging.getLogger(__name__)


class QuadgramModel:
    """
    Quadgram-based language model.

    Holds log10 probabilities of 4-letter sequences. Any sequence missing
    from the table pays ``penalty`` so scoring is total over every window.
    Instances are read-only after construction and safe to share.
    """

    def __init__(
        self,
        quadgrams: dict[str, float] | None = None,
        penalty: float | None = None,
        unscorable: float | None = None,
    ):
        settings = get_settings()
        self.quadgrams: dict[str, float] = dict(quadgrams or {})
        self.penalty = settings.quadgram_penalty if penalty is None else penalty
        self.unscorable = settings.unscorable_score if unscorable is None else unscorable

    @classmethod
    def from_file(cls, filepath: str | Path, **kwargs) -> "QuadgramModel":
        """
        Build a model from a ``QUAD count`` file.

        Raises:
            LanguageModelError: If the file is missing, unreadable or empty
        """
        counts: dict[str, int] = {}
        total = 0

        try:
            with open(filepath, encoding="utf-8") as f:
                for line in f:
                    parts = line.split()
                    if len(parts) < 2:
                        continue
                    quadgram, count = parts[0].upper(), int(parts[1])
                    if len(quadgram) != 4 or count <= 0:
                        continue
                    counts[quadgram] = counts.get(quadgram, 0) + count
                    total += count
        except (OSError, ValueError) as e:
            raise LanguageModelError(
                f"Could not read quadgram table: {e}",
                {"path": str(filepath)},
            ) from e

        if total == 0:
            raise LanguageModelError("Quadgram table is empty", {"path": str(filepath)})

        quadgrams = {q: math.log10(c / total) for q, c in counts.items()}
        return cls(quadgrams, **kwargs)

    def __len__(self) -> int:
        return len(self.quadgrams)

    def score(self, text: str) -> float:
        """
        Score text based on quadgram frequencies.

        Higher score = more likely to be English text.

        Args:
            text: Text to score (normalized internally)

        Returns:
            Mean log probability per quadgram, or the unscorable sentinel
            for texts shorter than four letters
        """
        text = normalize(text)
        return self.score_normalized(text)

    def score_normalized(self, text: str) -> float:
        """Score text already reduced to A-Z."""
        n = len(text)
        if n < 4:
            return self.unscorable

        table = self.quadgrams
        penalty = self.penalty
        total = 0.0
        for i in range(n - 3):
            total += table.get(text[i:i + 4], penalty)

        return total / max(1, n - 3)

    def fitness(self, text: str) -> float:
        """Fitness function for optimization (higher is better)."""
        return self.score_normalized(text)


_model: QuadgramModel | None = None
_model_lock = threading.Lock()


def get_language_model() -> QuadgramModel:
    """
    Get the process-wide language model, loading it on first use.

    Loading failures never propagate: the model degrades to an empty table
    where every quadgram pays the penalty.
    """
    global _model

    model = _model
    if model is not None:
        return model

    with _model_lock:
        if _model is None:
            path = get_settings().quadgram_path
            try:
                _model = QuadgramModel.from_file(path)
                logger.debug("Loaded %d quadgrams from %s", len(_model), path)
            except LanguageModelError as e:
                logger.warning("%s; scoring with penalty only", e.message)
                _model = QuadgramModel()
        return _model


def clear_language_model_cache() -> None:
    """Drop the cached model so the next access reloads it."""
    global _model

    with _model_lock:
        _model = None


def score(text: str) -> float:
    """Score text with the process-wide language model."""
    return get_language_model().score(text)
