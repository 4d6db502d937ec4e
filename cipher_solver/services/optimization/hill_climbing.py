import string
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from cipher_solver.services.optimization.seeded_random import SeededRandom


@dataclass
class HillClimbResult:
    """Outcome of a hill-climbing run."""

    best_mapping: dict[str, str]
    best_score: float
    initial_score: float
    iterations: int
    improvements: int
    # Best score after each iteration; never decreases
    history: list[float] = field(default_factory=list)
    cancelled: bool = False


class SubstitutionHillClimber:
    """
    Greedy pairwise-swap hill climbing over substitution mappings.

    Each iteration draws two cipher letters from the seeded generator,
    swaps their plaintext targets and rescores the decryption. The swap is
    kept only when the score strictly improves; otherwise the search
    continues from the previous best. Worse moves are never accepted.
    """

    ALPHABET = string.ascii_uppercase

    def __init__(
        self,
        ciphertext: str,
        fitness_fn: Callable[[str], float],
        initial_mapping: dict[str, str],
        rng: SeededRandom,
        max_iterations: int = 50,
        cancel_event: threading.Event | None = None,
    ):
        self.ciphertext = ciphertext
        self.fitness_fn = fitness_fn
        self.initial_mapping = dict(initial_mapping)
        self.rng = rng
        self.max_iterations = max_iterations
        self.cancel_event = cancel_event

    def decrypt(self, targets: list[str]) -> str:
        """Apply a mapping given as 26 targets indexed by cipher letter."""
        table = str.maketrans(self.ALPHABET, "".join(targets))
        return self.ciphertext.translate(table)

    def optimize(self) -> HillClimbResult:
        best = [self.initial_mapping[c] for c in self.ALPHABET]
        best_score = self.fitness_fn(self.decrypt(best))
        initial_score = best_score

        history: list[float] = []
        improvements = 0
        iterations = 0
        cancelled = False

        for _ in range(self.max_iterations):
            if self.cancel_event is not None and self.cancel_event.is_set():
                cancelled = True
                break

            iterations += 1
            i = self.rng.next_int(26)
            j = self.rng.next_int(26)

            if i != j:
                trial = best.copy()
                trial[i], trial[j] = trial[j], trial[i]
                trial_score = self.fitness_fn(self.decrypt(trial))

                if trial_score > best_score:
                    best = trial
                    best_score = trial_score
                    improvements += 1

            history.append(best_score)

        return HillClimbResult(
            best_mapping=dict(zip(self.ALPHABET, best)),
            best_score=best_score,
            initial_score=initial_score,
            iterations=iterations,
            improvements=improvements,
            history=history,
            cancelled=cancelled,
        )
