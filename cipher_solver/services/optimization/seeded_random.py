class SeededRandom:
    """
    Deterministic linear congruential generator.

    Each solver run owns its own instance, so two runs started from the same
    seed follow the same trajectory without touching any global random state.
    """

    MULTIPLIER = 1664525
    INCREMENT = 1013904223
    MODULUS = 2 ** 32

    def __init__(self, seed: int):
        self.seed = seed % self.MODULUS

    def next(self) -> float:
        """Advance the state and return a float in [0, 1)."""
        self.seed = (self.seed * self.MULTIPLIER + self.INCREMENT) % self.MODULUS
        return self.seed / self.MODULUS

    def next_int(self, upper: int) -> int:
        """Return an integer in [0, upper)."""
        return int(self.next() * upper)
