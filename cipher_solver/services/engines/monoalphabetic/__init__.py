"""Monoalphabetic cipher engines."""

from cipher_solver.services.engines.monoalphabetic.caesar import CaesarEngine
from cipher_solver.services.engines.monoalphabetic.simple_substitution import SimpleSubstitutionEngine

__all__ = [
    "CaesarEngine",
    "SimpleSubstitutionEngine",
]
