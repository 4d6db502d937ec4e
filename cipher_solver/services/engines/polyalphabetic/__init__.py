"""Polyalphabetic cipher engines."""

from cipher_solver.services.engines.polyalphabetic.vigenere import VigenereEngine

__all__ = [
    "VigenereEngine",
]
