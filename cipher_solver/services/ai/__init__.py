"""AI collaborators for candidate re-ranking."""

from cipher_solver.services.ai.gemini_client import GeminiReranker

__all__ = ["GeminiReranker"]
