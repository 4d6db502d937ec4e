from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_QUADGRAM_PATH = Path(__file__).resolve().parent.parent / "data" / "quadgrams.txt"


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CIPHER_SOLVER_",
        case_sensitive=False,
    )

    # Language model
    quadgram_path: Path = DEFAULT_QUADGRAM_PATH
    quadgram_penalty: float = -12.0
    unscorable_score: float = -999_999.0

    # Solvers
    hill_climb_iterations: int = 50
    max_key_length: int = 20
    max_key_candidates: int = 8

    # Aggregation
    shortlist_size: int = 15
    fallback_size: int = 3
    fingerprint_length: int = 100

    # External re-ranking
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash-lite"
    rerank_timeout_seconds: float = 30.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
