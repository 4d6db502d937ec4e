"""
Gemini client for re-ranking decryption candidates.

The model only sees the plaintexts and their local scores and answers with
an ordering. It never writes plaintext back: the orchestrator validates the
indices and annotates its own copies.
"""
import json
import logging
from typing import Any

import httpx

from cipher_solver.core.config import get_settings
from cipher_solver.core.exceptions import RerankError
from cipher_solver.models.schemas import CipherCandidate, RerankedEntry, RerankResponse

logger = logging.getLogger(__name__)


class GeminiReranker:
    """
    Re-ranking collaborator backed by Google's Gemini API.

    Implements the orchestrator's ``Reranker`` protocol.
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
    PREVIEW_LENGTH = 200

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key. Falls back to settings if not provided.
            model: Model to use. Falls back to settings if not provided.
            client: HTTP client to reuse; one is created otherwise.
        """
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key
        self.model = model or settings.gemini_model
        self._client = client or httpx.AsyncClient(timeout=settings.rerank_timeout_seconds)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def generate_content(self, prompt: str) -> str:
        """
        Generate content using Gemini.

        Raises:
            RerankError: On missing credentials, transport or HTTP errors
        """
        if not self.api_key:
            raise RerankError("Gemini API key is not configured")

        url = f"{self.BASE_URL}/{self.model}:generateContent"

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt}
                    ]
                }
            ]
        }

        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        try:
            response = await self._client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise RerankError(
                f"Gemini returned HTTP {e.response.status_code}",
                {"status_code": e.response.status_code},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise RerankError(f"Gemini request failed: {e}") from e

        # Extract text from response
        candidates = data.get("candidates", [])
        if candidates:
            parts = candidates[0].get("content", {}).get("parts", [])
            if parts:
                return parts[0].get("text", "")

        return ""

    async def rerank(
        self,
        ciphertext: str,
        candidates: list[CipherCandidate],
    ) -> RerankResponse:
        """Ask Gemini to order the candidates by plausibility."""
        prompt = self.build_prompt(ciphertext, candidates)
        response = await self.generate_content(prompt)
        return self.parse_ranking(response)

    def build_prompt(self, ciphertext: str, candidates: list[CipherCandidate]) -> str:
        candidates_text = "\n".join(
            f"Candidate {i + 1} ({c.cipher_type.value}, confidence {c.confidence:.2f}): "
            f"{c.plaintext[:self.PREVIEW_LENGTH]}"
            for i, c in enumerate(candidates)
        )

        return f"""You are judging candidate decryptions of a classical cipher. Your ONLY job is to order them by how likely each one is to be the real, coherent message.

Ciphertext (letters only):
{ciphertext[:self.PREVIEW_LENGTH]}

Candidates (spacing was lost during decryption):
{candidates_text}

Respond in this exact JSON format (no markdown, just raw JSON):
{{"ranking": [{{"index": 1, "score": 0.95, "reasoning": "Brief explanation"}}]}}

Important rules:
- index is 1-based (1 for first candidate, 2 for second, etc.)
- List the most plausible candidate first; you may omit implausible ones
- Never rewrite or correct any candidate text"""

    def parse_ranking(self, response: str) -> RerankResponse:
        """
        Parse Gemini's JSON answer into 0-based shortlist indices.

        Raises:
            RerankError: If the answer is not the requested JSON shape
        """
        # Clean up response - remove markdown code blocks if present
        response = response.strip()
        if response.startswith("```"):
            lines = response.split("\n")
            response = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])

        try:
            result: Any = json.loads(response)
            ranking = result["ranking"]
            entries = [
                RerankedEntry(
                    candidate_index=int(item["index"]) - 1,
                    external_score=item.get("score"),
                    reasoning=item.get("reasoning"),
                )
                for item in ranking
            ]
        except (ValueError, KeyError, TypeError) as e:
            logger.debug("Unparseable Gemini ranking: %r", response[:200])
            raise RerankError(f"Could not parse Gemini ranking: {e}") from e

        return RerankResponse(entries=entries)
