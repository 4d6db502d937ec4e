"""Tests for the Gemini re-ranking collaborator."""

import asyncio
import json

import httpx
import pytest

from cipher_solver.core.exceptions import RerankError
from cipher_solver.models.schemas import CipherCandidate, CipherType
from cipher_solver.services.ai.gemini_client import GeminiReranker


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def candidates():
    return [
        CipherCandidate(
            cipher_type=CipherType.CAESAR,
            plaintext=plaintext,
            ngram_score=-4.0,
            confidence=0.8,
            formula=f"D(x) = (x - {shift}) mod 26",
            method="brute_force",
            shift=shift,
        )
        for shift, plaintext in [(3, "THATISASECRETMESSAGE"), (4, "SGZSHRZRDBQDSLDRRZFD")]
    ]


class TestGeminiReranker:
    """Test suite for the Gemini collaborator."""

    def make_reranker(self, handler) -> GeminiReranker:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GeminiReranker(api_key="test-key", model="test-model", client=client)

    def test_rerank_parses_one_based_indices(self, candidates):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            ranking = {"ranking": [{"index": 2, "score": 0.2}, {"index": 1, "score": 0.9, "reasoning": "English"}]}
            return httpx.Response(200, json=gemini_reply(json.dumps(ranking)))

        reranker = self.make_reranker(handler)
        response = asyncio.run(reranker.rerank("WKDWLVDVHFUHWPHVVDJH", candidates))

        assert [e.candidate_index for e in response.entries] == [1, 0]
        assert response.entries[1].reasoning == "English"
        assert response.entries[0].external_score == 0.2

        request = requests[0]
        assert request.url.path.endswith("/test-model:generateContent")
        assert request.headers["x-goog-api-key"] == "test-key"
        prompt = json.loads(request.content)["contents"][0]["parts"][0]["text"]
        assert "THATISASECRETMESSAGE" in prompt
        assert "WKDWLVDVHFUHWPHVVDJH" in prompt

    def test_markdown_fenced_reply(self):
        reranker = GeminiReranker(api_key="k", client=httpx.AsyncClient())
        reply = '```json\n{"ranking": [{"index": 1}]}\n```'

        response = reranker.parse_ranking(reply)

        assert [e.candidate_index for e in response.entries] == [0]

    @pytest.mark.parametrize("reply", ["not json", '{"order": []}', '{"ranking": [{"index": 0}]}'])
    def test_malformed_reply_raises(self, reply):
        reranker = GeminiReranker(api_key="k", client=httpx.AsyncClient())

        with pytest.raises(RerankError):
            reranker.parse_ranking(reply)

    def test_http_error_raises(self, candidates):
        reranker = self.make_reranker(lambda request: httpx.Response(503, json={}))

        with pytest.raises(RerankError) as exc_info:
            asyncio.run(reranker.rerank("ABC", candidates))

        assert exc_info.value.details["status_code"] == 503

    def test_missing_api_key_raises(self, candidates, monkeypatch, clean_caches):
        monkeypatch.delenv("CIPHER_SOLVER_GEMINI_API_KEY", raising=False)
        reranker = GeminiReranker(client=httpx.AsyncClient())

        with pytest.raises(RerankError):
            asyncio.run(reranker.rerank("ABC", candidates))
