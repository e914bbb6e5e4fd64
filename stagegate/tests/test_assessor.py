"""Tests for the narrative assessment: prompts, validation, and both clients."""
from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from stagegate.assessor import (
    AssessmentError,
    HttpAssessmentClient,
    LLMCallError,
    LLMClient,
    build_system_prompt,
    build_user_prompt,
    generate_assessment,
    make_client,
    validate_assessment,
)
from stagegate.schemas import AssessmentInput, Criterion, Scoring

GOOD_RESPONSE = {
    "summary": "Attractive market, moderate execution risk.",
    "strengths": ["large market", "strong fit"],
    "weaknesses": ["thin margins"],
    "nextSteps": ["customer interviews", "pilot"],
    "pitfalls": ["regulation"],
    "overallRating": "promising",
}


def make_input(**kwargs) -> AssessmentInput:
    scoring = Scoring(market_attractiveness=Criterion(id="market_attractiveness", score=5, comment="booming"))
    return AssessmentInput(scoring=scoring, title="Heat pumps", **kwargs)


# =========================================================================
# Prompts
# =========================================================================

class TestPrompts:
    def test_system_prompt_language(self):
        assert "German" in build_system_prompt("de")
        assert "English" in build_system_prompt("en")

    def test_system_prompt_lists_ratings(self):
        prompt = build_system_prompt("en")
        for rating in ("very_promising", "promising", "moderate", "challenging", "critical"):
            assert rating in prompt

    def test_user_prompt_contents(self):
        prompt = build_user_prompt(make_input(description="Retrofits", answers={"ma_growth_rate": 5}))
        assert "Title: Heat pumps" in prompt
        assert "Description: Retrofits" in prompt
        assert "Market attractiveness: Score 5/5 (booming)" in prompt
        # (5*3 + 3*3 + 3*2 + 3*2 + 3) / 11 = 39 / 11
        assert "Weighted total score: 3.5/5" in prompt
        assert "ma_growth_rate: 5/5" in prompt

    def test_user_prompt_without_answers(self):
        assert "Individual Answers" not in build_user_prompt(make_input())


# =========================================================================
# Validation
# =========================================================================

class TestValidateAssessment:
    def test_good_response(self):
        result = validate_assessment(GOOD_RESPONSE, 3.5)
        assert result.overall_rating == "promising"
        assert result.next_steps == ["customer interviews", "pilot"]
        assert result.model_dump(by_alias=True)["nextSteps"] == ["customer interviews", "pilot"]

    def test_snake_case_keys_accepted(self):
        raw = {"summary": "ok", "next_steps": ["a"], "overall_rating": "critical"}
        result = validate_assessment(raw, 3.0)
        assert result.next_steps == ["a"]
        assert result.overall_rating == "critical"

    @pytest.mark.parametrize("total,expected", [(4.6, "very_promising"), (3.0, "moderate"), (1.2, "critical")])
    def test_unknown_rating_falls_back_to_score(self, total, expected):
        raw = dict(GOOD_RESPONSE, overallRating="excellent")
        assert validate_assessment(raw, total).overall_rating == expected

    def test_rating_normalised(self):
        raw = dict(GOOD_RESPONSE, overallRating=" Promising ")
        assert validate_assessment(raw, 1.0).overall_rating == "promising"

    def test_lists_coerced_and_capped(self):
        raw = dict(GOOD_RESPONSE, strengths="not a list", pitfalls=[1, "", "x"] + ["y"] * 20)
        result = validate_assessment(raw, 3.0)
        assert result.strengths == []
        assert result.pitfalls[:2] == ["1", "x"]
        assert len(result.pitfalls) <= 10

    @pytest.mark.parametrize("raw", [None, [], "text", {"strengths": ["x"]}, {"summary": "  "}])
    def test_unusable_response(self, raw):
        with pytest.raises(AssessmentError):
            validate_assessment(raw, 3.0)


# =========================================================================
# LLM client
# =========================================================================

class TestLLMClient:
    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMClient(provider="nope")

    @pytest.mark.asyncio
    async def test_anthropic_fenced_json(self):
        client = LLMClient(provider="anthropic", api_key="test-key")
        text = "Here you go:\n```json\n" + json.dumps(GOOD_RESPONSE) + "\n```"
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[SimpleNamespace(text=text)]),
        )
        assert await client.call("sys", "user") == GOOD_RESPONSE

    @pytest.mark.asyncio
    async def test_api_failure_is_retryable(self):
        client = LLMClient(provider="anthropic", api_key="test-key")
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(LLMCallError) as exc_info:
            await client.call("sys", "user")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_invalid_json_not_retryable(self):
        client = LLMClient(provider="anthropic", api_key="test-key")
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(
            return_value=SimpleNamespace(content=[SimpleNamespace(text="no json here")]),
        )
        with pytest.raises(LLMCallError) as exc_info:
            await client.call("sys", "user")
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_generate_wraps_llm_errors(self):
        client = MagicMock(spec=LLMClient)
        client.call = AsyncMock(side_effect=LLMCallError("timeout", retryable=True))
        with pytest.raises(AssessmentError, match="timeout"):
            await generate_assessment(make_input(), client)


# =========================================================================
# HTTP endpoint client
# =========================================================================

def _transport(status: int = 200, body=None, text: str | None = None, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if text is not None:
            return httpx.Response(status, text=text)
        return httpx.Response(status, json=body if body is not None else GOOD_RESPONSE)
    return httpx.MockTransport(handler)


class TestHttpAssessmentClient:
    def test_requires_url(self, monkeypatch):
        monkeypatch.delenv("ASSESSMENT_ENDPOINT_URL", raising=False)
        with pytest.raises(ValueError):
            HttpAssessmentClient()

    def test_make_client_http(self, monkeypatch):
        monkeypatch.setenv("ASSESSMENT_PROVIDER", "http")
        monkeypatch.setenv("ASSESSMENT_ENDPOINT_URL", "https://assess.example/api")
        client = make_client()
        assert isinstance(client, HttpAssessmentClient)
        assert client.url == "https://assess.example/api"

    def test_make_client_defaults_to_llm(self, monkeypatch):
        monkeypatch.delenv("ASSESSMENT_PROVIDER", raising=False)
        with patch("stagegate.assessor.LLMClient") as mock_cls:
            make_client()
        mock_cls.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_posts_camel_case_input_with_bearer(self):
        seen: list[httpx.Request] = []
        client = HttpAssessmentClient("https://assess.example/api", api_key="secret",
                                      transport=_transport(seen=seen))
        result = await generate_assessment(make_input(language="de"), client)
        assert result.overall_rating == "promising"
        request = seen[0]
        assert request.headers["Authorization"] == "Bearer secret"
        payload = json.loads(request.content)
        assert payload["language"] == "de"
        assert payload["scoring"]["marketAttractiveness"]["score"] == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,message", [
        (429, "Rate limit"), (402, "credits"), (500, "returned 500"),
    ])
    async def test_error_statuses(self, status, message):
        client = HttpAssessmentClient("https://assess.example/api",
                                      transport=_transport(status, {"error": "x"}))
        with pytest.raises(AssessmentError, match=message):
            await generate_assessment(make_input(), client)

    @pytest.mark.asyncio
    async def test_error_body(self):
        client = HttpAssessmentClient("https://assess.example/api",
                                      transport=_transport(200, {"error": "model overloaded"}))
        with pytest.raises(AssessmentError, match="model overloaded"):
            await generate_assessment(make_input(), client)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = HttpAssessmentClient("https://assess.example/api", transport=_transport(200, text="<html>"))
        with pytest.raises(AssessmentError, match="invalid JSON"):
            await generate_assessment(make_input(), client)

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)
        client = HttpAssessmentClient("https://assess.example/api", transport=httpx.MockTransport(handler))
        with pytest.raises(AssessmentError, match="unreachable"):
            await generate_assessment(make_input(), client)
