"""Narrative assessment of an opportunity's scoring.

The assessment turns a rough scoring (plus the questionnaire answers behind
it) into a short structured verdict::

    {summary, strengths[], weaknesses[], nextSteps[], pitfalls[], overallRating}

Two collaborators can produce it:

- ``LLMClient`` calls Anthropic or OpenAI directly with the prompts below.
- ``HttpAssessmentClient`` posts the input document to a self-hosted
  endpoint (``ASSESSMENT_ENDPOINT_URL``) that returns the result as JSON.

Either way the raw response is normalised by ``validate_assessment``.  The
call is made once; failures surface as ``AssessmentError`` with no partial
result and no retry.
"""
from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

import httpx

from stagegate.schemas import AssessmentInput, AssessmentResult
from stagegate.scoring import CRITERIA, calculate_total_score, overall_rating

log = logging.getLogger(__name__)


class LLMCallError(Exception):
    """LLM call failed or returned unparseable output."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class AssessmentError(Exception):
    """The assessment could not be produced; the caller may try again."""


VALID_RATINGS = {"very_promising", "promising", "moderate", "challenging", "critical"}
_MAX_ITEMS = 10

_LANGUAGE_NAMES = {"en": "English", "de": "German"}

_CRITERION_LABELS = {
    "market_attractiveness": "Market attractiveness",
    "strategic_fit": "Strategic fit",
    "feasibility": "Feasibility",
    "commercial_viability": "Commercial viability",
    "risk": "Risk (higher = riskier)",
}


# ---------------------------------------------------------------------------
# LLM Client
# ---------------------------------------------------------------------------

_DEFAULT_MODELS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
    "openai_compatible": "gpt-4o-mini",
}

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


def _extract_json(text: str) -> dict[str, Any]:
    """Parse a JSON object, tolerating a surrounding markdown fence."""
    text = text.strip()
    m = _FENCED_JSON.search(text)
    if m:
        text = m.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise LLMCallError(f"LLM returned invalid JSON: {text[:200]}", retryable=False) from exc


class LLMClient:
    """Async Anthropic / OpenAI client that answers with a JSON object.

    Provider and model come from ``LLM_PROVIDER`` / ``LLM_MODEL`` unless
    passed explicitly; keys from ``ANTHROPIC_API_KEY`` or ``OPENAI_API_KEY``
    (plus ``OPENAI_BASE_URL`` for compatible servers).
    """

    max_tokens = 1500

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self.provider = provider or os.environ.get("LLM_PROVIDER", "anthropic")
        if self.provider not in _DEFAULT_MODELS:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")
        self.model = model or os.environ.get("LLM_MODEL") or _DEFAULT_MODELS[self.provider]
        if self.provider == "anthropic":
            import anthropic
            self._client: Any = anthropic.AsyncAnthropic(
                api_key=api_key or os.environ.get("ANTHROPIC_API_KEY"),
            )
        else:
            import openai
            kwargs: dict[str, Any] = {}
            if key := api_key or os.environ.get("OPENAI_API_KEY"):
                kwargs["api_key"] = key
            if url := base_url or os.environ.get("OPENAI_BASE_URL"):
                kwargs["base_url"] = url
            self._client = openai.AsyncOpenAI(**kwargs)

    async def _anthropic_text(self, system: str, user: str) -> str:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return response.content[0].text

    async def _openai_text(self, system: str, user: str) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        return response.choices[0].message.content or "{}"

    async def call(self, system: str, user: str) -> dict[str, Any]:
        """One request, no retry; the reply must be a JSON object."""
        fetch = self._anthropic_text if self.provider == "anthropic" else self._openai_text
        try:
            text = await fetch(system, user)
        except Exception as exc:
            raise LLMCallError(f"LLM API call failed: {exc}", retryable=True) from exc
        return _extract_json(text)


# ---------------------------------------------------------------------------
# HTTP endpoint client
# ---------------------------------------------------------------------------


class HttpAssessmentClient:
    """Posts the assessment input to an external endpoint."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or os.environ.get("ASSESSMENT_ENDPOINT_URL", "")
        if not self.url:
            raise ValueError("ASSESSMENT_ENDPOINT_URL is not configured")
        self._api_key = api_key or os.environ.get("ASSESSMENT_API_KEY")
        self._transport = transport
        self.model = self.url

    async def assess(self, inp: AssessmentInput) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        payload = inp.model_dump(mode="json", by_alias=True)
        try:
            async with httpx.AsyncClient(transport=self._transport) as http:
                resp = await http.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise AssessmentError(f"Assessment endpoint unreachable: {exc}") from exc

        if resp.status_code == 429:
            raise AssessmentError("Rate limit exceeded. Please try again later.")
        if resp.status_code == 402:
            raise AssessmentError("Assessment credits exhausted.")
        if resp.status_code >= 400:
            log.warning("Assessment endpoint error %s: %s", resp.status_code, resp.text[:200])
            raise AssessmentError(f"Assessment endpoint returned {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise AssessmentError("Assessment endpoint returned invalid JSON") from exc
        if isinstance(data, dict) and data.get("error"):
            raise AssessmentError(str(data["error"]))
        return data


def make_client(provider: str | None = None) -> LLMClient | HttpAssessmentClient:
    """Build the configured collaborator (``ASSESSMENT_PROVIDER``: llm | http)."""
    provider = provider or os.environ.get("ASSESSMENT_PROVIDER", "llm")
    if provider == "http":
        return HttpAssessmentClient()
    return LLMClient()


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


def build_system_prompt(language: str) -> str:
    lang = _LANGUAGE_NAMES.get(language, "English")
    return f"""\
You are a business innovation analyst. Analyze innovation opportunities and \
provide structured assessments. Always respond in {lang}.

Respond with ONLY valid JSON:
{{
  "summary": "<2-3 sentence overall summary>",
  "strengths": ["<2-4 key strengths>"],
  "weaknesses": ["<2-4 key weaknesses or areas for improvement>"],
  "nextSteps": ["<3-5 concrete recommended next steps>"],
  "pitfalls": ["<2-3 potential pitfalls to watch out for>"],
  "overallRating": "<very_promising|promising|moderate|challenging|critical>"
}}

Base overallRating on the weighted total score: very_promising (>=4.5), \
promising (>=3.5), moderate (>=2.5), challenging (>=1.5), critical (<1.5).
"""


def build_user_prompt(inp: AssessmentInput) -> str:
    scores = inp.scoring.scores()
    lines = ["Analyze this innovation opportunity and provide a structured assessment.", ""]
    if inp.title:
        lines.append(f"Title: {inp.title}")
    if inp.description:
        lines.append(f"Description: {inp.description}")
    lines.append("")
    lines.append("Scoring Summary:")
    for c in CRITERIA:
        crit = getattr(inp.scoring, c)
        line = f"- {_CRITERION_LABELS[c]}: Score {scores[c]}/5"
        if crit.comment:
            line += f" ({crit.comment})"
        lines.append(line)
    lines.append(f"Weighted total score: {calculate_total_score(inp.scoring)}/5")
    if inp.answers:
        lines.append("")
        lines.append("Individual Answers:")
        lines.extend(f"- {key}: {val}/5" for key, val in inp.answers.items())
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value[:_MAX_ITEMS] if str(v).strip()]


def validate_assessment(raw: Any, total_score: float) -> AssessmentResult:
    """Normalise a raw response; an unknown rating falls back to the score's."""
    if not isinstance(raw, dict):
        raise AssessmentError("Assessment response is not a JSON object")
    summary = str(raw.get("summary") or "").strip()
    if not summary:
        raise AssessmentError("Assessment response has no summary")

    rating = str(raw.get("overallRating") or raw.get("overall_rating") or "").strip().lower()
    if rating not in VALID_RATINGS:
        fallback = overall_rating(total_score)
        log.warning("Unrecognizable rating %r, using %s from score %.1f", rating, fallback, total_score)
        rating = fallback

    return AssessmentResult(
        summary=summary,
        strengths=_str_list(raw.get("strengths")),
        weaknesses=_str_list(raw.get("weaknesses")),
        next_steps=_str_list(raw.get("nextSteps", raw.get("next_steps"))),
        pitfalls=_str_list(raw.get("pitfalls")),
        overall_rating=rating,
    )


async def generate_assessment(
    inp: AssessmentInput, client: LLMClient | HttpAssessmentClient,
) -> AssessmentResult:
    """Produce one assessment; raises AssessmentError on any failure."""
    total = calculate_total_score(inp.scoring)
    try:
        if isinstance(client, HttpAssessmentClient):
            raw = await client.assess(inp)
        else:
            raw = await client.call(build_system_prompt(inp.language), build_user_prompt(inp))
    except LLMCallError as exc:
        raise AssessmentError(str(exc)) from exc
    return validate_assessment(raw, total)
