"""Scoring engine: weighted five-criterion score shared by rough and detailed scoring.

Every opportunity is rated on five fixed criteria, each an integer 1-5:

- **market_attractiveness** (weight 3)
- **strategic_fit** (weight 3)
- **feasibility** (weight 2)
- **commercial_viability** (weight 2)
- **risk** (weight 1), inverted: a risk of 5 contributes as ``6 - 5 = 1``

The total is ``sum(score * weight) / 11`` rounded half-up to one decimal, so
it always lies in [1.0, 5.0].  ``weighted_score`` is the only place this
arithmetic lives; the rough total, the detailed total and the export all go
through it.
"""
from __future__ import annotations

from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from stagegate.schemas import Criterion, DetailedScoring, Scoring

if TYPE_CHECKING:
    from stagegate.questions import Question


class ScoringError(ValueError):
    """A set of criterion scores is incomplete or out of range."""


CRITERIA: tuple[str, ...] = (
    "market_attractiveness",
    "strategic_fit",
    "feasibility",
    "commercial_viability",
    "risk",
)

WEIGHTS: Mapping[str, int] = {
    "market_attractiveness": 3,
    "strategic_fit": 3,
    "feasibility": 2,
    "commercial_viability": 2,
    "risk": 1,
}
TOTAL_WEIGHT = sum(WEIGHTS.values())

INVERTED = frozenset({"risk"})

# camelCase keys as they appear in stored documents and API payloads
_CAMEL_KEYS = {
    "marketAttractiveness": "market_attractiveness",
    "strategicFit": "strategic_fit",
    "commercialViability": "commercial_viability",
}

RATING_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (4.5, "very_promising"),
    (3.5, "promising"),
    (2.5, "moderate"),
    (1.5, "challenging"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _round_half_up(numerator: int, denominator: int, places: str = "0.1") -> Decimal:
    return (Decimal(numerator) / Decimal(denominator)).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def normalize_scores(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Accept either snake_case or camelCase criterion keys."""
    return {_CAMEL_KEYS.get(k, k): v for k, v in raw.items()}


def validate_scores(scores: Mapping[str, Any]) -> dict[str, int]:
    """Return the five criterion scores, raising ScoringError on bad input."""
    missing = [c for c in CRITERIA if c not in scores]
    if missing:
        raise ScoringError(f"Missing criteria: {', '.join(missing)}")
    out: dict[str, int] = {}
    for c in CRITERIA:
        val = scores[c]
        if isinstance(val, bool) or not isinstance(val, int) or not 1 <= val <= 5:
            raise ScoringError(f"Score for {c} must be an integer from 1 to 5, got {val!r}")
        out[c] = val
    return out


def effective_score(criterion: str, score: int) -> int:
    """Score oriented so that higher is always better."""
    return 6 - score if criterion in INVERTED else score


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


def weighted_score(scores: Mapping[str, Any]) -> float:
    """Weighted average of the five criteria, risk inverted, one decimal."""
    valid = validate_scores(scores)
    weighted_sum = sum(effective_score(c, valid[c]) * WEIGHTS[c] for c in CRITERIA)
    return float(_round_half_up(weighted_sum, TOTAL_WEIGHT))


def calculate_total_score(scoring: Scoring) -> float:
    """Total rough score of an opportunity."""
    return weighted_score(scoring.scores())


def detailed_total_score(detailed: DetailedScoring) -> float:
    """Weighted total of the detailed (business-plan) scoring."""
    return weighted_score(detailed.scores())


def detailed_average(detailed: DetailedScoring) -> float:
    """Unweighted mean of the detailed scores, risk inverted."""
    valid = validate_scores(detailed.scores())
    total = sum(effective_score(c, valid[c]) for c in CRITERIA)
    return float(_round_half_up(total, len(CRITERIA)))


def average_score(totals: list[float]) -> float:
    """Mean of one-decimal totals, rounded half-up like every other figure."""
    if not totals:
        return 0.0
    tenths = sum(int(Decimal(str(t)) * 10) for t in totals)
    return float(_round_half_up(tenths, len(totals) * 10))


def overall_rating(total: float) -> str:
    for threshold, rating in RATING_THRESHOLDS:
        if total >= threshold:
            return rating
    return "critical"


def score_band(total: float) -> str:
    if total >= 3.5:
        return "high"
    if total >= 2.5:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------


def answers_to_scoring(
    answers: Mapping[str, int],
    questions: tuple[Question, ...] | None = None,
    base_scoring: Scoring | None = None,
) -> Scoring:
    """Reduce questionnaire answers to a Scoring.

    Answers are averaged per criterion and rounded half-up to an integer.
    Answers of 0 (or missing) count as unanswered; a criterion without any
    answered question keeps its value from *base_scoring*.  Comments are
    always carried over from the base.
    """
    if questions is None:
        from stagegate.questions import ROUGH_SCORING_QUESTIONS
        questions = ROUGH_SCORING_QUESTIONS
    base = base_scoring or Scoring()

    answered: dict[str, list[int]] = {c: [] for c in CRITERIA}
    for q in questions:
        val = answers.get(q.id, 0)
        if val is None or val <= 0:
            continue
        if val > 5:
            raise ScoringError(f"Answer for {q.id} must be between 0 and 5, got {val!r}")
        answered[q.criterion].append(int(val))

    criteria: dict[str, Criterion] = {}
    for c in CRITERIA:
        prior = getattr(base, c)
        values = answered[c]
        if values:
            score = int(_round_half_up(sum(values), len(values), "1"))
            criteria[c] = Criterion(id=prior.id, score=score, comment=prior.comment)
        else:
            criteria[c] = prior.model_copy()
    return Scoring(**criteria)
