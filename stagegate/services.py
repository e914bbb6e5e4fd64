"""Shared business logic for the Stagegate API and MCP server.

Every mutation follows the same shape: load the opportunity, apply a pure
transition from ``pipeline`` / ``scoring``, then save the whole document.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stagegate import pipeline
from stagegate.assessor import HttpAssessmentClient, LLMClient, generate_assessment, make_client
from stagegate.repository import OpportunityRepository
from stagegate.schemas import (
    AssessmentInput,
    AssessmentResult,
    BusinessCase,
    Criterion,
    DetailedScoring,
    GateDecision,
    GateRecord,
    GoToMarketPlan,
    ImplementReview,
    Opportunity,
    Scoring,
    Stage,
    StrategicAnalyses,
)
from stagegate.scoring import (
    CRITERIA,
    answers_to_scoring,
    average_score,
    calculate_total_score,
    detailed_average,
    detailed_total_score,
    overall_rating,
    score_band,
)

log = logging.getLogger(__name__)


class OpportunityNotFound(LookupError):
    pass


# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

UPDATABLE_FIELDS = ("title", "description", "industry", "geography", "technology", "owner")

SECTION_FIELDS = (
    "detailed_scoring", "business_case", "strategic_analyses",
    "go_to_market_plan", "implement_review",
)

# ---------------------------------------------------------------------------
# Loading and saving
# ---------------------------------------------------------------------------


def get_opportunity(session: Session, opportunity_id: str) -> Opportunity | None:
    return OpportunityRepository(session).get(opportunity_id)


def require_opportunity(session: Session, opportunity_id: str) -> Opportunity:
    opp = get_opportunity(session, opportunity_id)
    if opp is None:
        raise OpportunityNotFound(opportunity_id)
    return opp


def require_editable(session: Session, opportunity_id: str) -> Opportunity:
    """Load an opportunity whose scoring and sections may still change."""
    opp = require_opportunity(session, opportunity_id)
    if opp.stage == Stage.CLOSED:
        raise pipeline.TransitionError(f"Opportunity {opportunity_id} is closed and read-only")
    return opp


def list_opportunities(session: Session) -> list[Opportunity]:
    return OpportunityRepository(session).list_all()


def save(session: Session, opp: Opportunity) -> Opportunity:
    """Upsert the whole document and commit.

    A failed write is logged and re-raised; the transition result handed in
    is not rolled back, it simply never reaches the store.
    """
    try:
        OpportunityRepository(session).save(opp)
        session.commit()
    except SQLAlchemyError:
        log.exception("Failed to save opportunity %s", opp.id)
        session.rollback()
        raise
    return opp


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def apply_updates(obj, updates: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to a model object."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            setattr(obj, field, val)


def create_opportunity(
    session: Session, *, title: str, description: str = "", industry: str = "",
    geography: str = "", technology: str = "", owner: str = "",
) -> Opportunity:
    """New opportunity in stage ``idea`` with a neutral scoring (all 3s)."""
    opp = Opportunity(
        title=title, description=description or "", industry=industry or "",
        geography=geography or "", technology=technology or "", owner=owner or "",
    )
    log.info("Created opportunity %s (%s)", opp.id, opp.title)
    return save(session, opp)


def update_details(session: Session, opportunity_id: str, updates: dict[str, Any]) -> Opportunity:
    opp = require_opportunity(session, opportunity_id)
    apply_updates(opp, updates, UPDATABLE_FIELDS)
    return save(session, opp)


def delete_opportunity(session: Session, opportunity_id: str) -> bool:
    deleted = OpportunityRepository(session).delete(opportunity_id)
    if deleted:
        session.commit()
    return deleted


def update_scoring(session: Session, opportunity_id: str, scoring: Scoring) -> Opportunity:
    opp = require_editable(session, opportunity_id)
    opp.scoring = scoring
    return save(session, opp)


def apply_wizard_answers(session: Session, opportunity_id: str, answers: dict[str, int]) -> Opportunity:
    opp = require_editable(session, opportunity_id)
    opp.scoring = answers_to_scoring(answers, base_scoring=opp.scoring)
    return save(session, opp)


def update_section(session: Session, opportunity_id: str, field: str, value: BaseModel) -> Opportunity:
    """Replace one of the optional sections (detailed scoring, business case, ...)."""
    if field not in SECTION_FIELDS:
        raise ValueError(f"Unknown section {field!r}")
    opp = require_editable(session, opportunity_id)
    setattr(opp, field, value)
    return save(session, opp)


def update_detailed_scoring(session: Session, opportunity_id: str, value: DetailedScoring) -> Opportunity:
    return update_section(session, opportunity_id, "detailed_scoring", value)


def update_business_case(session: Session, opportunity_id: str, value: BusinessCase) -> Opportunity:
    return update_section(session, opportunity_id, "business_case", value)


def update_strategic_analyses(session: Session, opportunity_id: str, value: StrategicAnalyses) -> Opportunity:
    return update_section(session, opportunity_id, "strategic_analyses", value)


def update_go_to_market(session: Session, opportunity_id: str, value: GoToMarketPlan) -> Opportunity:
    return update_section(session, opportunity_id, "go_to_market_plan", value)


def update_implement_review(session: Session, opportunity_id: str, value: ImplementReview) -> Opportunity:
    return update_section(session, opportunity_id, "implement_review", value)


# ---------------------------------------------------------------------------
# Stage transitions
# ---------------------------------------------------------------------------


def advance_stage(session: Session, opportunity_id: str, target: Stage | None = None) -> Opportunity:
    opp = require_opportunity(session, opportunity_id)
    return save(session, pipeline.advance(opp, target))


def decide_gate(
    session: Session, opportunity_id: str, *, decision: GateDecision | str,
    decider: str, comment: str = "",
) -> tuple[Opportunity, GateRecord]:
    opp = require_opportunity(session, opportunity_id)
    updated, record = pipeline.submit_gate_decision(opp, decision, decider, comment)
    return save(session, updated), record


def revert_stage(session: Session, opportunity_id: str) -> Opportunity:
    opp = require_opportunity(session, opportunity_id)
    return save(session, pipeline.revert(opp))


def edit_gate(
    session: Session, opportunity_id: str, gate_id: str, *,
    decision: GateDecision | str | None = None, comment: str | None = None, decider: str | None = None,
) -> Opportunity:
    opp = require_opportunity(session, opportunity_id)
    updated = pipeline.edit_gate_record(opp, gate_id, decision=decision, comment=comment, decider=decider)
    return save(session, updated)


def delete_gate(session: Session, opportunity_id: str, gate_id: str) -> Opportunity:
    opp = require_opportunity(session, opportunity_id)
    return save(session, pipeline.delete_gate_record(opp, gate_id))


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------


def scoring_for_basis(opp: Opportunity, basis: str) -> Scoring:
    """The scoring an assessment is based on: rough, or the detailed scores."""
    if basis == "rough":
        return opp.scoring
    if basis != "detailed":
        raise ValueError(f"Unknown assessment basis {basis!r}")
    if opp.detailed_scoring is None:
        raise ValueError("Opportunity has no detailed scoring yet")
    scores = opp.detailed_scoring.scores()
    return Scoring(**{c: Criterion(id=to_camel(c), score=scores[c]) for c in CRITERIA})


async def run_assessment(
    session: Session, opportunity_id: str, *, basis: str = "rough",
    answers: dict[str, int] | None = None, language: str = "en",
    client: LLMClient | HttpAssessmentClient | None = None,
) -> AssessmentResult:
    """Generate and store an assessment (caller need not commit)."""
    opp = require_opportunity(session, opportunity_id)
    scoring = scoring_for_basis(opp, basis)
    if client is None:
        client = make_client()
    inp = AssessmentInput(
        scoring=scoring, answers=answers or {},
        title=opp.title, description=opp.description or None, language=language,
    )
    result = await generate_assessment(inp, client)
    OpportunityRepository(session).save_assessment(opp.id, basis, result, llm_model=client.model)
    session.commit()
    return result


def load_assessment(session: Session, opportunity_id: str, basis: str = "rough") -> AssessmentResult | None:
    return OpportunityRepository(session).load_assessment(opportunity_id, basis)


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def opportunity_summary(opp: Opportunity) -> dict:
    total = calculate_total_score(opp.scoring)
    return {
        "id": opp.id, "title": opp.title, "description": opp.description,
        "industry": opp.industry, "geography": opp.geography,
        "technology": opp.technology, "owner": opp.owner,
        "stage": opp.stage.value, "createdAt": opp.created_at,
        "totalScore": total, "rating": overall_rating(total), "band": score_band(total),
        "gateCount": len(opp.gates),
    }


def opportunity_detail(opp: Opportunity) -> dict:
    base = opp.model_dump(mode="json", by_alias=True)
    total = calculate_total_score(opp.scoring)
    actions = pipeline.available_actions(opp)
    leads = None
    if opp.go_to_market_plan and opp.go_to_market_plan.lead_generation:
        target, actual = opp.go_to_market_plan.lead_generation.lead_totals()
        leads = {"target": target, "actual": actual}
    base.update({
        "totalScore": total,
        "rating": overall_rating(total),
        "band": score_band(total),
        "detailedTotalScore": detailed_total_score(opp.detailed_scoring) if opp.detailed_scoring else None,
        "detailedAverage": detailed_average(opp.detailed_scoring) if opp.detailed_scoring else None,
        "leadTotals": leads,
        "actions": {
            "advanceTo": actions["advance_to"].value if actions["advance_to"] else None,
            "canDecide": actions["can_decide"],
            "canRevert": actions["can_revert"],
        },
    })
    return base


# ---------------------------------------------------------------------------
# Filtering and sorting
# ---------------------------------------------------------------------------


def filter_and_sort(
    items: list[dict], *, stage=None, industry=None, search=None,
    sort_by="created", sort_dir="desc",
) -> list[dict]:
    if stage:
        ss = {s.strip().lower() for s in stage.split(",")}
        items = [i for i in items if i["stage"] in ss]
    if industry:
        ins = {s.strip().casefold() for s in industry.split(",")}
        items = [i for i in items if (i.get("industry") or "").casefold() in ins]
    if search:
        q = search.lower()
        items = [i for i in items if q in i["title"].lower()
                 or q in (i.get("description") or "").lower() or q in (i.get("owner") or "").lower()]

    def sort_key(item: dict):
        if sort_by == "score":
            return item["totalScore"]
        if sort_by == "title":
            return item["title"].lower()
        if sort_by == "stage":
            return pipeline.stage_index(item["stage"])
        return item["createdAt"]

    items.sort(key=sort_key, reverse=(sort_dir == "desc"))
    return items


def query_opportunities(session: Session, **filters) -> list[dict]:
    items = [opportunity_summary(o) for o in list_opportunities(session)]
    return filter_and_sort(items, **filters)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


def compute_stats(session: Session) -> dict:
    opportunities = list_opportunities(session)
    by_stage: Counter[str] = Counter()
    by_industry: Counter[str] = Counter()
    by_geography: Counter[str] = Counter()
    by_technology: Counter[str] = Counter()
    top: tuple[float, Opportunity] | None = None
    totals: list[float] = []
    for opp in opportunities:
        by_stage[opp.stage.value] += 1
        by_industry[opp.industry or "Other"] += 1
        by_geography[opp.geography or "Other"] += 1
        by_technology[opp.technology or "Other"] += 1
        total = calculate_total_score(opp.scoring)
        totals.append(total)
        if top is None or total > top[0]:
            top = (total, opp)
    count = len(opportunities)
    return {
        "total": count,
        "active": count - by_stage.get(Stage.CLOSED.value, 0),
        "average_score": average_score(totals),
        "top_scorer": {"id": top[1].id, "title": top[1].title, "totalScore": top[0]} if top else None,
        "go_to_market_count": by_stage.get(Stage.GO_TO_MARKET.value, 0),
        "by_stage": dict(by_stage),
        "by_industry": dict(by_industry),
        "by_geography": dict(by_geography),
        "by_technology": dict(by_technology),
    }


def reset(session: Session) -> None:
    OpportunityRepository(session).delete_all()
    session.commit()
