from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from stagegate import services
from stagegate.assessor import AssessmentError
from stagegate.db import init_db, session_scope
from stagegate.pipeline import DecisionInputError, STAGE_ORDER, TransitionError
from stagegate.schemas import AssessmentBasis, Criterion, Language, Scoring
from stagegate.scoring import CRITERIA, WEIGHTS, ScoringError

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def stagegate_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "Stagegate",
    instructions=(
        "Stagegate tracks business development opportunities through a stage-gate "
        "pipeline. Start with get_stats() for an overview, then list_opportunities() "
        "to browse and get_opportunity(id) for the full document. Score with "
        "score_opportunity(), move forward with advance_opportunity() and "
        "decide_gate(), and step back with revert_opportunity()."
    ),
    lifespan=stagegate_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found(opportunity_id: str) -> dict:
    return {"error": f"Opportunity {opportunity_id} not found"}


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("stagegate://overview")
def stagegate_overview() -> str:
    """Overview of Stagegate: stages, gates, and how scores are computed."""
    return json.dumps({
        "system": "Stagegate: stage-gate pipeline for business development opportunities",
        "stages": [s.value for s in STAGE_ORDER],
        "gates": {
            "gate1": "go -> detailed_scoring",
            "gate2": "go -> business_case",
            "gate3": "go -> go_to_market",
            "any": "no-go -> closed, hold -> stays at the gate",
        },
        "scoring": {
            "criteria": list(CRITERIA),
            "weights": WEIGHTS,
            "scale": "1-5 per criterion; risk is inverted (5 = riskiest). Total is a weighted mean, one decimal.",
        },
        "workflow": [
            "1. get_stats() for counts per stage.",
            "2. list_opportunities() to browse (filter by stage, industry, search).",
            "3. create_opportunity(title, ...) starts a new idea.",
            "4. score_opportunity(id, ...) sets the rough scoring.",
            "5. advance_opportunity(id) steps to the next gate; decide_gate(id, decision, decider) decides it.",
            "6. assess_opportunity(id) requests a narrative assessment.",
        ],
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Opportunities
# ---------------------------------------------------------------------------


@mcp.tool()
def list_opportunities(
    stage: str | None = None, industry: str | None = None, search: str | None = None,
    sort_by: str = "created", sort_dir: str = "desc", limit: int = 50,
) -> list[dict]:
    """List and filter opportunities.

    Args:
        stage: Comma-separated stages, e.g. "gate1,gate2".
        industry: Comma-separated industries.
        search: Free-text search across title, description, and owner.
        sort_by: Sort field: created, score, title, stage.
        sort_dir: Sort direction: asc or desc.
        limit: Max results (default 50, max 500).
    """
    with session_scope() as session:
        items = services.query_opportunities(
            session, stage=stage, industry=industry, search=search, sort_by=sort_by, sort_dir=sort_dir,
        )
        return items[:max(1, min(limit, 500))]


@mcp.tool()
def get_opportunity(opportunity_id: str) -> dict:
    """Get the full opportunity document with computed scores and available actions."""
    with session_scope() as session:
        opp = services.get_opportunity(session, opportunity_id)
        return services.opportunity_detail(opp) if opp else _not_found(opportunity_id)


@mcp.tool()
def create_opportunity(
    title: str, description: str = "", industry: str = "",
    geography: str = "", technology: str = "", owner: str = "",
) -> dict:
    """Create a new opportunity in stage 'idea' with neutral scores."""
    if not title.strip():
        return {"error": "title must not be empty"}
    with session_scope() as session:
        opp = services.create_opportunity(
            session, title=title.strip(), description=description, industry=industry,
            geography=geography, technology=technology, owner=owner,
        )
        return services.opportunity_detail(opp)


@mcp.tool()
def score_opportunity(
    opportunity_id: str,
    market_attractiveness: int, strategic_fit: int, feasibility: int,
    commercial_viability: int, risk: int,
) -> dict:
    """Set the rough scoring. Each score is 1-5; for risk, 5 means highest risk.

    Existing per-criterion comments are kept.
    """
    values = {
        "market_attractiveness": market_attractiveness, "strategic_fit": strategic_fit,
        "feasibility": feasibility, "commercial_viability": commercial_viability, "risk": risk,
    }
    with session_scope() as session:
        opp = services.get_opportunity(session, opportunity_id)
        if opp is None:
            return _not_found(opportunity_id)
        try:
            scoring = Scoring(**{
                c: Criterion(id=getattr(opp.scoring, c).id, score=values[c],
                             comment=getattr(opp.scoring, c).comment)
                for c in CRITERIA
            })
        except ValidationError as exc:
            return {"error": f"Invalid scores: {exc.errors()[0]['msg']}"}
        try:
            opp = services.update_scoring(session, opportunity_id, scoring)
        except TransitionError as exc:
            return {"error": str(exc)}
        return services.opportunity_detail(opp)


@mcp.tool()
def apply_questionnaire(opportunity_id: str, answers: dict[str, int]) -> dict:
    """Derive the rough scoring from questionnaire answers (question id -> 0-5, 0 = unanswered)."""
    with session_scope() as session:
        try:
            opp = services.apply_wizard_answers(session, opportunity_id, answers)
        except services.OpportunityNotFound:
            return _not_found(opportunity_id)
        except (ScoringError, TransitionError) as exc:
            return {"error": str(exc)}
        return services.opportunity_detail(opp)


# ---------------------------------------------------------------------------
# Tools: Pipeline
# ---------------------------------------------------------------------------


@mcp.tool()
def advance_opportunity(opportunity_id: str) -> dict:
    """Advance to the next non-gate step (idea -> rough_scoring -> gate1, etc.)."""
    with session_scope() as session:
        try:
            opp = services.advance_stage(session, opportunity_id)
        except services.OpportunityNotFound:
            return _not_found(opportunity_id)
        except TransitionError as exc:
            return {"error": str(exc)}
        return services.opportunity_detail(opp)


@mcp.tool()
def decide_gate(opportunity_id: str, decision: str, decider: str, comment: str = "") -> dict:
    """Record a gate decision at the current gate.

    Args:
        decision: go, hold, or no-go.
        decider: Name of the person taking the decision (required).
        comment: Optional rationale.
    """
    with session_scope() as session:
        try:
            opp, record = services.decide_gate(
                session, opportunity_id, decision=decision, decider=decider, comment=comment,
            )
        except services.OpportunityNotFound:
            return _not_found(opportunity_id)
        except (TransitionError, DecisionInputError, ValueError) as exc:
            return {"error": str(exc)}
        detail = services.opportunity_detail(opp)
        detail["record"] = record.model_dump(mode="json", by_alias=True)
        return detail


@mcp.tool()
def revert_opportunity(opportunity_id: str) -> dict:
    """Move one stage back. Gate records for gates no longer passed are dropped."""
    with session_scope() as session:
        try:
            return services.opportunity_detail(services.revert_stage(session, opportunity_id))
        except services.OpportunityNotFound:
            return _not_found(opportunity_id)


# ---------------------------------------------------------------------------
# Tools: Assessment & Stats
# ---------------------------------------------------------------------------


@mcp.tool()
async def assess_opportunity(
    opportunity_id: str, basis: AssessmentBasis = "rough", language: Language = "en",
) -> dict:
    """Generate a narrative assessment (strengths, weaknesses, next steps) of the scoring.

    Requires LLM credentials or ASSESSMENT_ENDPOINT_URL.
    """
    with session_scope() as session:
        try:
            result = await services.run_assessment(session, opportunity_id, basis=basis, language=language)
        except services.OpportunityNotFound:
            return _not_found(opportunity_id)
        except AssessmentError as exc:
            return {"error": f"Assessment failed: {exc}"}
        except ValueError as exc:
            return {"error": str(exc)}
        except Exception as exc:
            log.warning("Assessment for %s could not run: %s", opportunity_id, exc)
            return {"error": f"Assessment failed: {exc}"}
        return result.model_dump(mode="json", by_alias=True)


@mcp.tool()
def get_stats() -> dict:
    """Get summary statistics: totals, average score, top scorer, counts per stage and dimension."""
    with session_scope() as session:
        return services.compute_stats(session)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Stagegate MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
