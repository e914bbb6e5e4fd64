from __future__ import annotations

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from stagegate import services
from stagegate.assessor import AssessmentError, make_client
from stagegate.db import current_db_path, init_db, session_generator
from stagegate.exporter import export_xlsx
from stagegate.pipeline import DecisionInputError, GateRecordNotFound, TransitionError
from stagegate.questions import ROUGH_SCORING_QUESTIONS
from stagegate.schemas import (
    AdvanceRequest,
    AssessmentBasis,
    AssessmentRequest,
    BusinessCase,
    DetailedScoring,
    GateDecisionIn,
    GateRecordUpdate,
    GoToMarketPlan,
    ImplementReview,
    OpportunityCreate,
    OpportunityUpdate,
    ScoreRequest,
    Scoring,
    StatsOut,
    StrategicAnalyses,
    WizardAnswers,
)
from stagegate.scoring import ScoringError, normalize_scores, overall_rating, score_band, weighted_score

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("Using database %s", current_db_path())
    yield


app = FastAPI(
    title="Stagegate",
    version="0.1.0",
    description=(
        "Stage-gate pipeline for business development opportunities. "
        "Score ideas, take go / hold / no-go decisions at three gates, and "
        "track opportunities through to market. All endpoints return JSON."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Opportunities", "description": "Create, browse, and edit opportunities."},
        {"name": "Scoring", "description": "Rough and detailed scoring, questionnaire wizard."},
        {"name": "Pipeline", "description": "Stage transitions and gate decisions."},
        {"name": "Assessment", "description": "Narrative assessment via LLM or assessment endpoint."},
        {"name": "Stats", "description": "Aggregate statistics and export."},
        {"name": "Admin", "description": "Administrative operations."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


@contextmanager
def _domain_errors():
    """Translate domain exceptions into HTTP errors."""
    try:
        yield
    except services.OpportunityNotFound as exc:
        raise HTTPException(404, "Opportunity not found") from exc
    except GateRecordNotFound as exc:
        raise HTTPException(404, "Gate record not found") from exc
    except TransitionError as exc:
        raise HTTPException(409, str(exc)) from exc
    except (ScoringError, DecisionInputError, ValidationError) as exc:
        raise HTTPException(422, str(exc)) from exc


def _get_or_404(session: Session, opportunity_id: str):
    opp = services.get_opportunity(session, opportunity_id)
    if opp is None:
        raise HTTPException(404, "Opportunity not found")
    return opp


# ---------------------------------------------------------------------------
# Routes: Opportunities
# ---------------------------------------------------------------------------


@app.get("/api/opportunities", tags=["Opportunities"],
         summary="List opportunities with filtering and sorting")
async def list_opportunities(
    stage: str | None = Query(None, description="Comma-separated stages, e.g. gate1,gate2"),
    industry: str | None = Query(None, description="Comma-separated industries"),
    search: str | None = Query(None, description="Free-text search across title, description, and owner"),
    sort_by: str = Query("created", description="Sort field: created, score, title, stage"),
    sort_dir: str = Query("desc", description="asc or desc"),
    session: Session = Depends(db_session),
):
    items = services.query_opportunities(
        session, stage=stage, industry=industry, search=search, sort_by=sort_by, sort_dir=sort_dir,
    )
    return {"items": items, "total": len(items)}


@app.post("/api/opportunities", status_code=201, tags=["Opportunities"],
          summary="Create a new opportunity in stage 'idea'")
async def create_opportunity(body: OpportunityCreate, session: Session = Depends(db_session)):
    opp = services.create_opportunity(session, **body.model_dump())
    return services.opportunity_detail(opp)


@app.get("/api/opportunities/{opportunity_id}", tags=["Opportunities"],
         summary="Get the full opportunity document with computed scores")
async def get_opportunity(opportunity_id: str, session: Session = Depends(db_session)):
    return services.opportunity_detail(_get_or_404(session, opportunity_id))


@app.put("/api/opportunities/{opportunity_id}", tags=["Opportunities"],
         summary="Update opportunity details (partial update, null fields ignored)")
async def update_opportunity(opportunity_id: str, body: OpportunityUpdate, session: Session = Depends(db_session)):
    if body.title is not None and not body.title.strip():
        raise HTTPException(422, "title must not be empty")
    with _domain_errors():
        opp = services.update_details(session, opportunity_id, body.model_dump())
    return services.opportunity_detail(opp)


@app.delete("/api/opportunities/{opportunity_id}", tags=["Opportunities"],
            summary="Delete an opportunity and its assessments")
async def delete_opportunity(opportunity_id: str, session: Session = Depends(db_session)):
    if not services.delete_opportunity(session, opportunity_id):
        raise HTTPException(404, "Opportunity not found")
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Scoring and sections
# ---------------------------------------------------------------------------


@app.put("/api/opportunities/{opportunity_id}/scoring", tags=["Scoring"],
         summary="Replace the rough scoring")
async def put_scoring(opportunity_id: str, body: Scoring, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.update_scoring(session, opportunity_id, body)
    return services.opportunity_detail(opp)


@app.post("/api/opportunities/{opportunity_id}/scoring/wizard", tags=["Scoring"],
          summary="Derive the rough scoring from questionnaire answers")
async def apply_wizard(opportunity_id: str, body: WizardAnswers, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.apply_wizard_answers(session, opportunity_id, body.answers)
    return services.opportunity_detail(opp)


@app.put("/api/opportunities/{opportunity_id}/detailed-scoring", tags=["Scoring"],
         summary="Replace the detailed scoring")
async def put_detailed_scoring(opportunity_id: str, body: DetailedScoring, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.update_detailed_scoring(session, opportunity_id, body)
    return services.opportunity_detail(opp)


@app.put("/api/opportunities/{opportunity_id}/business-case", tags=["Opportunities"],
         summary="Replace the business case")
async def put_business_case(opportunity_id: str, body: BusinessCase, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.update_business_case(session, opportunity_id, body)
    return services.opportunity_detail(opp)


@app.put("/api/opportunities/{opportunity_id}/strategic-analyses", tags=["Opportunities"],
         summary="Replace the strategic analyses (Ansoff, BCG, SWOT, ...)")
async def put_strategic_analyses(opportunity_id: str, body: StrategicAnalyses,
                                 session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.update_strategic_analyses(session, opportunity_id, body)
    return services.opportunity_detail(opp)


@app.put("/api/opportunities/{opportunity_id}/go-to-market", tags=["Opportunities"],
         summary="Replace the go-to-market plan")
async def put_go_to_market(opportunity_id: str, body: GoToMarketPlan, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.update_go_to_market(session, opportunity_id, body)
    return services.opportunity_detail(opp)


@app.put("/api/opportunities/{opportunity_id}/implement-review", tags=["Opportunities"],
         summary="Replace the implementation review")
async def put_implement_review(opportunity_id: str, body: ImplementReview, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.update_implement_review(session, opportunity_id, body)
    return services.opportunity_detail(opp)


@app.get("/api/questions", tags=["Scoring"], summary="List the rough-scoring questionnaire")
async def list_questions():
    return [q.to_dict() for q in ROUGH_SCORING_QUESTIONS]


@app.post("/api/score", tags=["Scoring"], summary="Compute a weighted total for five criterion scores")
async def score(body: ScoreRequest):
    with _domain_errors():
        total = weighted_score(normalize_scores(body.scores))
    return {"totalScore": total, "rating": overall_rating(total), "band": score_band(total)}


# ---------------------------------------------------------------------------
# Routes: Pipeline
# ---------------------------------------------------------------------------


@app.post("/api/opportunities/{opportunity_id}/advance", tags=["Pipeline"],
          summary="Advance to the next non-gate step")
async def advance(opportunity_id: str, body: AdvanceRequest | None = None, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.advance_stage(session, opportunity_id, body.target if body else None)
    return services.opportunity_detail(opp)


@app.post("/api/opportunities/{opportunity_id}/gates", status_code=201, tags=["Pipeline"],
          summary="Record a go / hold / no-go decision at the current gate")
async def decide_gate(opportunity_id: str, body: GateDecisionIn, session: Session = Depends(db_session)):
    with _domain_errors():
        opp, record = services.decide_gate(
            session, opportunity_id, decision=body.decision, decider=body.decider, comment=body.comment,
        )
    detail = services.opportunity_detail(opp)
    detail["record"] = record.model_dump(mode="json", by_alias=True)
    return detail


@app.put("/api/opportunities/{opportunity_id}/gates/{gate_id}", tags=["Pipeline"],
         summary="Edit a gate record (the stage is not recomputed)")
async def edit_gate(opportunity_id: str, gate_id: str, body: GateRecordUpdate,
                    session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.edit_gate(
            session, opportunity_id, gate_id,
            decision=body.decision, comment=body.comment, decider=body.decider,
        )
    return services.opportunity_detail(opp)


@app.delete("/api/opportunities/{opportunity_id}/gates/{gate_id}", tags=["Pipeline"],
            summary="Delete a gate record (the stage is not recomputed)")
async def delete_gate(opportunity_id: str, gate_id: str, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.delete_gate(session, opportunity_id, gate_id)
    return services.opportunity_detail(opp)


@app.post("/api/opportunities/{opportunity_id}/revert", tags=["Pipeline"],
          summary="Move one stage back, dropping gate records that now lie ahead")
async def revert(opportunity_id: str, session: Session = Depends(db_session)):
    with _domain_errors():
        opp = services.revert_stage(session, opportunity_id)
    return services.opportunity_detail(opp)


# ---------------------------------------------------------------------------
# Routes: Assessment
# ---------------------------------------------------------------------------


@app.post("/api/opportunities/{opportunity_id}/assessment", tags=["Assessment"],
          summary="Generate a narrative assessment of the scoring")
async def create_assessment(opportunity_id: str, body: AssessmentRequest | None = None,
                            session: Session = Depends(db_session)):
    body = body or AssessmentRequest()
    _get_or_404(session, opportunity_id)
    try:
        client = make_client()
    except Exception as exc:
        raise HTTPException(503, f"Assessment service not configured: {exc}") from exc
    try:
        with _domain_errors():
            result = await services.run_assessment(
                session, opportunity_id, basis=body.basis, answers=body.answers,
                language=body.language, client=client,
            )
    except AssessmentError as exc:
        log.warning("Assessment failed for %s: %s", opportunity_id, exc)
        raise HTTPException(502, f"Assessment failed: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(409, str(exc)) from exc
    return result.model_dump(mode="json", by_alias=True)


@app.get("/api/opportunities/{opportunity_id}/assessment", tags=["Assessment"],
         summary="Load the latest stored assessment")
async def get_assessment(opportunity_id: str, basis: AssessmentBasis = Query("rough", description="rough or detailed"),
                         session: Session = Depends(db_session)):
    _get_or_404(session, opportunity_id)
    result = services.load_assessment(session, opportunity_id, basis)
    if result is None:
        raise HTTPException(404, "No assessment yet")
    return result.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Routes: Stats & Export
# ---------------------------------------------------------------------------


@app.get("/api/stats", response_model=StatsOut,
         tags=["Stats"], summary="Get aggregate statistics and breakdowns")
async def get_stats(session: Session = Depends(db_session)):
    return services.compute_stats(session)


@app.get("/api/export.xlsx", tags=["Stats"], summary="Download all opportunities as an XLSX workbook")
async def export(session: Session = Depends(db_session)):
    content = export_xlsx(services.list_opportunities(session))
    return Response(
        content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="stagegate.xlsx"'},
    )


# ---------------------------------------------------------------------------
# Routes: Reset
# ---------------------------------------------------------------------------


@app.delete("/api/reset", tags=["Admin"], summary="Delete all opportunities and assessments")
async def reset_db(session: Session = Depends(db_session)):
    services.reset(session)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("stagegate.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
