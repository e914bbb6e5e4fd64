"""Pydantic domain records and request/response schemas for the Stagegate API.

Python attributes are snake_case; the JSON documents (stored and served) use
camelCase keys, e.g. ``marketAttractiveness`` or ``createdAt``.
"""
from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from stagegate.utils import new_id, utcnow_iso


class Stage(StrEnum):
    IDEA = "idea"
    ROUGH_SCORING = "rough_scoring"
    GATE1 = "gate1"
    DETAILED_SCORING = "detailed_scoring"
    GATE2 = "gate2"
    BUSINESS_CASE = "business_case"
    GATE3 = "gate3"
    GO_TO_MARKET = "go_to_market"
    CLOSED = "closed"


class GateDecision(StrEnum):
    GO = "go"
    HOLD = "hold"
    NO_GO = "no-go"


GateName = Literal["gate1", "gate2", "gate3"]
Rating = Literal["very_promising", "promising", "moderate", "challenging", "critical"]
Language = Literal["en", "de"]
AssessmentBasis = Literal["rough", "detailed"]


class _Doc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Rough scoring
# ---------------------------------------------------------------------------


class Criterion(_Doc):
    id: str
    score: int = Field(3, ge=1, le=5)
    comment: str = ""


def _criterion(key: str):
    return Field(default_factory=lambda: Criterion(id=to_camel(key)))


class Scoring(_Doc):
    market_attractiveness: Criterion = _criterion("market_attractiveness")
    strategic_fit: Criterion = _criterion("strategic_fit")
    feasibility: Criterion = _criterion("feasibility")
    commercial_viability: Criterion = _criterion("commercial_viability")
    risk: Criterion = _criterion("risk")

    def scores(self) -> dict[str, int]:
        return {key: getattr(self, key).score for key in type(self).model_fields}


# ---------------------------------------------------------------------------
# Detailed scoring
# ---------------------------------------------------------------------------


class CustomerSegment(_Doc):
    name: str = ""
    size: float = 0
    description: str = ""


class CompetitorEntry(_Doc):
    name: str = ""
    market_share: float = 0
    threat_level: int = Field(3, ge=1, le=5)


class GeographicalRegion(_Doc):
    region: str = ""
    potential: int = Field(3, ge=1, le=5)
    market_size: str = ""
    notes: str = ""


class MarketAnalysis(_Doc):
    tam: str = ""
    tam_description: str = ""
    sam: str = ""
    sam_description: str = ""
    market_growth_rate: str = ""
    target_customers: str = ""
    customer_relationship: str = ""
    customer_segments: list[CustomerSegment] = []
    competitors: str = ""
    competitive_position: str = ""
    competitor_entries: list[CompetitorEntry] = []
    geographical_regions: list[GeographicalRegion] = []


class MarketAttractivenessDetail(_Doc):
    score: int = Field(3, ge=1, le=5)
    analysis: MarketAnalysis = Field(default_factory=MarketAnalysis)


class AlignmentDimension(_Doc):
    key: str
    label: str = ""
    current: int = Field(3, ge=1, le=5)
    required: int = Field(3, ge=1, le=5)


class CapabilityGap(_Doc):
    id: str = Field(default_factory=new_id)
    capability: str = ""
    current_level: int = Field(1, ge=1, le=5)
    required_level: int = Field(3, ge=1, le=5)
    action: str = ""
    priority: Literal["high", "medium", "low"] = "medium"


class StrategicFitDetail(_Doc):
    score: int = Field(3, ge=1, le=5)
    details: str = ""
    alignment_dimensions: list[AlignmentDimension] = []
    capability_gaps: list[CapabilityGap] = []


class Milestone(_Doc):
    id: str = Field(default_factory=new_id)
    name: str = ""
    target_date: str = ""
    status: Literal["planned", "in_progress", "completed", "delayed"] = "planned"


class FeasibilityDetail(_Doc):
    score: int = Field(3, ge=1, le=5)
    details: str = ""
    trl: int = Field(1, ge=1, le=9)
    milestones: list[Milestone] = []


class RevenueProjection(_Doc):
    year: int
    revenue: float = 0
    costs: float = 0


def _default_projections() -> list[RevenueProjection]:
    return [RevenueProjection(year=y) for y in range(1, 6)]


class CommercialViabilityDetail(_Doc):
    score: int = Field(3, ge=1, le=5)
    details: str = ""
    pricing_model: str = ""
    unit_price: float = 0
    gross_margin: float = 0
    projections: list[RevenueProjection] = Field(default_factory=_default_projections)
    break_even_units: float = 0


class RiskItem(_Doc):
    id: str = Field(default_factory=new_id)
    name: str = ""
    category: Literal["market", "technical", "regulatory", "execution", "financial"] = "market"
    probability: int = Field(3, ge=1, le=5)
    impact: int = Field(3, ge=1, le=5)
    mitigation: str = ""


class RiskDetail(_Doc):
    score: int = Field(3, ge=1, le=5)
    details: str = ""
    risk_items: list[RiskItem] = []


class OrganisationalReadiness(_Doc):
    score: int = Field(3, ge=1, le=5)
    culture: str = ""
    processes: str = ""
    skills: str = ""
    leadership: str = ""
    resources: str = ""
    stakeholders: str = ""
    details: str = ""


class PilotCustomerEntry(_Doc):
    id: str = Field(default_factory=new_id)
    name: str = ""
    industry: str = ""
    contact_status: Literal["identified", "contacted", "interested", "loi_confirmed"] = "identified"
    validation_results: str = ""
    feedback: str = ""


class PilotCustomerData(_Doc):
    score: int = Field(3, ge=1, le=5)
    entries: list[PilotCustomerEntry] = []
    notes: str = ""


class DetailedScoring(_Doc):
    market_attractiveness: MarketAttractivenessDetail = Field(default_factory=MarketAttractivenessDetail)
    strategic_fit: StrategicFitDetail = Field(default_factory=StrategicFitDetail)
    feasibility: FeasibilityDetail = Field(default_factory=FeasibilityDetail)
    commercial_viability: CommercialViabilityDetail = Field(default_factory=CommercialViabilityDetail)
    risk: RiskDetail = Field(default_factory=RiskDetail)
    organisational_readiness: OrganisationalReadiness | None = None
    pilot_customer: PilotCustomerData | None = None

    def scores(self) -> dict[str, int]:
        """The five weighted criterion scores; readiness and pilot data are not weighted."""
        return {key: getattr(self, key).score for key in Scoring.model_fields}


# ---------------------------------------------------------------------------
# Business case, strategic analyses, go-to-market
# ---------------------------------------------------------------------------


class BusinessCase(_Doc):
    investment_cost: float = 0
    expected_revenue: float = 0
    roi: float = 0
    break_even_months: float = 0
    payback_period: float = 0
    npv: float = 0
    notes: str = ""


class MatrixPosition(_Doc):
    position: str = ""
    description: str = ""
    rationale: str = ""


class Swot(_Doc):
    strengths: str = ""
    weaknesses: str = ""
    opportunities: str = ""
    threats: str = ""
    description: str = ""
    rationale: str = ""


class Pestel(_Doc):
    political: str = ""
    economic: str = ""
    social: str = ""
    technological: str = ""
    environmental: str = ""
    legal: str = ""
    description: str = ""
    rationale: str = ""


class PorterForce(_Doc):
    level: Literal["low", "medium", "high"] = "medium"
    notes: str = ""


class PortersFiveForces(_Doc):
    rivalry: PorterForce = Field(default_factory=PorterForce)
    new_entrants: PorterForce = Field(default_factory=PorterForce)
    substitutes: PorterForce = Field(default_factory=PorterForce)
    buyer_power: PorterForce = Field(default_factory=PorterForce)
    supplier_power: PorterForce = Field(default_factory=PorterForce)


class ValueChain(_Doc):
    procurement: str = ""
    operations: str = ""
    marketing: str = ""
    service: str = ""
    notes: str = ""


class StrategicAnalyses(_Doc):
    ansoff: MatrixPosition = Field(default_factory=MatrixPosition)
    bcg: MatrixPosition = Field(default_factory=MatrixPosition)
    mckinsey: MatrixPosition = Field(default_factory=MatrixPosition)
    swot: Swot = Field(default_factory=Swot)
    pestel: Pestel = Field(default_factory=Pestel)
    porter: PortersFiveForces = Field(default_factory=PortersFiveForces)
    value_chain: ValueChain = Field(default_factory=ValueChain)

    @field_validator("ansoff")
    @classmethod
    def ansoff_position_known(cls, v: MatrixPosition) -> MatrixPosition:
        allowed = {"", "market_penetration", "market_development", "product_development", "diversification"}
        if v.position not in allowed:
            raise ValueError(f"unknown Ansoff position {v.position!r}")
        return v

    @field_validator("bcg")
    @classmethod
    def bcg_position_known(cls, v: MatrixPosition) -> MatrixPosition:
        if v.position not in {"", "star", "cash_cow", "question_mark", "dog"}:
            raise ValueError(f"unknown BCG position {v.position!r}")
        return v


class ChecklistItem(_Doc):
    id: str = Field(default_factory=new_id)
    text: str = ""
    done: bool = False


class PilotAgreement(_Doc):
    id: str = Field(default_factory=new_id)
    customer_name: str = ""
    scope: str = ""
    timeline: str = ""
    status: Literal["planned", "active", "completed", "cancelled"] = "planned"
    success_criteria: str = ""
    results: str = ""


class LeadChannel(_Doc):
    id: str = Field(default_factory=new_id)
    channel: str = ""
    strategy: str = ""
    target_leads: int = Field(0, ge=0)
    actual_leads: int = Field(0, ge=0)
    conversion_rate: float = Field(0, ge=0, le=100)  # percent


class LeadActivity(_Doc):
    id: str = Field(default_factory=new_id)
    activity: str = ""
    status: Literal["planned", "in_progress", "completed"] = "planned"
    date: str = ""
    notes: str = ""


class LeadGeneration(_Doc):
    channels: list[LeadChannel] = []
    activities: list[LeadActivity] = []
    pipeline_notes: str = ""

    def lead_totals(self) -> tuple[int, int]:
        """(target, actual) leads summed over all channels."""
        return (
            sum(c.target_leads for c in self.channels),
            sum(c.actual_leads for c in self.channels),
        )


class GoToMarketPlan(_Doc):
    target_segments: str = ""
    channels: str = ""
    pricing_strategy: str = ""
    key_partners: str = ""
    kpis: str = ""
    launch_date: str = ""
    checklist: list[ChecklistItem] = []
    pilot_agreements: list[PilotAgreement] = []
    pilot_notes: str = ""
    lead_generation: LeadGeneration | None = None


class ImplementReview(_Doc):
    status: Literal["not_started", "in_progress", "on_hold", "completed"] = "not_started"
    lessons_learned: str = ""
    next_review_date: str = ""
    checklist: list[ChecklistItem] = []


# ---------------------------------------------------------------------------
# Gate records and the opportunity aggregate
# ---------------------------------------------------------------------------


class GateRecord(_Doc):
    id: str = Field(default_factory=new_id)
    gate: GateName
    decision: GateDecision
    comment: str = ""
    decider: str
    date: str = Field(default_factory=utcnow_iso)


class Opportunity(_Doc):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    industry: str = ""
    geography: str = ""
    technology: str = ""
    owner: str = ""
    stage: Stage = Stage.IDEA
    scoring: Scoring = Field(default_factory=Scoring)
    detailed_scoring: DetailedScoring | None = None
    business_case: BusinessCase | None = None
    strategic_analyses: StrategicAnalyses | None = None
    go_to_market_plan: GoToMarketPlan | None = None
    implement_review: ImplementReview | None = None
    gates: list[GateRecord] = []
    created_at: str = Field(default_factory=utcnow_iso)


# ---------------------------------------------------------------------------
# Narrative assessment contract
# ---------------------------------------------------------------------------


class AssessmentInput(_Doc):
    scoring: Scoring
    answers: dict[str, int] = {}
    title: str | None = None
    description: str | None = None
    language: Language = "en"


class AssessmentResult(_Doc):
    summary: str
    strengths: list[str] = []
    weaknesses: list[str] = []
    next_steps: list[str] = []
    pitfalls: list[str] = []
    overall_rating: Rating


# ---------------------------------------------------------------------------
# API request bodies
# ---------------------------------------------------------------------------


class OpportunityCreate(_Doc):
    title: str
    description: str = ""
    industry: str = ""
    geography: str = ""
    technology: str = ""
    owner: str = ""

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v


class OpportunityUpdate(_Doc):
    title: str | None = None
    description: str | None = None
    industry: str | None = None
    geography: str | None = None
    technology: str | None = None
    owner: str | None = None


class WizardAnswers(_Doc):
    answers: dict[str, int]

    @field_validator("answers")
    @classmethod
    def answers_in_range(cls, v: dict[str, int]) -> dict[str, int]:
        for key, val in v.items():
            if not 0 <= val <= 5:
                raise ValueError(f"answer {key!r} must be between 0 and 5")
        return v


class AdvanceRequest(_Doc):
    target: Stage | None = None


class GateDecisionIn(_Doc):
    decision: GateDecision
    decider: str
    comment: str = ""


class GateRecordUpdate(_Doc):
    decision: GateDecision | None = None
    decider: str | None = None
    comment: str | None = None


class AssessmentRequest(_Doc):
    basis: AssessmentBasis = "rough"
    answers: dict[str, int] = {}
    language: Language = "en"


class ScoreRequest(_Doc):
    scores: dict[str, Any]


class StatsOut(_Doc):
    total: int
    active: int
    average_score: float
    top_scorer: dict[str, Any] | None
    go_to_market_count: int
    by_stage: dict[str, int]
    by_industry: dict[str, int]
    by_geography: dict[str, int]
    by_technology: dict[str, int]
