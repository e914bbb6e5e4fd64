"""Persistence adapter: whole-document storage of opportunities and assessments.

The repository never writes individual fields of an opportunity; ``save``
always replaces the full document (upsert by id).  Concurrent writers are not
reconciled, the last save wins.  Callers own the transaction and commit.
"""
from __future__ import annotations

import json
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from stagegate.models import AssessmentRecord, OpportunityRecord
from stagegate.schemas import AssessmentResult, Opportunity
from stagegate.utils import json_parse


class OpportunityRepository:
    def __init__(self, session: Session):
        self.session = session

    # -- opportunities -------------------------------------------------------

    def save(self, opp: Opportunity) -> Opportunity:
        document = opp.model_dump_json(by_alias=True)
        row = self.session.get(OpportunityRecord, opp.id)
        if row is None:
            row = OpportunityRecord(id=opp.id, created_at=opp.created_at)
            self.session.add(row)
        row.title = opp.title
        row.stage = opp.stage.value
        row.document_json = document
        self.session.flush()
        return opp

    def get(self, opportunity_id: str) -> Opportunity | None:
        row = self.session.get(OpportunityRecord, opportunity_id)
        if row is None:
            return None
        return Opportunity.model_validate_json(row.document_json)

    def delete(self, opportunity_id: str) -> bool:
        row = self.session.get(OpportunityRecord, opportunity_id)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True

    def list_all(self) -> list[Opportunity]:
        """All opportunities, newest first."""
        rows = self.session.execute(
            select(OpportunityRecord).order_by(OpportunityRecord.created_at.desc())
        ).scalars().all()
        return [Opportunity.model_validate_json(r.document_json) for r in rows]

    def delete_all(self) -> None:
        self.session.execute(delete(AssessmentRecord))
        self.session.execute(delete(OpportunityRecord))

    # -- assessments ---------------------------------------------------------

    def save_assessment(
        self, opportunity_id: str, basis: str, result: AssessmentResult, llm_model: str = "",
    ) -> None:
        """Upsert the assessment for ``(opportunity_id, basis)``, stamping it with the current time."""
        row = self.session.execute(
            select(AssessmentRecord).where(
                AssessmentRecord.opportunity_id == opportunity_id,
                AssessmentRecord.basis == basis,
            )
        ).scalars().first()
        if row is None:
            row = AssessmentRecord(opportunity_id=opportunity_id, basis=basis)
            self.session.add(row)
        row.summary = result.summary
        row.strengths_json = json.dumps(result.strengths)
        row.weaknesses_json = json.dumps(result.weaknesses)
        row.next_steps_json = json.dumps(result.next_steps)
        row.pitfalls_json = json.dumps(result.pitfalls)
        row.overall_rating = result.overall_rating
        row.llm_model = llm_model
        row.created_at = datetime.now(UTC).replace(tzinfo=None)
        self.session.flush()

    def load_assessment(self, opportunity_id: str, basis: str) -> AssessmentResult | None:
        row = self.session.execute(
            select(AssessmentRecord)
            .where(
                AssessmentRecord.opportunity_id == opportunity_id,
                AssessmentRecord.basis == basis,
            )
        ).scalars().first()
        if row is None:
            return None
        return AssessmentResult(
            summary=row.summary,
            strengths=json_parse(row.strengths_json, []),
            weaknesses=json_parse(row.weaknesses_json, []),
            next_steps=json_parse(row.next_steps_json, []),
            pitfalls=json_parse(row.pitfalls_json, []),
            overall_rating=row.overall_rating,
        )
