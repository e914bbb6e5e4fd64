from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class OpportunityRecord(Base):
    """One opportunity, stored as its whole JSON document.

    ``title``, ``stage`` and ``created_at`` are copied out of the document so
    they can be listed and ordered without parsing it.
    """
    __tablename__ = "opportunities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    stage: Mapped[str] = mapped_column(String(30), nullable=False, default="idea")
    document_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)  # ISO-8601, as in the document
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    assessments: Mapped[list[AssessmentRecord]] = relationship(
        "AssessmentRecord", back_populates="opportunity", cascade="all, delete-orphan",
    )


class AssessmentRecord(Base):
    __tablename__ = "ai_assessments"
    __table_args__ = (UniqueConstraint("opportunity_id", "basis", name="uq_assessment_basis"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    opportunity_id: Mapped[str] = mapped_column(String(36), ForeignKey("opportunities.id"), nullable=False)
    basis: Mapped[str] = mapped_column(String(20), nullable=False)  # "rough" | "detailed"
    summary: Mapped[str] = mapped_column(Text, default="")
    strengths_json: Mapped[str] = mapped_column(Text, default="[]")
    weaknesses_json: Mapped[str] = mapped_column(Text, default="[]")
    next_steps_json: Mapped[str] = mapped_column(Text, default="[]")
    pitfalls_json: Mapped[str] = mapped_column(Text, default="[]")
    overall_rating: Mapped[str] = mapped_column(String(30), nullable=False)
    llm_model: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    opportunity: Mapped[OpportunityRecord] = relationship("OpportunityRecord", back_populates="assessments")
