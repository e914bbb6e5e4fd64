"""Tests for the MCP tool functions and the db session helpers."""
from __future__ import annotations

import json
from contextlib import contextmanager
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stagegate import db, mcp_server
from stagegate.assessor import AssessmentError
from stagegate.models import Base, OpportunityRecord


@pytest.fixture()
def mcp_db():
    """Point the MCP tools at an in-memory database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def scope():
        session = TestSession()
        try:
            yield session
        finally:
            session.close()

    with patch("stagegate.mcp_server.session_scope", scope):
        yield TestSession


@pytest.fixture()
def created(mcp_db) -> dict:
    return mcp_server.create_opportunity("Vertical farming", industry="Agri", owner="Pat")


class TestOverview:
    def test_overview_lists_stages_and_weights(self):
        data = json.loads(mcp_server.stagegate_overview())
        assert data["stages"][0] == "idea"
        assert data["stages"][-1] == "closed"
        assert data["scoring"]["weights"]["risk"] == 1


class TestOpportunityTools:
    def test_create_and_get(self, created):
        assert created["stage"] == "idea"
        fetched = mcp_server.get_opportunity(created["id"])
        assert fetched["title"] == "Vertical farming"

    def test_create_blank_title(self, mcp_db):
        assert "error" in mcp_server.create_opportunity("  ")

    def test_get_missing(self, mcp_db):
        assert mcp_server.get_opportunity("nope") == {"error": "Opportunity nope not found"}

    def test_list_limit(self, mcp_db):
        for i in range(3):
            mcp_server.create_opportunity(f"Idea {i}")
        assert len(mcp_server.list_opportunities(limit=2)) == 2

    def test_score(self, created):
        result = mcp_server.score_opportunity(created["id"], 5, 5, 4, 4, 1)
        assert result["totalScore"] == 4.6

    def test_score_out_of_range(self, created):
        result = mcp_server.score_opportunity(created["id"], 9, 5, 4, 4, 1)
        assert result["error"].startswith("Invalid scores")

    def test_questionnaire(self, created):
        result = mcp_server.apply_questionnaire(created["id"], {"cv_margins": 1, "cv_payback": 1})
        assert result["scoring"]["commercialViability"]["score"] == 1
        assert "error" in mcp_server.apply_questionnaire(created["id"], {"cv_margins": 7})

    def test_closed_opportunity_cannot_be_rescored(self, created):
        opp_id = created["id"]
        mcp_server.advance_opportunity(opp_id)
        mcp_server.advance_opportunity(opp_id)
        mcp_server.decide_gate(opp_id, "no-go", "Pat")
        assert "read-only" in mcp_server.score_opportunity(opp_id, 5, 5, 5, 5, 1)["error"]
        assert "read-only" in mcp_server.apply_questionnaire(opp_id, {"cv_margins": 5})["error"]
        assert mcp_server.get_opportunity(opp_id)["totalScore"] == 3.0


class TestPipelineTools:
    def test_walk_and_decide(self, created):
        opp_id = created["id"]
        mcp_server.advance_opportunity(opp_id)
        assert mcp_server.advance_opportunity(opp_id)["stage"] == "gate1"
        assert "error" in mcp_server.advance_opportunity(opp_id)
        result = mcp_server.decide_gate(opp_id, "go", "Pat", "promising pilot")
        assert result["stage"] == "detailed_scoring"
        assert result["record"]["gate"] == "gate1"

    def test_decide_errors(self, created):
        assert "error" in mcp_server.decide_gate(created["id"], "go", "Pat")
        assert "error" in mcp_server.decide_gate("nope", "go", "Pat")

    def test_decide_empty_decider(self, created):
        opp_id = created["id"]
        mcp_server.advance_opportunity(opp_id)
        mcp_server.advance_opportunity(opp_id)
        assert "error" in mcp_server.decide_gate(opp_id, "hold", " ")

    def test_revert(self, created):
        mcp_server.advance_opportunity(created["id"])
        assert mcp_server.revert_opportunity(created["id"])["stage"] == "idea"
        assert "error" in mcp_server.revert_opportunity("nope")

    def test_revert_after_no_go(self, created):
        opp_id = created["id"]
        mcp_server.advance_opportunity(opp_id)
        mcp_server.advance_opportunity(opp_id)
        mcp_server.decide_gate(opp_id, "no-go", "Pat")
        result = mcp_server.revert_opportunity(opp_id)
        assert result["stage"] == "gate1"
        assert result["actions"]["canDecide"] is True

    def test_stats(self, created):
        stats = mcp_server.get_stats()
        assert stats["total"] == 1
        assert stats["by_industry"] == {"Agri": 1}


class TestAssessTool:
    @pytest.mark.asyncio
    async def test_failure_returns_error(self, created):
        with patch("stagegate.services.run_assessment", new_callable=AsyncMock,
                   side_effect=AssessmentError("Rate limit exceeded. Please try again later.")):
            result = await mcp_server.assess_opportunity(created["id"])
        assert result == {"error": "Assessment failed: Rate limit exceeded. Please try again later."}

    @pytest.mark.asyncio
    async def test_unknown_basis_rejected(self, created):
        with patch("stagegate.services.generate_assessment", new_callable=AsyncMock) as gen:
            result = await mcp_server.assess_opportunity(created["id"], basis="weekly")
        assert result == {"error": "Unknown assessment basis 'weekly'"}
        gen.assert_not_called()

    @pytest.mark.asyncio
    async def test_basis_is_advertised_as_choice(self):
        tools = {t.name: t for t in await mcp_server.mcp.list_tools()}
        basis = tools["assess_opportunity"].inputSchema["properties"]["basis"]
        assert basis["enum"] == ["rough", "detailed"]

    @pytest.mark.asyncio
    async def test_not_configured(self, created, monkeypatch):
        monkeypatch.setenv("ASSESSMENT_PROVIDER", "http")
        monkeypatch.delenv("ASSESSMENT_ENDPOINT_URL", raising=False)
        result = await mcp_server.assess_opportunity(created["id"])
        assert "ASSESSMENT_ENDPOINT_URL" in result["error"]


class TestSessionManagement:
    def test_init_db_and_session_scope(self, tmp_path):
        db_file = tmp_path / "nested" / "test.db"
        db.init_db(db_file)
        assert db.current_db_path() == db_file
        assert db_file.exists()
        with db.session_scope() as session:
            session.add(OpportunityRecord(id="x", title="t", document_json="{}", created_at="2026-01-01"))
            session.commit()
        with db.session_scope() as session:
            assert session.get(OpportunityRecord, "x").title == "t"

    def test_session_scope_rolls_back(self, tmp_path):
        db.init_db(tmp_path / "rb.db")
        with pytest.raises(RuntimeError):
            with db.session_scope() as session:
                session.add(OpportunityRecord(id="y", title="t", document_json="{}", created_at="2026-01-01"))
                session.flush()
                raise RuntimeError("boom")
        with db.session_scope() as session:
            assert session.get(OpportunityRecord, "y") is None

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STAGEGATE_DB_PATH", str(tmp_path / "env.db"))
        assert db.default_db_path() == tmp_path / "env.db"
