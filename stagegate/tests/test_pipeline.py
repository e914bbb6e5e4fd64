"""Tests for the stage-gate state machine (pure transitions, no database)."""
from __future__ import annotations

from datetime import UTC, datetime

import pytest

from stagegate.pipeline import (
    STAGE_ORDER,
    DecisionInputError,
    GateRecordNotFound,
    TransitionError,
    advance,
    available_actions,
    delete_gate_record,
    edit_gate_record,
    revert,
    submit_gate_decision,
)
from stagegate.schemas import GateDecision, GateRecord, Opportunity, Stage


@pytest.fixture()
def opp() -> Opportunity:
    return Opportunity(title="Battery recycling", owner="Dana")


def at_stage(opp: Opportunity, stage: Stage, gates: list[GateRecord] | None = None) -> Opportunity:
    return opp.model_copy(update={"stage": stage, "gates": gates or []}, deep=True)


# =========================================================================
# Advance
# =========================================================================

class TestAdvance:
    def test_idea_to_rough_scoring(self, opp):
        result = advance(opp)
        assert result.stage == Stage.ROUGH_SCORING
        assert opp.stage == Stage.IDEA

    def test_full_plain_path_to_gate1(self, opp):
        assert advance(advance(opp)).stage == Stage.GATE1

    def test_explicit_matching_target(self, opp):
        assert advance(opp, "rough_scoring").stage == Stage.ROUGH_SCORING

    def test_mismatched_target_rejected(self, opp):
        with pytest.raises(TransitionError):
            advance(opp, Stage.GATE1)

    @pytest.mark.parametrize("stage", [Stage.GATE1, Stage.GATE2, Stage.GATE3, Stage.GO_TO_MARKET, Stage.CLOSED])
    def test_cannot_advance_through_gate_or_from_terminal(self, opp, stage):
        with pytest.raises(TransitionError):
            advance(at_stage(opp, stage))

    def test_entering_gate2_path_creates_no_sections(self, opp):
        result = advance(at_stage(opp, Stage.DETAILED_SCORING))
        assert result.stage == Stage.GATE2
        assert result.business_case is None


# =========================================================================
# Gate decisions
# =========================================================================

class TestGateDecision:
    def test_go_at_gate1(self, opp):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        result, record = submit_gate_decision(at_stage(opp, Stage.GATE1), "go", "Alex", "Looks good", now=now)
        assert result.stage == Stage.DETAILED_SCORING
        assert result.detailed_scoring is not None
        assert len(result.gates) == 1
        assert record.gate == "gate1"
        assert record.decision == GateDecision.GO
        assert record.decider == "Alex"
        assert record.comment == "Looks good"
        assert record.date == now.isoformat()
        assert result.gates[0] == record

    def test_go_at_gate2_creates_business_case(self, opp):
        result, _ = submit_gate_decision(at_stage(opp, Stage.GATE2), GateDecision.GO, "Alex")
        assert result.stage == Stage.BUSINESS_CASE
        assert result.business_case is not None

    def test_go_at_gate3_enters_go_to_market(self, opp):
        result, _ = submit_gate_decision(at_stage(opp, Stage.GATE3), "go", "Alex")
        assert result.stage == Stage.GO_TO_MARKET
        assert result.go_to_market_plan is not None

    @pytest.mark.parametrize("gate", [Stage.GATE1, Stage.GATE2, Stage.GATE3])
    def test_no_go_closes(self, opp, gate):
        result, record = submit_gate_decision(at_stage(opp, gate), "no-go", "Alex")
        assert result.stage == Stage.CLOSED
        assert record.gate == gate.value
        assert record.decision == GateDecision.NO_GO

    def test_hold_keeps_stage(self, opp):
        start = at_stage(opp, Stage.GATE2)
        result, record = submit_gate_decision(start, "hold", "Alex")
        assert result.stage == Stage.GATE2
        assert result.gates == [record]

    def test_repeated_holds_accumulate(self, opp):
        start = at_stage(opp, Stage.GATE1)
        once, _ = submit_gate_decision(start, "hold", "Alex")
        twice, _ = submit_gate_decision(once, "hold", "Blake")
        assert [g.decider for g in twice.gates] == ["Alex", "Blake"]

    def test_decider_is_stripped(self, opp):
        _, record = submit_gate_decision(at_stage(opp, Stage.GATE1), "go", "  Alex  ")
        assert record.decider == "Alex"

    @pytest.mark.parametrize("decider", ["", "   ", None])
    def test_empty_decider_rejected(self, opp, decider):
        start = at_stage(opp, Stage.GATE1)
        with pytest.raises(DecisionInputError):
            submit_gate_decision(start, "go", decider)

    def test_not_at_gate_rejected(self, opp):
        with pytest.raises(TransitionError):
            submit_gate_decision(at_stage(opp, Stage.DETAILED_SCORING), "go", "Alex")

    def test_unknown_decision_rejected(self, opp):
        with pytest.raises(ValueError):
            submit_gate_decision(at_stage(opp, Stage.GATE1), "maybe", "Alex")

    def test_input_untouched(self, opp):
        start = at_stage(opp, Stage.GATE1)
        submit_gate_decision(start, "go", "Alex")
        assert start.stage == Stage.GATE1
        assert start.gates == []


# =========================================================================
# Revert
# =========================================================================

def _record(gate: str, decision: str = "go") -> GateRecord:
    return GateRecord(gate=gate, decision=decision, decider="Alex")


class TestRevert:
    def test_business_case_back_to_gate2_drops_gate2_records(self, opp):
        gates = [_record("gate1"), _record("gate2", "hold"), _record("gate2")]
        result = revert(at_stage(opp, Stage.BUSINESS_CASE, gates))
        assert result.stage == Stage.GATE2
        assert [g.gate for g in result.gates] == ["gate1"]

    def test_revert_to_gate1_drops_all_gate_records(self, opp):
        result = revert(at_stage(opp, Stage.DETAILED_SCORING, [_record("gate1")]))
        assert result.stage == Stage.GATE1
        assert result.gates == []

    def test_revert_from_idea_is_noop(self, opp):
        result = revert(opp)
        assert result == opp
        assert result is not opp

    def test_closed_at_gate1_reopens_gate1(self, opp):
        closed, _ = submit_gate_decision(at_stage(opp, Stage.GATE1), "no-go", "Alex")
        result = revert(closed)
        assert result.stage == Stage.GATE1
        assert result.gates == []
        assert result.go_to_market_plan is None

    def test_closed_at_gate2_keeps_earlier_records(self, opp):
        gates = [_record("gate1"), _record("gate2", "hold"), _record("gate2", "no-go")]
        result = revert(at_stage(opp, Stage.CLOSED, gates))
        assert result.stage == Stage.GATE2
        assert [g.gate for g in result.gates] == ["gate1"]

    def test_closed_uses_last_no_go(self, opp):
        gates = [_record("gate1", "no-go"), _record("gate1"), _record("gate3", "no-go")]
        assert revert(at_stage(opp, Stage.CLOSED, gates)).stage == Stage.GATE3

    def test_closed_without_no_go_steps_back(self, opp):
        assert revert(at_stage(opp, Stage.CLOSED)).stage == Stage.GO_TO_MARKET

    def test_every_open_stage_steps_back_by_one(self, opp):
        for prev, stage in zip(STAGE_ORDER, STAGE_ORDER[1:-1]):
            assert revert(at_stage(opp, stage)).stage == prev

    def test_sections_survive_revert(self, opp):
        advanced, _ = submit_gate_decision(at_stage(opp, Stage.GATE1), "go", "Alex")
        result = revert(advanced)
        assert result.detailed_scoring is not None


# =========================================================================
# Gate record edits
# =========================================================================

class TestGateRecordEdits:
    def test_edit_changes_fields_but_not_stage(self, opp):
        advanced, record = submit_gate_decision(at_stage(opp, Stage.GATE1), "go", "Alex")
        edited = edit_gate_record(advanced, record.id, decision="no-go", comment="reconsidered")
        assert edited.stage == Stage.DETAILED_SCORING
        assert edited.gates[0].decision == GateDecision.NO_GO
        assert edited.gates[0].comment == "reconsidered"
        assert edited.gates[0].id == record.id
        assert edited.gates[0].date == record.date

    def test_edit_empty_decider_rejected(self, opp):
        advanced, record = submit_gate_decision(at_stage(opp, Stage.GATE1), "go", "Alex")
        with pytest.raises(DecisionInputError):
            edit_gate_record(advanced, record.id, decider="  ")

    def test_edit_unknown_record(self, opp):
        with pytest.raises(GateRecordNotFound):
            edit_gate_record(opp, "missing", comment="x")

    def test_delete_leaves_stage(self, opp):
        advanced, record = submit_gate_decision(at_stage(opp, Stage.GATE1), "go", "Alex")
        result = delete_gate_record(advanced, record.id)
        assert result.gates == []
        assert result.stage == Stage.DETAILED_SCORING

    def test_delete_unknown_record(self, opp):
        with pytest.raises(GateRecordNotFound):
            delete_gate_record(opp, "missing")


class TestAvailableActions:
    def test_idea(self, opp):
        assert available_actions(opp) == {"advance_to": Stage.ROUGH_SCORING, "can_decide": False, "can_revert": False}

    def test_gate(self, opp):
        actions = available_actions(at_stage(opp, Stage.GATE3))
        assert actions["advance_to"] is None
        assert actions["can_decide"] is True
        assert actions["can_revert"] is True
