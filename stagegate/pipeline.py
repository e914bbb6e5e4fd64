"""Stage-gate state machine.

The canonical stage order is::

    idea -> rough_scoring -> gate1 -> detailed_scoring -> gate2
         -> business_case -> gate3 -> go_to_market -> closed

Stages move forward through :func:`advance` (plain steps) or a ``go``
decision at a gate, and backward only through :func:`revert`.  A ``no-go``
at any gate closes the opportunity.

Every transition here is pure: it receives an :class:`Opportunity` and
returns a new one, leaving the input untouched.  Persisting the result is
the caller's job (see ``services``).
"""
from __future__ import annotations

import logging
from datetime import UTC, datetime

from stagegate.schemas import (
    BusinessCase,
    DetailedScoring,
    GateDecision,
    GateRecord,
    GoToMarketPlan,
    Opportunity,
    Stage,
)

log = logging.getLogger(__name__)


class TransitionError(Exception):
    """The requested transition is not allowed from the current stage."""


class DecisionInputError(ValueError):
    """A gate decision is missing required input (e.g. the decider)."""


class GateRecordNotFound(KeyError):
    """No gate record with the given id exists on the opportunity."""


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.IDEA,
    Stage.ROUGH_SCORING,
    Stage.GATE1,
    Stage.DETAILED_SCORING,
    Stage.GATE2,
    Stage.BUSINESS_CASE,
    Stage.GATE3,
    Stage.GO_TO_MARKET,
    Stage.CLOSED,
)

GATE_STAGES = frozenset({Stage.GATE1, Stage.GATE2, Stage.GATE3})

# Forward steps that need no gate decision: source -> target
ADVANCE_TARGETS: dict[Stage, Stage] = {
    Stage.IDEA: Stage.ROUGH_SCORING,
    Stage.ROUGH_SCORING: Stage.GATE1,
    Stage.DETAILED_SCORING: Stage.GATE2,
    Stage.BUSINESS_CASE: Stage.GATE3,
}

# Where a "go" leads from each gate
GO_TARGETS: dict[Stage, Stage] = {
    Stage.GATE1: Stage.DETAILED_SCORING,
    Stage.GATE2: Stage.BUSINESS_CASE,
    Stage.GATE3: Stage.GO_TO_MARKET,
}


def stage_index(stage: Stage | str) -> int:
    return STAGE_ORDER.index(Stage(stage))


def next_advance(stage: Stage | str) -> Stage | None:
    return ADVANCE_TARGETS.get(Stage(stage))


def _enter(opp: Opportunity, stage: Stage) -> None:
    """Set the stage, lazily creating the section the new stage works on."""
    opp.stage = stage
    if stage == Stage.DETAILED_SCORING and opp.detailed_scoring is None:
        opp.detailed_scoring = DetailedScoring()
    elif stage == Stage.BUSINESS_CASE and opp.business_case is None:
        opp.business_case = BusinessCase()
    elif stage == Stage.GO_TO_MARKET and opp.go_to_market_plan is None:
        opp.go_to_market_plan = GoToMarketPlan()


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def advance(opp: Opportunity, target: Stage | str | None = None) -> Opportunity:
    """Step forward without a gate decision.

    *target* defaults to the natural next stage; when given it must match it.
    """
    expected = next_advance(opp.stage)
    if expected is None:
        raise TransitionError(f"Cannot advance from stage '{opp.stage}'")
    if target is not None and Stage(target) != expected:
        raise TransitionError(
            f"Cannot advance from '{opp.stage}' to '{Stage(target)}' (next is '{expected}')"
        )
    result = opp.model_copy(deep=True)
    _enter(result, expected)
    return result


def submit_gate_decision(
    opp: Opportunity,
    decision: GateDecision | str,
    decider: str,
    comment: str = "",
    now: datetime | None = None,
) -> tuple[Opportunity, GateRecord]:
    """Record a go / hold / no-go decision at the current gate.

    Returns the updated opportunity and the appended record.
    """
    decider = (decider or "").strip()
    if not decider:
        raise DecisionInputError("Decider name is required")
    if opp.stage not in GATE_STAGES:
        raise TransitionError(f"No gate decision possible in stage '{opp.stage}'")

    decision = GateDecision(decision)
    record = GateRecord(
        gate=opp.stage.value,
        decision=decision,
        comment=comment or "",
        decider=decider,
        date=(now or datetime.now(UTC)).isoformat(),
    )
    result = opp.model_copy(deep=True)
    result.gates.append(record)
    if decision == GateDecision.GO:
        _enter(result, GO_TARGETS[opp.stage])
    elif decision == GateDecision.NO_GO:
        result.stage = Stage.CLOSED
    log.info("Gate %s decision %s for %s by %s", record.gate, decision.value, opp.id, decider)
    return result, record


def _closing_gate(opp: Opportunity) -> Stage | None:
    for g in reversed(opp.gates):
        if g.decision == GateDecision.NO_GO:
            return Stage(g.gate)
    return None


def revert(opp: Opportunity) -> Opportunity:
    """Move one stage back and drop gate records that now lie ahead.

    A record is dropped when its gate's position in the stage order is at or
    after the stage being reverted to.  A closed opportunity goes back to the
    gate of its last no-go record, which reopens that gate for a new
    decision.  Reverting from the first stage returns an unchanged copy.
    """
    result = opp.model_copy(deep=True)
    idx = stage_index(opp.stage)
    if idx == 0:
        return result
    new_stage = STAGE_ORDER[idx - 1]
    if opp.stage == Stage.CLOSED:
        new_stage = _closing_gate(opp) or new_stage
    new_idx = stage_index(new_stage)
    result.stage = new_stage
    result.gates = [g for g in result.gates if stage_index(g.gate) < new_idx]
    dropped = len(opp.gates) - len(result.gates)
    if dropped:
        log.info("Revert of %s to %s dropped %d gate record(s)", opp.id, new_stage.value, dropped)
    return result


# ---------------------------------------------------------------------------
# Gate record edits (never touch the stage)
# ---------------------------------------------------------------------------


def _find_gate(opp: Opportunity, record_id: str) -> int:
    for i, g in enumerate(opp.gates):
        if g.id == record_id:
            return i
    raise GateRecordNotFound(record_id)


def edit_gate_record(
    opp: Opportunity,
    record_id: str,
    decision: GateDecision | str | None = None,
    comment: str | None = None,
    decider: str | None = None,
) -> Opportunity:
    """Change fields of an existing gate record, keeping its id and date.

    The stage is deliberately left as is, even if the edited decision no
    longer matches it.
    """
    if decider is not None:
        decider = decider.strip()
        if not decider:
            raise DecisionInputError("Decider name is required")
    result = opp.model_copy(deep=True)
    idx = _find_gate(result, record_id)
    record = result.gates[idx]
    if decision is not None:
        record.decision = GateDecision(decision)
    if comment is not None:
        record.comment = comment
    if decider is not None:
        record.decider = decider
    return result


def delete_gate_record(opp: Opportunity, record_id: str) -> Opportunity:
    """Remove a gate record by id. The stage is left as is."""
    result = opp.model_copy(deep=True)
    del result.gates[_find_gate(result, record_id)]
    return result


def available_actions(opp: Opportunity) -> dict[str, object]:
    """Which transitions the current stage allows."""
    return {
        "advance_to": next_advance(opp.stage),
        "can_decide": opp.stage in GATE_STAGES,
        "can_revert": stage_index(opp.stage) > 0,
    }
