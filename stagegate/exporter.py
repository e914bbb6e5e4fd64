from __future__ import annotations

import io
import logging
from pathlib import Path

import openpyxl
from openpyxl.styles import Font

from stagegate.schemas import Opportunity
from stagegate.scoring import CRITERIA, calculate_total_score, detailed_total_score, overall_rating

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sheet layouts
# ---------------------------------------------------------------------------

OPPORTUNITY_HEADERS = [
    "ID", "Title", "Stage", "Owner", "Industry", "Geography", "Technology",
    "Market", "Strategic Fit", "Feasibility", "Commercial", "Risk",
    "Total Score", "Rating", "Detailed Score", "Created",
]

GATE_HEADERS = ["Opportunity ID", "Opportunity", "Gate", "Decision", "Decider", "Comment", "Date"]


def _opportunity_row(opp: Opportunity) -> list:
    scores = opp.scoring.scores()
    total = calculate_total_score(opp.scoring)
    detailed = detailed_total_score(opp.detailed_scoring) if opp.detailed_scoring else None
    return [
        opp.id, opp.title, opp.stage.value, opp.owner, opp.industry, opp.geography, opp.technology,
        *(scores[c] for c in CRITERIA),
        total, overall_rating(total), detailed, opp.created_at,
    ]


def _write_sheet(ws, headers: list[str], rows: list[list]) -> None:
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    ws.freeze_panes = "A2"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_workbook(opportunities: list[Opportunity]) -> openpyxl.Workbook:
    """Workbook with an "Opportunities" sheet and a "Gate Decisions" sheet."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Opportunities"
    _write_sheet(ws, OPPORTUNITY_HEADERS, [_opportunity_row(o) for o in opportunities])

    gate_rows = [
        [o.id, o.title, g.gate, g.decision.value, g.decider, g.comment, g.date]
        for o in opportunities for g in o.gates
    ]
    _write_sheet(wb.create_sheet("Gate Decisions"), GATE_HEADERS, gate_rows)
    log.info("Exported %d opportunities, %d gate decisions", len(opportunities), len(gate_rows))
    return wb


def export_xlsx(opportunities: list[Opportunity]) -> bytes:
    buf = io.BytesIO()
    build_workbook(opportunities).save(buf)
    return buf.getvalue()


def write_xlsx(opportunities: list[Opportunity], path: str | Path) -> Path:
    path = Path(path)
    build_workbook(opportunities).save(path)
    return path
