"""Rough-scoring questionnaire: 20 guided questions across the five criteria.

Each answer is a 1-5 rating where 5 is the favourable end, except for the
risk questions where 5 means the highest risk. ``scoring.answers_to_scoring``
reduces a set of answers to a :class:`~stagegate.schemas.Scoring`.
"""
from __future__ import annotations

from dataclasses import dataclass

from stagegate.scoring import CRITERIA


@dataclass(frozen=True)
class Question:
    id: str
    criterion: str
    text: dict[str, str]
    anchors: dict[int, dict[str, str]]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "criterion": self.criterion,
            "text": self.text,
            "anchors": {str(k): v for k, v in self.anchors.items()},
        }


def _q(qid: str, criterion: str, text: tuple[str, str], anchors: list[tuple[str, str]]) -> Question:
    return Question(
        id=qid,
        criterion=criterion,
        text={"en": text[0], "de": text[1]},
        anchors={i: {"en": en, "de": de} for i, (en, de) in enumerate(anchors, start=1)},
    )


ROUGH_SCORING_QUESTIONS: tuple[Question, ...] = (
    # Market attractiveness
    _q("ma_market_size", "market_attractiveness",
       ("How large is the total addressable market (TAM)?",
        "Wie groß ist der gesamte adressierbare Markt (TAM)?"),
       [("Very small (<€1M), niche with limited potential", "Sehr klein (<1 Mio. €), Nische mit begrenztem Potenzial"),
        ("Small (€1–10M), limited growth opportunities", "Klein (1–10 Mio. €), begrenzte Wachstumschancen"),
        ("Medium (€10–50M), moderate growth potential", "Mittel (10–50 Mio. €), moderates Wachstumspotenzial"),
        ("Large (€50–200M), strong growth trajectory", "Groß (50–200 Mio. €), starke Wachstumsdynamik"),
        ("Very large (>€200M), rapidly expanding market", "Sehr groß (>200 Mio. €), schnell wachsender Markt")]),
    _q("ma_growth_rate", "market_attractiveness",
       ("What is the expected market growth rate?",
        "Wie hoch ist das erwartete Marktwachstum?"),
       [("Declining or stagnant market (<0%)", "Schrumpfender oder stagnierender Markt (<0%)"),
        ("Slow growth (0–5% CAGR)", "Langsames Wachstum (0–5% CAGR)"),
        ("Moderate growth (5–10% CAGR)", "Moderates Wachstum (5–10% CAGR)"),
        ("Strong growth (10–20% CAGR)", "Starkes Wachstum (10–20% CAGR)"),
        ("Rapid growth (>20% CAGR), emerging market", "Rapides Wachstum (>20% CAGR), aufstrebender Markt")]),
    _q("ma_customer_demand", "market_attractiveness",
       ("How strong is the current customer demand or pain point?",
        "Wie stark ist die aktuelle Kundennachfrage bzw. der Problemdruck?"),
       [("No clear demand; solution looking for a problem", "Keine klare Nachfrage; Lösung sucht ein Problem"),
        ("Weak demand; nice-to-have, not must-have", "Schwache Nachfrage; Nice-to-have, kein Muss"),
        ("Moderate demand; customers interested but not urgent", "Moderate Nachfrage; Kunden interessiert, aber nicht dringend"),
        ("Strong demand; customers actively seeking solutions", "Starke Nachfrage; Kunden suchen aktiv nach Lösungen"),
        ("Critical demand; urgent pain point with high willingness to pay",
         "Kritische Nachfrage; dringender Problemdruck mit hoher Zahlungsbereitschaft")]),
    _q("ma_competition", "market_attractiveness",
       ("How intense is the competitive landscape?",
        "Wie intensiv ist die Wettbewerbssituation?"),
       [("Dominated by incumbents; extremely hard to enter", "Dominiert von Platzhirschen; Markteintritt extrem schwer"),
        ("Several strong competitors; significant barriers", "Mehrere starke Wettbewerber; erhebliche Barrieren"),
        ("Moderate competition; room for differentiation", "Moderater Wettbewerb; Raum für Differenzierung"),
        ("Few competitors; clear differentiation possible", "Wenige Wettbewerber; klare Differenzierung möglich"),
        ("Minimal competition; first-mover advantage or clear market gap",
         "Minimaler Wettbewerb; First-Mover-Vorteil oder klare Marktlücke")]),
    _q("ma_accessibility", "market_attractiveness",
       ("How accessible is the target market for us?",
        "Wie zugänglich ist der Zielmarkt für uns?"),
       [("No market access; no contacts, no channels", "Kein Marktzugang; keine Kontakte, keine Kanäle"),
        ("Limited access; need to build channels from scratch",
         "Begrenzter Zugang; Kanäle müssen von Grund auf aufgebaut werden"),
        ("Some access through existing partners or networks", "Etwas Zugang über bestehende Partner oder Netzwerke"),
        ("Good access; existing customer relationships in the market",
         "Guter Zugang; bestehende Kundenbeziehungen im Markt"),
        ("Excellent access; strong presence and reputation in the market",
         "Exzellenter Zugang; starke Präsenz und Reputation im Markt")]),
    # Strategic fit
    _q("sf_strategy_alignment", "strategic_fit",
       ("How well does this align with our corporate strategy and vision?",
        "Wie gut passt dies zu unserer Unternehmensstrategie und Vision?"),
       [("No alignment; contradicts strategic direction", "Keine Passung; widerspricht der strategischen Ausrichtung"),
        ("Weak alignment; tangential to strategy", "Schwache Passung; nur am Rande der Strategie"),
        ("Moderate alignment; supports some strategic goals", "Moderate Passung; unterstützt einige strategische Ziele"),
        ("Strong alignment; directly supports key strategic priorities",
         "Starke Passung; unterstützt direkt wichtige strategische Prioritäten"),
        ("Perfect fit; core to our strategic roadmap", "Perfekte Passung; Kern unserer strategischen Roadmap")]),
    _q("sf_competency_match", "strategic_fit",
       ("Can we leverage our existing core competencies?",
        "Können wir unsere bestehenden Kernkompetenzen nutzen?"),
       [("Entirely new capabilities required; no overlap", "Völlig neue Fähigkeiten erforderlich; keine Überschneidung"),
        ("Significant capability gaps; major investment needed", "Erhebliche Fähigkeitslücken; große Investition nötig"),
        ("Some capabilities exist; moderate gaps to close", "Einige Fähigkeiten vorhanden; moderate Lücken zu schließen"),
        ("Most capabilities available; minor upskilling needed", "Meiste Fähigkeiten verfügbar; geringe Weiterbildung nötig"),
        ("Fully leverages our core strengths and expertise", "Nutzt unsere Kernstärken und Expertise voll aus")]),
    _q("sf_portfolio_synergy", "strategic_fit",
       ("Are there synergies with our existing product portfolio?",
        "Gibt es Synergien mit unserem bestehenden Produktportfolio?"),
       [("No synergies; completely standalone offering", "Keine Synergien; völlig eigenständiges Angebot"),
        ("Minimal synergies; weak cross-selling potential", "Minimale Synergien; schwaches Cross-Selling-Potenzial"),
        ("Some synergies; limited cross-selling opportunities", "Einige Synergien; begrenzte Cross-Selling-Möglichkeiten"),
        ("Strong synergies; enhances existing portfolio", "Starke Synergien; stärkt bestehendes Portfolio"),
        ("Exceptional synergies; natural extension of our portfolio",
         "Außergewöhnliche Synergien; natürliche Erweiterung unseres Portfolios")]),
    _q("sf_customer_channel", "strategic_fit",
       ("Can we reach customers through existing channels?",
        "Können wir Kunden über bestehende Kanäle erreichen?"),
       [("Entirely new channels and customer base needed", "Völlig neue Kanäle und Kundenstamm erforderlich"),
        ("Mostly new channels; limited overlap with existing customers",
         "Überwiegend neue Kanäle; wenig Überschneidung mit Bestandskunden"),
        ("Partial overlap; some existing channels usable", "Teilweise Überschneidung; einige bestehende Kanäle nutzbar"),
        ("Significant overlap; most channels already in place",
         "Erhebliche Überschneidung; die meisten Kanäle bestehen bereits"),
        ("Same customers and channels; direct upselling opportunity",
         "Gleiche Kunden und Kanäle; direkte Upselling-Möglichkeit")]),
    # Feasibility
    _q("fe_technical_readiness", "feasibility",
       ("What is the current technology readiness level?",
        "Wie ist der aktuelle technologische Reifegrad?"),
       [("Basic research phase (TRL 1–2); breakthrough needed", "Grundlagenforschung (TRL 1–2); Durchbruch nötig"),
        ("Early development (TRL 3–4); concept proven but unvalidated",
         "Frühe Entwicklung (TRL 3–4); Konzept bewiesen aber nicht validiert"),
        ("Prototype available (TRL 5–6); needs further development",
         "Prototyp vorhanden (TRL 5–6); weitere Entwicklung nötig"),
        ("Demonstration phase (TRL 7–8); near market-ready", "Demonstrationsphase (TRL 7–8); nahezu marktreif"),
        ("Market-ready technology (TRL 9); proven in operation", "Marktreife Technologie (TRL 9); im Einsatz bewährt")]),
    _q("fe_resources", "feasibility",
       ("Do we have the necessary resources (people, equipment, budget)?",
        "Haben wir die nötigen Ressourcen (Personal, Ausstattung, Budget)?"),
       [("No resources available; would need to build everything",
         "Keine Ressourcen verfügbar; alles müsste aufgebaut werden"),
        ("Major gaps; significant hiring and investment needed",
         "Große Lücken; erhebliche Einstellungen und Investitionen nötig"),
        ("Some resources available; targeted hiring needed", "Einige Ressourcen vorhanden; gezielte Einstellungen nötig"),
        ("Most resources in place; minor additions needed", "Meiste Ressourcen vorhanden; geringe Ergänzungen nötig"),
        ("All resources available; can start immediately", "Alle Ressourcen verfügbar; sofortiger Start möglich")]),
    _q("fe_timeline", "feasibility",
       ("What is the realistic time-to-market?",
        "Was ist die realistische Time-to-Market?"),
       [("More than 5 years; highly uncertain timeline", "Mehr als 5 Jahre; sehr unsicherer Zeitrahmen"),
        ("3–5 years; significant development phases ahead", "3–5 Jahre; erhebliche Entwicklungsphasen voraus"),
        ("2–3 years; clear development roadmap exists", "2–3 Jahre; klare Entwicklungsroadmap vorhanden"),
        ("1–2 years; most milestones well-defined", "1–2 Jahre; die meisten Meilensteine klar definiert"),
        ("Less than 1 year; near-term launch possible", "Weniger als 1 Jahr; kurzfristiger Launch möglich")]),
    _q("fe_dependencies", "feasibility",
       ("How dependent are we on external partners or technologies?",
        "Wie abhängig sind wir von externen Partnern oder Technologien?"),
       [("Fully dependent on unproven external technologies/partners",
         "Voll abhängig von unerprobten externen Technologien/Partnern"),
        ("Heavy dependencies; critical partners not yet secured",
         "Starke Abhängigkeiten; kritische Partner noch nicht gesichert"),
        ("Moderate dependencies; key partners identified", "Moderate Abhängigkeiten; Schlüsselpartner identifiziert"),
        ("Limited dependencies; partnerships already in place", "Begrenzte Abhängigkeiten; Partnerschaften bereits bestehen"),
        ("Fully self-sufficient; no critical external dependencies",
         "Vollständig autark; keine kritischen externen Abhängigkeiten")]),
    # Commercial viability
    _q("cv_revenue_model", "commercial_viability",
       ("How clear and viable is the revenue model?",
        "Wie klar und tragfähig ist das Erlösmodell?"),
       [("No revenue model defined; unclear how to monetize",
         "Kein Erlösmodell definiert; unklar wie monetarisiert werden soll"),
        ("Basic concept exists; unproven, many assumptions", "Grundkonzept vorhanden; unbewiesen, viele Annahmen"),
        ("Revenue model defined; some market validation", "Erlösmodell definiert; teilweise Marktvalidierung"),
        ("Strong model with comparable market evidence", "Starkes Modell mit vergleichbarer Marktevidenz"),
        ("Proven model; customer commitments or LOIs exist", "Bewährtes Modell; Kundenzusagen oder LOIs vorhanden")]),
    _q("cv_margins", "commercial_viability",
       ("What are the expected profit margins?",
        "Wie hoch sind die erwarteten Gewinnmargen?"),
       [("Negative margins expected; no path to profitability", "Negative Margen erwartet; kein Weg zur Profitabilität"),
        ("Thin margins (<10%); price-sensitive market", "Dünne Margen (<10%); preissensitiver Markt"),
        ("Moderate margins (10–25%); competitive pricing required",
         "Moderate Margen (10–25%); wettbewerbsfähige Preise nötig"),
        ("Good margins (25–40%); pricing power exists", "Gute Margen (25–40%); Preissetzungsmacht vorhanden"),
        ("Excellent margins (>40%); premium pricing justified", "Exzellente Margen (>40%); Premium-Pricing gerechtfertigt")]),
    _q("cv_scalability", "commercial_viability",
       ("How scalable is the business model?",
        "Wie skalierbar ist das Geschäftsmodell?"),
       [("Not scalable; each unit requires proportional effort",
         "Nicht skalierbar; jede Einheit erfordert proportionalen Aufwand"),
        ("Limited scalability; high variable costs per unit", "Begrenzte Skalierbarkeit; hohe variable Kosten pro Einheit"),
        ("Moderately scalable; some economies of scale", "Moderat skalierbar; einige Skaleneffekte"),
        ("Highly scalable; strong economies of scale", "Hoch skalierbar; starke Skaleneffekte"),
        ("Extremely scalable; near-zero marginal cost (e.g. SaaS)",
         "Extrem skalierbar; nahezu null Grenzkosten (z.B. SaaS)")]),
    _q("cv_payback", "commercial_viability",
       ("How quickly can the investment be recovered?",
        "Wie schnell kann die Investition zurückgewonnen werden?"),
       [("No foreseeable payback; very high investment risk", "Kein absehbarer Payback; sehr hohes Investitionsrisiko"),
        ("Payback in 5+ years; long investment horizon", "Payback in 5+ Jahren; langer Investitionshorizont"),
        ("Payback in 3–5 years; acceptable timeline", "Payback in 3–5 Jahren; akzeptabler Zeitrahmen"),
        ("Payback in 1–3 years; attractive ROI", "Payback in 1–3 Jahren; attraktiver ROI"),
        ("Payback in <1 year; rapid return on investment", "Payback in <1 Jahr; schnelle Rendite")]),
    # Risk: higher answer = higher risk
    _q("ri_market_risk", "risk",
       ("How high is the market and regulatory risk?",
        "Wie hoch ist das Markt- und Regulierungsrisiko?"),
       [("Stable market; clear regulations; low uncertainty", "Stabiler Markt; klare Regulierung; geringe Unsicherheit"),
        ("Low risk; minor regulatory concerns; predictable market",
         "Niedriges Risiko; geringe regulatorische Bedenken; vorhersehbarer Markt"),
        ("Moderate risk; some regulatory uncertainty", "Moderates Risiko; gewisse regulatorische Unsicherheit"),
        ("High risk; significant regulatory hurdles ahead", "Hohes Risiko; erhebliche regulatorische Hürden voraus"),
        ("Very high risk; hostile regulatory environment; market disruption likely",
         "Sehr hohes Risiko; feindliches regulatorisches Umfeld; Marktumbruch wahrscheinlich")]),
    _q("ri_technical_risk", "risk",
       ("How high is the technical development risk?",
        "Wie hoch ist das technische Entwicklungsrisiko?"),
       [("Proven technology; minimal development risk", "Bewährte Technologie; minimales Entwicklungsrisiko"),
        ("Low risk; well-understood technology stack", "Niedriges Risiko; gut verstandener Technologie-Stack"),
        ("Moderate risk; some unresolved technical challenges",
         "Moderates Risiko; einige ungelöste technische Herausforderungen"),
        ("High risk; unproven technology; significant R&D needed",
         "Hohes Risiko; unerprobte Technologie; erhebliche F&E nötig"),
        ("Very high risk; breakthrough innovation required", "Sehr hohes Risiko; Durchbruchsinnovation erforderlich")]),
    _q("ri_execution_risk", "risk",
       ("How high is the execution and organizational risk?",
        "Wie hoch ist das Umsetzungs- und Organisationsrisiko?"),
       [("Low complexity; experienced team; clear path", "Geringe Komplexität; erfahrenes Team; klarer Weg"),
        ("Manageable; minor organizational adjustments needed", "Handhabbar; geringe organisatorische Anpassungen nötig"),
        ("Moderate complexity; cross-functional coordination required",
         "Moderate Komplexität; bereichsübergreifende Koordination nötig"),
        ("High complexity; major organizational change needed", "Hohe Komplexität; große organisatorische Veränderungen nötig"),
        ("Extreme complexity; transformational change required", "Extreme Komplexität; transformativer Wandel erforderlich")]),
    _q("ri_financial_risk", "risk",
       ("How high is the financial risk and capital exposure?",
        "Wie hoch ist das finanzielle Risiko und die Kapitalexposition?"),
       [("Low investment; easily reversible; limited downside",
         "Geringe Investition; leicht reversibel; begrenztes Verlustpotenzial"),
        ("Moderate investment; manageable financial exposure", "Moderate Investition; handhabbares finanzielles Risiko"),
        ("Significant investment; medium financial exposure", "Erhebliche Investition; mittleres finanzielles Risiko"),
        ("Large investment; high financial exposure", "Große Investition; hohe finanzielle Exposition"),
        ("Very large investment; existential financial risk", "Sehr große Investition; existenzielles Finanzrisiko")]),
)

QUESTION_IDS = frozenset(q.id for q in ROUGH_SCORING_QUESTIONS)


def questions_by_criterion(
    questions: tuple[Question, ...] = ROUGH_SCORING_QUESTIONS,
) -> dict[str, list[Question]]:
    """Group questions by criterion, in canonical criterion order."""
    grouped: dict[str, list[Question]] = {c: [] for c in CRITERIA}
    for q in questions:
        grouped[q.criterion].append(q)
    return grouped
