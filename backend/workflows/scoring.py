"""
Opportunity scoring — pure numbers from (prompts, SERP results), no network or model calls.

Per prompt:
    presenceScore      = 2·googleHas + 1.2·bingHas
    missingPresence    = max(0, 2 − presenceScore)                 ∈ [0, 2]
    competitorPressure = min(1, |competitor domains| / 4)           ∈ [0, 1]
    categoryWeight     = fixed lookup per category
    opportunityScore   = missing · (1 + 0.6·pressure) · weight     ≥ 0, 3 dp

Channel naming for the dashboard: Bing organic stands in for ChatGPT,
Google organic for both Perplexity and Google AI Overview.

Ratios are returned unrounded (0..1); presentation rounds them.
"""

from dataclasses import dataclass
from typing import Optional

from utils.models import CATEGORIES, Prompt, PromptResult
from workflows.outlines import LLM_READY_CHECKLIST, outline_for

CATEGORY_WEIGHT: dict[str, float] = {
    "brainstorming":      1.0,
    "identified_problem": 1.3,
    "solution_comparing": 1.7,
    "info_seeking":       0.9,
}

CATEGORY_REASON: dict[str, str] = {
    "brainstorming": "Awareness/early exploration; useful for seeding LLM citations but lower immediate revenue intent.",
    "identified_problem": "Mid-funnel urgency; users need fixes or a plan, closer to solution discovery.",
    "solution_comparing": "Bottom-funnel evaluation; highest buying intent and fastest revenue signal.",
    "info_seeking": "Category education and definitions; supports authority signals for LLMs.",
}

CATEGORY_FOCUS: dict[str, str] = {
    "solution_comparing": "buying decisions",
    "identified_problem": "problem resolution",
    "brainstorming":      "task frameworks",
    "info_seeking":       "education",
}

GOOGLE_WEIGHT = 2.0
BING_WEIGHT = 1.2
FULL_PRESENCE = 2.0
PRESSURE_SATURATION = 4
PRESSURE_BOOST = 0.6

SCORE_FORMULA = "opportunity = missingPresence × (1 + 0.6×competitorPressure) × categoryWeight"

TOP_MONEY_PROMPTS = 5
TOP_GAPS_PER_CATEGORY = 5
NEXT_ACTIONS = 10
LABEL_MAX = 64


@dataclass(frozen=True)
class ComputedSignal:
    prompt_id: str
    prompt: str
    category: str
    google_has: bool
    bing_has: bool
    competitor_domains: tuple[str, ...]
    presence_score: float
    missing_presence: float
    competitor_pressure: float
    category_weight: float
    opportunity_score: float

    @property
    def competitor_hits_count(self) -> int:
        return len(self.competitor_domains)

    @property
    def present(self) -> bool:
        return self.google_has or self.bing_has

    @property
    def white_space(self) -> bool:
        return not self.present and self.competitor_hits_count == 0

    @property
    def competitor_only(self) -> bool:
        return not self.present and self.competitor_hits_count > 0

    @property
    def channels(self) -> dict:
        return {
            "chatgpt": self.bing_has,
            "perplexity": self.google_has,
            "googleAIO": self.google_has,
        }


# ── Formula ───────────────────────────────────────────────────────────────────

def missing_presence(google_has: bool, bing_has: bool) -> float:
    presence = (GOOGLE_WEIGHT if google_has else 0.0) + (BING_WEIGHT if bing_has else 0.0)
    return max(0.0, FULL_PRESENCE - presence)


def competitor_pressure(hit_count: int) -> float:
    return min(1.0, hit_count / PRESSURE_SATURATION)


def opportunity_score(missing: float, pressure: float, weight: float) -> float:
    return round(missing * (1 + PRESSURE_BOOST * pressure) * weight, 3)


def compute_signal(prompt: Prompt, result: Optional[PromptResult]) -> ComputedSignal:
    result = result or PromptResult()
    google, bing = result.google, result.bing

    google_has = bool(google.hasCompany)
    bing_has = bool(bing.hasCompany)
    domains = tuple(dict.fromkeys([*google.competitorsHit, *bing.competitorsHit]))

    presence = (GOOGLE_WEIGHT if google_has else 0.0) + (BING_WEIGHT if bing_has else 0.0)
    missing = missing_presence(google_has, bing_has)
    pressure = competitor_pressure(len(domains))
    weight = CATEGORY_WEIGHT[prompt.category]

    return ComputedSignal(
        prompt_id=prompt.id,
        prompt=prompt.text,
        category=prompt.category,
        google_has=google_has,
        bing_has=bing_has,
        competitor_domains=domains,
        presence_score=presence,
        missing_presence=missing,
        competitor_pressure=pressure,
        category_weight=weight,
        opportunity_score=opportunity_score(missing, pressure, weight),
    )


def compute_signals(prompts: list[Prompt], results: dict[str, PromptResult]) -> list[ComputedSignal]:
    return [compute_signal(p, results.get(p.id)) for p in prompts]


# ── Aggregates ────────────────────────────────────────────────────────────────

def ratio(n: float, d: float) -> float:
    return n / d if d else 0.0


def by_opportunity(signals: list[ComputedSignal]) -> list[ComputedSignal]:
    """Highest opportunity first; ties keep input order."""
    return sorted(signals, key=lambda s: s.opportunity_score, reverse=True)


def short_label(text: str, max_len: int = LABEL_MAX) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len - 1] + "…"


def compute_metrics(signals: list[ComputedSignal]) -> dict:
    total = len(signals) or 1
    return {
        "sov": ratio(sum(1 for s in signals if s.present), total),
        "whiteSpacePct": ratio(sum(1 for s in signals if s.white_space), total),
        "competitorPressureIdx": sum(s.competitor_pressure for s in signals) / total,
        "topMoneyPrompts": [
            {
                "promptId": s.prompt_id,
                "prompt": s.prompt,
                "category": s.category,
                "opportunityScore": s.opportunity_score,
            }
            for s in by_opportunity(signals)[:TOP_MONEY_PROMPTS]
        ],
    }


def _in_category(signals: list[ComputedSignal], category: str) -> list[ComputedSignal]:
    return [s for s in signals if s.category == category]


def category_summaries(signals: list[ComputedSignal]) -> dict:
    summaries = {}
    for category in CATEGORIES:
        group = _in_category(signals, category)
        denom = len(group) or 1
        summaries[category] = {
            "presencePct": ratio(sum(1 for s in group if s.present), denom),
            "pressure": sum(s.competitor_pressure for s in group) / denom,
            "topGaps": [s.prompt_id for s in by_opportunity(group)[:TOP_GAPS_PER_CATEGORY]],
        }
    return summaries


def visual_data(signals: list[ComputedSignal]) -> dict:
    heatmap = [
        {
            "promptId": s.prompt_id,
            "prompt": s.prompt,
            "category": s.category,
            "channels": s.channels,
            "competitorCount": s.competitor_hits_count,
        }
        for s in signals
    ]

    bubble_matrix = [
        {
            "promptId": s.prompt_id,
            "x_competitorPressure": round(s.competitor_pressure, 3),
            "y_missingPresenceWeighted": round(s.missing_presence * s.category_weight, 3),
            "size": round(s.opportunity_score, 3),
            "label": short_label(s.prompt),
            "category": s.category,
        }
        for s in signals
    ]

    funnel, radar = [], []
    for category in CATEGORIES:
        group = _in_category(signals, category)
        denom = len(group) or 1
        present = ratio(sum(1 for s in group if s.present), denom)
        pressure = sum(s.competitor_pressure for s in group) / denom
        funnel.append({
            "category": category,
            "presentPct": present,
            "competitorOnlyPct": ratio(sum(1 for s in group if s.competitor_only), denom),
            "whiteSpacePct": ratio(sum(1 for s in group if s.white_space), denom),
        })
        radar.append({"category": category, "presence": present, "pressure": pressure})

    return {
        "heatmap": heatmap,
        "bubbleMatrix": bubble_matrix,
        "funnelSov": funnel,
        "radarCategory": radar,
    }


def opportunities(signals: list[ComputedSignal]) -> list[dict]:
    return [
        {
            "promptId": s.prompt_id,
            "prompt": s.prompt,
            "category": s.category,
            "opportunityScore": s.opportunity_score,
            "competitorDomains": list(s.competitor_domains),
            "missingPresence": s.missing_presence,
            "competitorPressure": s.competitor_pressure,
            "channels": s.channels,
        }
        for s in signals
    ]


# ── Next actions ──────────────────────────────────────────────────────────────

def why_for(signal: ComputedSignal) -> list[str]:
    """Rationale built only from missing channels, competitor domains and category."""
    channels = signal.channels
    missing_channels = [
        name
        for name, present in (
            ("Perplexity", channels["perplexity"]),
            ("Google AI Overview", channels["googleAIO"]),
            ("ChatGPT", channels["chatgpt"]),
        )
        if not present
    ]

    if signal.missing_presence > 0:
        visibility = f"Currently not visible in {', '.join(missing_channels) or 'some channels'}"
    else:
        visibility = "Already visible in at least one major channel"

    if signal.competitor_hits_count > 0:
        shown = ", ".join(signal.competitor_domains[:4])
        more = "…" if signal.competitor_hits_count > 4 else ""
        competition = f"Competitors present ({shown}{more})"
    else:
        competition = "Low competitor presence"

    return [visibility, competition, f"Category emphasizes {CATEGORY_FOCUS[signal.category]}"]


def next_actions(signals: list[ComputedSignal]) -> list[dict]:
    actions = []
    for rank, s in enumerate(by_opportunity(signals)[:NEXT_ACTIONS], start=1):
        outline = outline_for(s.category, s.prompt)
        actions.append({
            "rank": rank,
            "promptId": s.prompt_id,
            "prompt": s.prompt,
            "category": s.category,
            "channels": s.channels,
            "opportunityScore": s.opportunity_score,
            "scoreBreakdown": {
                "formula": SCORE_FORMULA,
                "missingPresence": s.missing_presence,
                "competitorPressure": s.competitor_pressure,
                "categoryWeight": s.category_weight,
                "categoryWeightReason": CATEGORY_REASON[s.category],
            },
            "why": why_for(s),
            "recommendedArtifactType": outline.artifact_type,
            "outlineSteps": list(outline.steps),
            "outlineSections": [section.to_dict() for section in outline.sections],
            "checklistLLMReady": list(LLM_READY_CHECKLIST),
        })
    return actions


# ── Entry points ──────────────────────────────────────────────────────────────

def score_prompts(prompts: list[Prompt], results: dict[str, PromptResult]) -> dict:
    """
    Every deterministic section of the overall report.

    Returns:
        dict: signals (list[ComputedSignal]), metrics, categorySummaries,
        opportunities, nextActions, visualData
    """
    signals = compute_signals(prompts, results)
    return {
        "signals": signals,
        "metrics": compute_metrics(signals),
        "categorySummaries": category_summaries(signals),
        "opportunities": opportunities(signals),
        "nextActions": next_actions(signals),
        "visualData": visual_data(signals),
    }


def serp_completion(prompts: list[Prompt], results: dict[str, PromptResult]) -> dict:
    """A prompt is done once both engines reached done/error."""
    done = 0
    for p in prompts:
        r = results.get(p.id)
        if r is not None and r.google.terminal and r.bing.terminal:
            done += 1
    total = len(prompts)
    return {"total": total, "done": done, "ready": total > 0 and done == total}
