"""
Narrative augmentation — thematic clusters + qualitative insights for the overall report.

The model only sees the already-scored signal set (company name/website,
competitor URLs, per-prompt channels, competitor domains and scores). It
GROUPS and WRITES; it never produces numbers that reach the report:
cluster opportunitySum is recomputed here from the local scores.

Any model error, parse failure or schema violation falls back to one
cluster per category with canned insight strings.
"""

import copy
import json
import logging
from typing import Literal, Optional

import anthropic
import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from utils.llm import TextGenerator, safe_parse_json
from utils.models import CATEGORIES, PromptCategory
from workflows.scoring import ComputedSignal

logger = logging.getLogger(__name__)

ClusterIcon = Literal["building", "shield", "code", "search", "alert", "file"]
ICONS: tuple[str, ...] = ("building", "shield", "code", "search", "alert", "file")
DEFAULT_ICON = "search"

MAX_CLUSTERS = 8

NARRATIVE_TEMPERATURE = 0.5
NARRATIVE_MAX_TOKENS = 2200

_FALLBACK_ICON = {
    "solution_comparing": "search",
    "identified_problem": "alert",
    "brainstorming": "building",
    "info_seeking": "file",
}

FALLBACK_INSIGHTS = {
    "strengths": ["Model fallback: basic presence in some categories."],
    "weaknesses": ["Model fallback: refine cluster themes for sharper targeting."],
    "competitiveNarrative": (
        "Model fallback: competitors present in overlapping prompts; "
        "prioritize BOFU solution-comparing intents."
    ),
    "categoryNarrative": {
        "brainstorming": "Awareness-stage prompts benefit from canonical 'how-to' structures.",
        "identified_problem": "Problem-led intents want crisp troubleshooting and solution patterns.",
        "solution_comparing": "High-intent buyers seek head-to-head comparisons and decision criteria.",
        "info_seeking": "Educational primitives (definitions, standards) anchor AI-ready knowledge graphs.",
    },
}

INSTRUCTIONS = "\n".join([
    "You are a GEO (Generative Engine Optimization) strategist.",
    "You will receive prompts, their categories, channel visibility booleans, competitor domains, and precomputed scores.",
    "Your job is to GROUP (clusters) and WRITE (insights narrative).",
    "DO NOT mention 'Bing', 'Google Page 1', 'rank', or 'SERP'.",
    "Use 'ChatGPT', 'Perplexity', and 'Google AI Overview' terminology.",
    "Return ONLY valid JSON matching the requested shape.",
])

_RULES = {
    "wording": [
        "DO NOT mention 'Bing' anywhere. Say 'ChatGPT' instead.",
        "DO NOT mention 'Google Page 1' or 'page rank'. Say 'Google AI Overview' instead.",
        "Avoid the words 'SERP' or 'rank'. Use 'visible', 'present', or 'discovered via AI'.",
        "Use AI-centric lingo: channels are ChatGPT, Perplexity, Google AI Overview.",
    ],
    "tasks": [
        "Create 5-8 topical clusters using the prompt texts; group by semantic theme and purchase intent.",
        "For each cluster: give a short title (3-5 words), pick an icon (building|shield|code|search|alert|file), "
        "and list the promptIds (use ids verbatim).",
        "Write insights: bullet Strengths & Weaknesses (short, objective), one Competitive narrative paragraph, "
        "and a 1-2 sentence narrative per category explaining why it matters for AI discovery.",
    ],
    "constraints": [
        "Output strictly valid JSON only. No markdown fences. No extra commentary.",
        "Do not fabricate numeric values.",
        "Keep text concise, pitch-ready, no marketing fluff.",
    ],
}

_OUTPUT_SHAPE = {
    "clusters": [
        {"title": "string", "icon": "building|shield|code|search|alert|file", "items": ["promptId", "..."]}
    ],
    "insights": {
        "strengths": ["string", "..."],
        "weaknesses": ["string", "..."],
        "competitiveNarrative": "string",
        "categoryNarrative": {c: "string" for c in CATEGORIES},
    },
}


# ── Validated model output ────────────────────────────────────────────────────

class NarrativeCluster(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = "Cluster"
    icon: ClusterIcon = DEFAULT_ICON
    items: list[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v):
        return v.strip() if isinstance(v, str) and v.strip() else "Cluster"

    @field_validator("icon", mode="before")
    @classmethod
    def _icon(cls, v):
        return v if v in ICONS else DEFAULT_ICON

    @field_validator("items", mode="before")
    @classmethod
    def _items(cls, v):
        if not isinstance(v, list):
            return []
        return [i for i in v if isinstance(i, str)]


class NarrativeInsights(BaseModel):
    model_config = ConfigDict(extra="ignore")

    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    competitiveNarrative: str = ""
    categoryNarrative: dict[PromptCategory, str] = Field(default_factory=dict)

    @field_validator("categoryNarrative", mode="before")
    @classmethod
    def _known_categories(cls, v):
        # Keys become store path segments; only the four categories are allowed
        if not isinstance(v, dict):
            return {}
        return {c: v[c] for c in CATEGORIES if isinstance(v.get(c), str)}


class NarrativePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    clusters: list[NarrativeCluster]
    insights: NarrativeInsights = Field(default_factory=NarrativeInsights)


# ── Model input ───────────────────────────────────────────────────────────────

def build_narrative_input(profile: dict, signals: list[ComputedSignal]) -> dict:
    """Only company identity, competitor URLs and the scored signals leave the process."""
    return {
        "company": {
            "name": profile.get("companyName", ""),
            "website": profile.get("websiteUrl", ""),
        },
        "competitors": list(profile.get("competitorUrls") or []),
        "prompts": [
            {
                "id": s.prompt_id,
                "text": s.prompt,
                "category": s.category,
                "channels": s.channels,
                "competitorDomains": list(s.competitor_domains),
                "scores": {
                    "missingPresence": s.missing_presence,
                    "competitorPressure": s.competitor_pressure,
                    "opportunityScore": s.opportunity_score,
                },
            }
            for s in signals
        ],
        "rules": _RULES,
        "outputShape": _OUTPUT_SHAPE,
    }


# ── Normalization ─────────────────────────────────────────────────────────────

def finalize_clusters(clusters: list[NarrativeCluster], signals: list[ComputedSignal]) -> list[dict]:
    """Drop unknown prompt ids and recompute opportunitySum from local scores."""
    score_by_id = {s.prompt_id: s.opportunity_score for s in signals}
    finalized = []
    for cluster in clusters:
        items = list(dict.fromkeys(i for i in cluster.items if i in score_by_id))
        finalized.append({
            "title": cluster.title,
            "icon": cluster.icon,
            "items": items,
            "opportunitySum": round(sum(score_by_id[i] for i in items), 3),
        })
    return finalized


def fallback_clusters(signals: list[ComputedSignal]) -> list[NarrativeCluster]:
    return [
        NarrativeCluster(
            title=f"{category.replace('_', ' ')} - Core",
            icon=_FALLBACK_ICON[category],
            items=[s.prompt_id for s in signals if s.category == category],
        )
        for category in CATEGORIES
    ]


def fallback_narrative(signals: list[ComputedSignal]) -> dict:
    return {
        "clusters": finalize_clusters(fallback_clusters(signals), signals),
        "insights": copy.deepcopy(FALLBACK_INSIGHTS),
        "source": "fallback",
    }


def parse_narrative(raw: str) -> NarrativePayload:
    """
    Defensive parse of the model reply.
    Raises ValueError when the text is not JSON, does not match the shape,
    or yields no clusters.
    """
    data = safe_parse_json(raw or "")
    if not isinstance(data, dict):
        raise ValueError("Narrative reply is not a JSON object")
    try:
        payload = NarrativePayload.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Narrative reply failed validation: {e.error_count()} errors") from e
    if not payload.clusters:
        raise ValueError("Narrative reply contained no clusters")
    return payload


# ── Entry point ───────────────────────────────────────────────────────────────

async def generate_narrative(
    llm: Optional[TextGenerator],
    profile: dict,
    signals: list[ComputedSignal],
) -> dict:
    """
    Clusters + insights for the overall report. Never raises for model failures.

    Returns:
        dict: clusters (list of {title, icon, items, opportunitySum}),
              insights, source ("model" | "fallback")
    """
    if llm is None:
        logger.warning("[narrative] no text generator configured; using fallback")
        return fallback_narrative(signals)

    try:
        raw = await llm.generate(
            instructions=INSTRUCTIONS,
            input=json.dumps(build_narrative_input(profile, signals), ensure_ascii=False),
            temperature=NARRATIVE_TEMPERATURE,
            max_output_tokens=NARRATIVE_MAX_TOKENS,
        )
        payload = parse_narrative(raw)
    except (anthropic.APIError, httpx.HTTPError, ValueError) as e:
        logger.warning("[narrative] falling back: %s", e)
        return fallback_narrative(signals)

    clusters = payload.clusters[:MAX_CLUSTERS]
    if len(payload.clusters) > MAX_CLUSTERS:
        logger.info("[narrative] truncated %d clusters to %d", len(payload.clusters), MAX_CLUSTERS)

    return {
        "clusters": finalize_clusters(clusters, signals),
        "insights": payload.insights.model_dump(),
        "source": "model",
    }
