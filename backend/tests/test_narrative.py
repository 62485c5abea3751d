import asyncio
import json

import httpx
import pytest

from conftest import FakeLLM
from utils.llm import extract_json_block, safe_parse_json, strip_code_fences
from utils.models import CATEGORIES, EngineResult, Prompt, PromptResult
from workflows.narrative import (
    FALLBACK_INSIGHTS,
    MAX_CLUSTERS,
    build_narrative_input,
    generate_narrative,
    parse_narrative,
)
from workflows.scoring import compute_signals

PROFILE = {
    "companyName": "Acme",
    "websiteUrl": "https://acme.com/",
    "competitorUrls": ["https://rival.com/"],
    "scrape": {"markdownPreview": "secret site content"},
    "remarks": "internal remarks",
}


def signals():
    prompts = [
        Prompt(id="brainstorming:00", text="plan a product launch", category="brainstorming"),
        Prompt(id="identified_problem:00", text="crm data is messy", category="identified_problem"),
        Prompt(id="solution_comparing:00", text="acme vs rival", category="solution_comparing"),
        Prompt(id="solution_comparing:01", text="best crm tools", category="solution_comparing"),
    ]
    results = {
        "solution_comparing:01": PromptResult(
            google=EngineResult(status="done", hasCompany=False, competitorsHit=["rival.com"]),
            bing=EngineResult(status="done", hasCompany=True),
        ),
    }
    return compute_signals(prompts, results)


def model_reply(**overrides):
    payload = {
        "clusters": [
            {"title": "Buying Decisions", "icon": "search",
             "items": ["solution_comparing:00", "solution_comparing:01", "made:up"]},
            {"title": "Launch Planning", "icon": "rocket", "items": ["brainstorming:00"]},
        ],
        "insights": {
            "strengths": ["Visible in ChatGPT for tool roundups"],
            "weaknesses": ["Absent from Perplexity"],
            "competitiveNarrative": "Rival owns comparisons.",
            "categoryNarrative": {c: f"{c} matters" for c in CATEGORIES},
        },
    }
    payload.update(overrides)
    return json.dumps(payload)


# ── Parsing ───────────────────────────────────────────────

def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_extract_json_block():
    assert extract_json_block('Sure! {"a": {"b": 2}} hope this helps') == '{"a": {"b": 2}}'
    assert extract_json_block("  no braces  ") == "no braces"


def test_safe_parse_json_recovers_outer_span():
    assert safe_parse_json('Here you go:\n{"ok": true}\nThanks') == {"ok": True}


def test_safe_parse_json_raises_on_garbage():
    with pytest.raises(ValueError):
        safe_parse_json("definitely not json")


def test_parse_narrative_rejects_empty_clusters():
    with pytest.raises(ValueError):
        parse_narrative('{"clusters": [], "insights": {}}')


def test_parse_narrative_rejects_wrong_shape():
    with pytest.raises(ValueError):
        parse_narrative('{"clusters": "nope"}')


# ── Model input ───────────────────────────────────────────

def test_narrative_input_carries_only_scored_signals():
    payload = build_narrative_input(PROFILE, signals())
    assert set(payload) == {"company", "competitors", "prompts", "rules", "outputShape"}
    assert payload["company"] == {"name": "Acme", "website": "https://acme.com/"}
    text = json.dumps(payload)
    assert "secret site content" not in text
    assert "internal remarks" not in text
    first = payload["prompts"][0]
    assert set(first) == {"id", "text", "category", "channels", "competitorDomains", "scores"}
    assert set(first["scores"]) == {"missingPresence", "competitorPressure", "opportunityScore"}


# ── Generation ────────────────────────────────────────────

def test_model_clusters_are_validated_and_rescored():
    llm = FakeLLM("```json\n" + model_reply() + "\n```")
    out = asyncio.run(generate_narrative(llm, PROFILE, signals()))

    assert out["source"] == "model"
    buying, launch = out["clusters"]
    assert buying["items"] == ["solution_comparing:00", "solution_comparing:01"]
    # 3.4 + 0.8 × 1.15 × 1.7
    assert buying["opportunitySum"] == pytest.approx(4.964)
    assert launch["icon"] == "search"
    assert launch["opportunitySum"] == pytest.approx(2.0)
    assert out["insights"]["competitiveNarrative"] == "Rival owns comparisons."

    call = llm.calls[0]
    assert call["temperature"] == 0.5
    assert call["max_output_tokens"] == 2200


def test_model_supplied_opportunity_sum_is_ignored():
    reply = model_reply(clusters=[{"title": "T", "icon": "code", "items": ["brainstorming:00"], "opportunitySum": 999}])
    out = asyncio.run(generate_narrative(FakeLLM(reply), PROFILE, signals()))
    assert out["clusters"][0]["opportunitySum"] == pytest.approx(2.0)


def test_clusters_truncated_to_max():
    many = [{"title": f"C{i}", "icon": "file", "items": []} for i in range(12)]
    out = asyncio.run(generate_narrative(FakeLLM(model_reply(clusters=many)), PROFILE, signals()))
    assert len(out["clusters"]) == MAX_CLUSTERS


def assert_fallback(out, sigs):
    assert out["source"] == "fallback"
    assert out["insights"] == FALLBACK_INSIGHTS
    assert [c["title"] for c in out["clusters"]] == [
        "brainstorming - Core",
        "identified problem - Core",
        "solution comparing - Core",
        "info seeking - Core",
    ]
    assert [c["icon"] for c in out["clusters"]] == ["building", "alert", "search", "file"]
    for cluster, category in zip(out["clusters"], CATEGORIES):
        assert cluster["items"] == [s.prompt_id for s in sigs if s.category == category]


def test_unparseable_reply_falls_back():
    sigs = signals()
    out = asyncio.run(generate_narrative(FakeLLM("I cannot help with that."), PROFILE, sigs))
    assert_fallback(out, sigs)


def test_collaborator_error_falls_back():
    sigs = signals()
    llm = FakeLLM(httpx.ConnectError("connection refused"))
    out = asyncio.run(generate_narrative(llm, PROFILE, sigs))
    assert_fallback(out, sigs)


def test_missing_generator_falls_back():
    sigs = signals()
    assert_fallback(asyncio.run(generate_narrative(None, PROFILE, sigs)), sigs)


def test_fallback_insights_are_not_shared_state():
    out = asyncio.run(generate_narrative(None, PROFILE, signals()))
    out["insights"]["strengths"].append("mutated")
    assert FALLBACK_INSIGHTS["strengths"] == ["Model fallback: basic presence in some categories."]


def test_category_narrative_limited_to_known_categories():
    insights = {
        "strengths": [],
        "weaknesses": [],
        "competitiveNarrative": "",
        "categoryNarrative": {"": "x", "a/b": "y", "brainstorming": "b", "info_seeking": 3},
    }
    out = asyncio.run(generate_narrative(FakeLLM(model_reply(insights=insights)), PROFILE, signals()))
    assert out["source"] == "model"
    assert out["insights"]["categoryNarrative"] == {"brainstorming": "b"}
