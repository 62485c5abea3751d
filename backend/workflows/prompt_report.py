"""
Per-prompt opportunity report — markdown analysis of one prompt from its
Google / Bing top 10 and competitor hits, stored at profiles/{id}/reports/{promptId}.
"""

import logging

from utils.db import NotFoundError, Store, load_profile, now_ms, profile_path
from utils.llm import TextGenerator
from utils.models import EngineResult, PromptResult, results_from_tree, split_prompt_id

logger = logging.getLogger(__name__)

INSTRUCTIONS = "\n".join([
    "You are a strategic content & SEO/GEO analyst.",
    "Create an opportunity report based on one search prompt and its presence on Google and Bing.",
    "Be concise but insightful; use markdown headings and bullet points.",
    "",
    "Sections to include:",
    "1) Summary of the prompt intent and ICP needs",
    "2) Where the company's site shines today (with examples from top results if present)",
    "3) Where competitors shine (by name/domain) and why",
    "4) Opportunity gaps: concrete angles where the company can win",
    "5) Content plan: many blog/article ideas with short outlines (H2s/bullets), tailored to win the above gaps",
    "6) Quick wins vs. longer plays",
    "",
    "Tone: practical, specific, and actionable.",
])


def _numbered(urls: list[str]) -> list[str]:
    return [f"{i}. {u}" for i, u in enumerate(urls, start=1)] or ["(none)"]


def build_report_input(profile: dict, prompt_text: str, google: EngineResult, bing: EngineResult) -> str:
    competitors = ", ".join(profile.get("competitorUrls") or []) or "None provided"
    return "\n".join([
        f"Company: {profile.get('companyName', '')} ({profile.get('websiteUrl', '')})",
        f"Prompt: {prompt_text}",
        "",
        "Google Top 10 URLs:",
        *_numbered(google.top10),
        "",
        "Bing Top 10 URLs:",
        *_numbered(bing.top10),
        "",
        f"Company present on Google page 1: {'Yes' if google.hasCompany else 'No'}",
        f"Company present on Bing page 1: {'Yes' if bing.hasCompany else 'No'}",
        "",
        f"Competitors list: {competitors}",
        f"Competitors appearing (Google): {', '.join(google.competitorsHit) or 'none'}",
        f"Competitors appearing (Bing): {', '.join(bing.competitorsHit) or 'none'}",
        "",
        "Write the report in markdown.",
    ])


async def generate_prompt_report(store: Store, llm: TextGenerator, profile_id: str, prompt_id: str) -> dict:
    category, key = split_prompt_id(prompt_id)
    profile = await load_profile(store, profile_id)

    entry = ((profile.get("prompts") or {}).get(category) or {}).get(key)
    if not isinstance(entry, dict):
        raise NotFoundError("Prompt not found")
    prompt_text = entry.get("text") or ""

    result = results_from_tree(profile.get("results")).get(prompt_id) or PromptResult()

    markdown = await llm.generate(
        instructions=INSTRUCTIONS,
        input=build_report_input(profile, prompt_text, result.google, result.bing),
        temperature=0.6,
        max_output_tokens=1800,
    )

    report = {
        "promptId": prompt_id,
        "prompt": prompt_text,
        "markdown": markdown,
        "createdAt": now_ms(),
    }
    await store.set(profile_path(profile_id, "reports", prompt_id), report)
    logger.info("[report] %s: prompt report for %s", profile_id, prompt_id)
    return report
