"""
Overall report — scoring output + narrative merged into one versioned object,
written with a single overwrite at profiles/{id}/reports/overall.

The dashboard subscribes to that path; a re-run fully replaces the previous
report, nothing is merged.
"""

import logging
from typing import Optional

from utils.db import Store, load_profile, now_ms, profile_path
from utils.llm import TextGenerator
from utils.models import Prompt, PromptResult, prompts_from_tree, results_from_tree
from workflows.narrative import generate_narrative
from workflows.scoring import score_prompts, serp_completion

logger = logging.getLogger(__name__)

REPORT_SCHEMA_VERSION = 1


class ReportNotReadyError(RuntimeError):
    """Some prompt is still missing a terminal status on google or bing."""

    def __init__(self, completion: dict):
        self.completion = completion
        super().__init__(
            f"SERP checks incomplete: {completion['done']}/{completion['total']} prompts done"
        )


def assemble_report(profile: dict, scored: dict, narrative: dict, generated_at: int) -> dict:
    return {
        "schemaVersion": REPORT_SCHEMA_VERSION,
        "generatedAt": generated_at,
        "metrics": scored["metrics"],
        "categorySummaries": scored["categorySummaries"],
        "clusters": narrative["clusters"],
        "opportunities": scored["opportunities"],
        "nextActions": scored["nextActions"],
        "visualData": scored["visualData"],
        "_meta": {
            "companyName": profile.get("companyName", ""),
            "websiteUrl": profile.get("websiteUrl", ""),
            "totalPrompts": len(scored["signals"]),
            "narrativeSource": narrative["source"],
        },
        "insights": narrative["insights"],
    }


async def build_overall_report(
    llm: Optional[TextGenerator],
    profile: dict,
    prompts: list[Prompt],
    results: dict[str, PromptResult],
) -> dict:
    """Pure scoring + narrative step; no persistence."""
    scored = score_prompts(prompts, results)
    narrative = await generate_narrative(llm, profile, scored["signals"])
    return assemble_report(profile, scored, narrative, now_ms())


async def generate_overall_report(
    store: Store,
    llm: Optional[TextGenerator],
    profile_id: str,
    require_complete: bool = True,
) -> dict:
    """
    Load prompts + results, build the report and overwrite reports/overall.

    Raises:
        NotFoundError        profile missing
        ReportNotReadyError  require_complete and some prompt is not terminal on both engines
    """
    profile = await load_profile(store, profile_id)
    prompts = prompts_from_tree(profile.get("prompts"))
    results = results_from_tree(profile.get("results"))

    completion = serp_completion(prompts, results)
    if require_complete and not completion["ready"]:
        raise ReportNotReadyError(completion)

    report = await build_overall_report(llm, profile, prompts, results)
    await store.set(profile_path(profile_id, "reports", "overall"), report)

    logger.info(
        "[report] %s: %d prompts, sov=%.3f, narrative=%s",
        profile_id, len(prompts), report["metrics"]["sov"], report["_meta"]["narrativeSource"],
    )
    return report
