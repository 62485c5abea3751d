"""
Bootstrap pipeline — scrape → generate prompts → full SERP run.

Runs as a background job after POST /api/profiles/{id}/bootstrap returns 202.
Progress:  queued → scraping 25 → 45 → generating_prompts 55 → 70
           → serp_check 72 → 97 → done 100
Any failure marks the profile status=error with lastError; the dashboard
reads both from the live subscription.
"""

import logging
from typing import Optional

from utils.db import NotFoundError, Store, load_profile, now_ms, profile_path, set_profile_status
from utils.firecrawl import FirecrawlClient
from utils.llm import TextGenerator
from workflows.prompt_generation import generate_prompts_for_profile
from workflows.serp_runner import SerpRunner

logger = logging.getLogger(__name__)

MARKDOWN_PREVIEW_CHARS = 10_000
HTML_PREVIEW_CHARS = 5_000


async def scrape_profile_site(store: Store, firecrawl: FirecrawlClient, profile_id: str) -> dict:
    profile = await load_profile(store, profile_id)
    url = profile.get("websiteUrl") or ""
    if not url:
        raise ValueError("Profile has no websiteUrl")

    await set_profile_status(store, profile_id, "scraping", 25)
    page = await firecrawl.scrape(url)
    markdown = page["markdown"]
    logger.info("[pipeline] scraped %s (%d chars of markdown)", url, len(markdown))

    preview = {
        "url": url,
        "markdownPreview": markdown[:MARKDOWN_PREVIEW_CHARS],
        "markdownBytes": len(markdown.encode("utf-8")),
        "scrapedAt": now_ms(),
    }
    if page["html"]:
        preview["htmlPreview"] = page["html"][:HTML_PREVIEW_CHARS]

    await store.set(profile_path(profile_id, "scrape"), preview)
    await set_profile_status(store, profile_id, progress=45)
    return preview


async def run_bootstrap(
    store: Store,
    firecrawl: FirecrawlClient,
    llm: Optional[TextGenerator],
    runner: SerpRunner,
    profile_id: str,
) -> bool:
    """Full pipeline for one profile. Returns False after marking the profile as errored."""
    try:
        await scrape_profile_site(store, firecrawl, profile_id)
        if llm is None:
            raise ValueError("ANTHROPIC_API_KEY not configured")
        await generate_prompts_for_profile(store, llm, profile_id)
        # The runner owns the final done/100 write
        await runner.run_for_profile(profile_id)
        return True
    except NotFoundError:
        logger.warning("[pipeline] %s: profile not found", profile_id)
        return False
    except Exception as e:
        logger.exception("[pipeline] %s failed", profile_id)
        await set_profile_status(store, profile_id, "error", lastError=str(e) or type(e).__name__)
        return False
