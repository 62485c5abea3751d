"""
SERP orchestrator — per-prompt presence checks on Google (organic + shopping +
immersive brands) and Bing (organic), persisted under
profiles/{id}/results/{promptId}/{engine}.

Lifecycle per (prompt, engine): checking → done | error, written once each.
One engine failing never blocks the other; a batch run always ends with every
pair terminal.

Two modes:
  run_for_profile()  every prompt, bounded pool, progress 72 → 97 → 100 "done"
  run_for_prompt()   one prompt (added / generated), no profile bookkeeping
"""

import asyncio
import logging
from dataclasses import dataclass

from utils.db import NotFoundError, Store, load_profile, now_ms, profile_path, set_profile_status
from utils.domains import host_from_result_url, hostname_from_url, matches_domain
from utils.models import Prompt, prompts_from_tree, split_prompt_id
from utils.presence import analyze_brands, analyze_hosts, analyze_top10
from utils.serpapi import DEFAULT_REGION, SerpApiClient, extract_organic_top10, extract_shopping_seller_hosts

logger = logging.getLogger(__name__)

PROGRESS_START = 72
PROGRESS_END = 97


@dataclass(frozen=True)
class Targets:
    company_domain: str
    competitor_domains: list[str]
    region: str

    @staticmethod
    def from_profile(profile: dict) -> "Targets":
        return Targets(
            company_domain=hostname_from_url(profile.get("websiteUrl") or ""),
            competitor_domains=[
                hostname_from_url(u) for u in (profile.get("competitorUrls") or []) if u
            ],
            region=profile.get("region") or DEFAULT_REGION,
        )


class SerpRunner:
    def __init__(
        self,
        store: Store,
        serp: SerpApiClient,
        concurrency: int = 4,
        progress_start: int = PROGRESS_START,
        progress_end: int = PROGRESS_END,
    ):
        self.store = store
        self.serp = serp
        self.concurrency = max(1, concurrency)
        self.progress_start = progress_start
        self.progress_end = progress_end

    # ── Engines ──────────────────────────────────────────────────────────────

    async def _check_google(self, prompt: Prompt, t: Targets) -> dict:
        data = await self.serp.search_raw(prompt.text, t.region)

        top10 = extract_organic_top10(data)
        organic = analyze_top10(top10, t.company_domain, t.competitor_domains)

        logger.info("[serp][search][urls] %s %s", prompt.id, top10)
        matched = sum(
            1 for u in top10
            if matches_domain(host_from_result_url(u) or "", t.company_domain)
        )
        logger.info("[serp][search][matched-count] %s %d", prompt.id, matched)

        shopping_hosts = extract_shopping_seller_hosts(data)
        shopping = analyze_hosts(shopping_hosts, t.company_domain, t.competitor_domains)

        immersive_hosts, brands = await self.serp.fetch_immersive_stores_and_brands(data, t.region)
        immersive = analyze_brands(brands, t.company_domain, t.competitor_domains)
        logger.info(
            "[serp][immersive][brands] %s %s (company match: %s)",
            prompt.id, brands, immersive["hasCompany"],
        )

        return {
            "status": "done",
            "top10": top10,
            "hasCompany": organic["hasCompany"],
            "competitorsHit": organic["competitorsHit"],
            "shopping": {
                "sellers": shopping_hosts,
                "hasCompany": shopping["hasCompany"],
                "competitorsHit": shopping["competitorsHit"],
            },
            # sellers are informational; brands drive the immersive match
            "immersive": {
                "sellers": immersive_hosts,
                "brands": brands,
                "hasCompany": immersive["hasCompany"],
                "competitorsHit": immersive["competitorsHit"],
            },
            "updatedAt": now_ms(),
        }

    async def _check_bing(self, prompt: Prompt, t: Targets) -> dict:
        top10 = await self.serp.top10(prompt.text, "bing", t.region)
        organic = analyze_top10(top10, t.company_domain, t.competitor_domains)
        return {
            "status": "done",
            "top10": top10,
            "hasCompany": organic["hasCompany"],
            "competitorsHit": organic["competitorsHit"],
            "updatedAt": now_ms(),
        }

    async def _run_engine(self, profile_id: str, prompt: Prompt, engine: str, t: Targets) -> str:
        check = self._check_google if engine == "google" else self._check_bing
        try:
            result = await check(prompt, t)
        except Exception as e:
            logger.warning("[serp][%s] %s failed: %s", engine, prompt.id, e)
            result = {"status": "error", "error": str(e) or type(e).__name__, "updatedAt": now_ms()}
        await self.store.set(profile_path(profile_id, "results", prompt.id, engine), result)
        return result["status"]

    async def check_prompt(self, profile_id: str, prompt: Prompt, t: Targets) -> dict:
        """Both engines concurrently. Returns {engine: terminal status}."""
        google, bing = await asyncio.gather(
            self._run_engine(profile_id, prompt, "google", t),
            self._run_engine(profile_id, prompt, "bing", t),
        )
        return {"google": google, "bing": bing}

    async def _mark_checking(self, profile_id: str, prompts: list[Prompt]) -> None:
        fields = {}
        for p in prompts:
            fields[f"{p.id}/google"] = {"status": "checking"}
            fields[f"{p.id}/bing"] = {"status": "checking"}
        if fields:
            await self.store.update(profile_path(profile_id, "results"), fields)

    # ── Modes ────────────────────────────────────────────────────────────────

    def progress_for(self, done: int, total: int) -> int:
        span = self.progress_end - self.progress_start
        return min(self.progress_end, self.progress_start + round(done / max(1, total) * span))

    async def run_for_profile(self, profile_id: str) -> dict:
        """
        Full-profile batch run. Raises NotFoundError if the profile is missing.

        Returns:
            dict: total (int), errors (count of (prompt, engine) pairs that ended in error)
        """
        profile = await load_profile(self.store, profile_id)
        targets = Targets.from_profile(profile)
        prompts = prompts_from_tree(profile.get("prompts"))

        await set_profile_status(self.store, profile_id, "serp_check", self.progress_start)
        await self._mark_checking(profile_id, prompts)

        semaphore = asyncio.Semaphore(self.concurrency)
        done = 0
        errors = 0
        total = len(prompts)

        async def worker(prompt: Prompt) -> None:
            nonlocal done, errors
            async with semaphore:
                try:
                    statuses = await self.check_prompt(profile_id, prompt, targets)
                    errors += sum(1 for s in statuses.values() if s == "error")
                finally:
                    done += 1
                    await set_profile_status(
                        self.store, profile_id, progress=self.progress_for(done, total)
                    )

        outcomes = await asyncio.gather(*(worker(p) for p in prompts), return_exceptions=True)
        for prompt, outcome in zip(prompts, outcomes):
            if isinstance(outcome, Exception):
                logger.error("[serp] %s/%s worker failed: %s", profile_id, prompt.id, outcome)

        await set_profile_status(self.store, profile_id, "done", 100)
        logger.info("[serp] %s: %d prompts checked, %d engine errors", profile_id, total, errors)
        return {"total": total, "errors": errors}

    async def run_for_prompt(self, profile_id: str, prompt_id: str) -> dict:
        """
        Single-prompt run for an added or generated prompt.
        Raises NotFoundError (profile or prompt) and ValueError (malformed id).
        """
        category, key = split_prompt_id(prompt_id)
        profile = await load_profile(self.store, profile_id)
        entry = ((profile.get("prompts") or {}).get(category) or {}).get(key)
        if not isinstance(entry, dict) or not entry.get("text"):
            raise NotFoundError("Prompt not found")

        prompt = Prompt(id=prompt_id, text=entry["text"], category=category)
        await self._mark_checking(profile_id, [prompt])
        statuses = await self.check_prompt(profile_id, prompt, Targets.from_profile(profile))
        return {"promptId": prompt_id, **statuses}

    async def run_for_prompts(self, profile_id: str, prompt_ids: list[str]) -> None:
        """Background helper: single-prompt runs over a bounded pool, failures logged."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def one(pid: str) -> None:
            async with semaphore:
                try:
                    await self.run_for_prompt(profile_id, pid)
                except (NotFoundError, ValueError) as e:
                    logger.warning("[serp] %s/%s skipped: %s", profile_id, pid, e)

        await asyncio.gather(*(one(pid) for pid in prompt_ids))

