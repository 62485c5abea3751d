"""
Keyword volume — AI search volume per keyword via DataForSEO, with a model-driven
variant expansion for keywords that come back with zero volume.

Flow:
  1. Dedupe keywords (case/space-insensitive), one DataForSEO lookup.
  2. Zero-volume keywords → model distills 1-2 core terms + ≤10 short variants
     (1-3 words, every variant contains all core terms).
  3. Second lookup over all variants; estimate = round(0.85·max + 0.15·median)
     of the positive variant volumes, monthly series from the best variant.

Anything failing in steps 2-3 degrades to volume 0 for the affected keywords.
A failure of step 1 raises VolumeLookupError carrying zero-filled items.
"""

import json
import logging
import math
import re
from typing import Optional

import anthropic
import httpx

from utils.dataforseo import DataForSeoClient
from utils.llm import TextGenerator, safe_parse_json

logger = logging.getLogger(__name__)

MAX_VARIANTS = 10
MAX_VARIANT_WORDS = 3

_SPACES_RE = re.compile(r"\s+")
_TERM_STRIP_RE = re.compile(r"[^a-z0-9\s]+")

EXPANSION_INSTRUCTIONS = "\n".join([
    "You are an SEO keyword distiller for DataForSEO's AI Search Volume metric.",
    "Goal: turn each prompt into compact keyword variants that reflect how people ask AI tools,",
    "while respecting DataForSEO matching (AI questions must contain all words from the keyword).",
    "",
    "For each prompt:",
    "- Pick 1-2 essential, lemmatized core terms (nouns or short noun phrases).",
    "- Generate up to 8 keyword variants, each 1-3 words, lowercase, no punctuation.",
    "- EVERY variant must include ALL core terms (order can vary).",
    "- Prefer head terms + one modifier. Avoid stopwords.",
    "- Examples: 'ecommerce features', 'ecommerce ux', 'shopify plus migration', 'seo benefits'.",
    "",
    "Return ONLY JSON (no code fences).",
    'Format: {"items":[{"original":"<prompt>","core_terms":["term1","term2"],'
    '"variants":["term1 term2","term2 term1",...]}, ...]}',
])


class VolumeLookupError(Exception):
    def __init__(self, message: str, items: list[dict]):
        super().__init__(message)
        self.items = items


# ── String helpers ────────────────────────────────────────────────────────────

def normalize_spaces(s: str) -> str:
    return _SPACES_RE.sub(" ", (s or "").strip())


def dedupe_strings(items: list[str]) -> list[str]:
    """Case- and whitespace-insensitive dedupe; first spelling wins."""
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if not isinstance(item, str):
            continue
        k = normalize_spaces(item.lower())
        if k and k not in seen:
            seen.add(k)
            out.append(normalize_spaces(item))
    return out


def sanitize_term(s: str) -> str:
    return _TERM_STRIP_RE.sub("", (s or "").lower()).strip()


def sanitize_variant(s: str) -> str:
    return normalize_spaces(_TERM_STRIP_RE.sub("", (s or "").lower()))


def includes_all_core_terms(variant: str, core: list[str]) -> bool:
    tokens = set(variant.split())
    return all(t in tokens for t in core)


def estimate_volume(volumes: list[int]) -> int:
    """round(0.85·max + 0.15·median), halves rounded up; median is the lower middle."""
    vols = sorted(volumes)
    top = vols[-1]
    median = vols[(len(vols) - 1) // 2]
    return math.floor(0.85 * top + 0.15 * median + 0.5)


def _zero(keyword: str) -> dict:
    return {"keyword": keyword, "volume": 0, "monthly": []}


# ── Model expansion ───────────────────────────────────────────────────────────

def clean_expansions(items) -> dict[str, list[str]]:
    """original → validated variants (core terms joined as last resort)."""
    expansions: dict[str, list[str]] = {}
    if not isinstance(items, list):
        return expansions
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("original"), str):
            continue
        core = [sanitize_term(t) for t in item.get("core_terms") or [] if isinstance(t, str)]
        core = [t for t in core if t][:2]
        variants = [
            sanitize_variant(v) for v in item.get("variants") or [] if isinstance(v, str)
        ]
        variants = dedupe_strings([
            v for v in variants
            if v and includes_all_core_terms(v, core) and len(v.split()) <= MAX_VARIANT_WORDS
        ])
        if not variants and core:
            variants = [" ".join(core)]
        variants = [v for v in variants if len(v.split()) <= MAX_VARIANT_WORDS][:MAX_VARIANTS]
        expansions[item["original"]] = variants
    return expansions


async def expand_with_llm(llm: TextGenerator, originals: list[str]) -> dict[str, list[str]]:
    raw = await llm.generate(
        instructions=EXPANSION_INSTRUCTIONS,
        input=json.dumps({"prompts": originals}, indent=2),
        temperature=0,
        max_output_tokens=1500,
    )
    parsed = safe_parse_json(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Expansion reply is not a JSON object")
    return clean_expansions(parsed.get("items"))


# ── Entry point ───────────────────────────────────────────────────────────────

async def lookup_volumes(
    dfs: DataForSeoClient,
    llm: Optional[TextGenerator],
    keywords: list[str],
    language_name: str = "English",
    location_code: int = 2840,
) -> list[dict]:
    """
    Returns:
        list of {keyword, volume, monthly}, one per deduped keyword, input order.
    Raises ValueError for an empty keyword list, VolumeLookupError when the first lookup fails.
    """
    wanted = dedupe_strings(keywords)
    if not wanted:
        raise ValueError("`keywords` must be a non-empty array")

    try:
        first = await dfs.get_ai_search_volumes(wanted, language_name, location_code)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("[volume] lookup failed: %s", e)
        raise VolumeLookupError(str(e), [_zero(k) for k in wanted]) from e

    by_kw = {normalize_spaces(i["keyword"]).lower(): i for i in first}
    results: dict[str, dict] = {}
    zeros: list[str] = []
    for kw in wanted:
        rec = by_kw.get(kw.lower())
        if rec and rec["volume"] > 0:
            results[kw] = {"keyword": kw, "volume": rec["volume"], "monthly": rec["monthly"]}
        else:
            zeros.append(kw)

    if zeros and llm is not None:
        results.update(await _estimate_from_variants(dfs, llm, zeros, language_name, location_code))

    return [results.get(kw) or _zero(kw) for kw in wanted]


async def _estimate_from_variants(
    dfs: DataForSeoClient,
    llm: TextGenerator,
    zeros: list[str],
    language_name: str,
    location_code: int,
) -> dict[str, dict]:
    try:
        expansions = await expand_with_llm(llm, zeros)
        all_variants = dedupe_strings([v for z in zeros for v in expansions.get(z, [])])
        if not all_variants:
            return {}
        second = await dfs.get_ai_search_volumes(all_variants, language_name, location_code)
    except (anthropic.APIError, httpx.HTTPError, ValueError) as e:
        logger.warning("[volume] variant expansion failed, keeping zero volume: %s", e)
        return {}

    by_kw = {normalize_spaces(i["keyword"]).lower(): i for i in second}
    estimated: dict[str, dict] = {}
    for original in zeros:
        candidates = [
            by_kw[v] for v in expansions.get(original, [])
            if v in by_kw and by_kw[v]["volume"] > 0
        ]
        if not candidates:
            continue
        best = max(candidates, key=lambda c: c["volume"])
        estimated[original] = {
            "keyword": original,
            "volume": estimate_volume([c["volume"] for c in candidates]),
            "monthly": best["monthly"],
        }
    logger.info("[volume] estimated %d of %d zero-volume keywords", len(estimated), len(zeros))
    return estimated
