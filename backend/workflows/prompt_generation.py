"""
Prompt generation — short ICP-style search prompts per category.

  generate_prompts_for_profile()        10 per category from the scraped site, keys 00..09 (overwrite)
  generate_more_prompts_for_category()  up to 10 new, distinct prompts appended under the next keys
  add_prompt()                          one manual prompt appended under the next key

Key assignment always goes through Store.append_child, so concurrent appends
to the same category never reuse a key.
"""

import logging
from typing import Optional

from utils.db import Store, load_profile, now_ms, profile_path, set_profile_status
from utils.llm import TextGenerator, safe_parse_json
from utils.models import CATEGORIES, child_key_order

logger = logging.getLogger(__name__)

PROMPTS_PER_CATEGORY = 10
MAX_MORE = 10
SITE_CONTEXT_CHARS = 120_000

CATEGORY_DEFINITION = {
    "brainstorming": "vague task/guidance exploration before a concrete problem is stated",
    "identified_problem": "the ICP has a clear pain stated and is seeking a solution",
    "solution_comparing": "comparing alternatives, head-to-head 'vs', pros/cons",
    "info_seeking": "neutral research about the product category and how it works",
}

_STYLE_RULES = [
    "You generate short, direct, human search-like prompts for chatbots.",
    "Audience: this company's Ideal Customer Profile (ICP).",
    "Output format rule: return ONLY raw JSON, no code fences, no explanations.",
    "Prompt style: simple, natural, and short (ideally 4-9 words, max 12).",
    "No fluff. No salutations. No hashtags. No emojis.",
]

PROFILE_INSTRUCTIONS = "\n".join(_STYLE_RULES + [
    "It must be a query that the ICP will search either for information, to solve a problem, or to compare solutions.",
    "Put yourself in the ICP's shoes and think like the ICP.",
    "Avoid brand mentions unless necessary.",
    "Focus on problems, tasks, and comparisons that align with the site's offerings.",
])

MORE_INSTRUCTIONS = "\n".join(_STYLE_RULES + [
    "Prefer verbs upfront.",
    "Avoid brand mentions unless necessary.",
])


def clean_prompts(items, limit: int = PROMPTS_PER_CATEGORY) -> list[str]:
    """Trim, drop empties and duplicates (first wins), cap at limit."""
    if not isinstance(items, list):
        return []
    cleaned = [s.strip() for s in items if isinstance(s, str) and s.strip()]
    return list(dict.fromkeys(cleaned))[:limit]


def _prompt_record(key: str, text: str, category: str) -> dict:
    return {"id": key, "text": text, "category": category, "createdAt": now_ms()}


def _existing_texts(profile: dict, category: str) -> list[str]:
    items = (profile.get("prompts") or {}).get(category) or {}
    return [
        items[k]["text"]
        for k in sorted(items, key=child_key_order)
        if isinstance(items[k], dict) and items[k].get("text")
    ]


def build_profile_input(profile: dict) -> str:
    scrape = profile.get("scrape") or {}
    context = (scrape.get("markdownPreview") or "")[:SITE_CONTEXT_CHARS]
    shape = "{\n" + ",\n".join(f'  "{c}": ["string", "... 10 items total"]' for c in CATEGORIES) + "\n}"
    lines = [
        f"Company: {profile.get('companyName', '')} ({profile.get('websiteUrl', '')})",
        f"Remarks: {profile['remarks']}" if profile.get("remarks") else "",
        f"Topics: {', '.join(profile['topics'])}" if profile.get("topics") else "",
        "Relevant site content (truncated):",
        context,
        "",
        "Generate 10 prompts in EACH category below. Keep each prompt short, simple, and natural. "
        "Identify the ICP, put yourself in their shoes and write the prompts the ICP would write, in their tone:",
        "- brainstorming = the ICP is asking about how to do something or is seeking guidance on something",
        "- identified_problem = the ICP clearly stated the problem and is seeking a solution",
        "- solution_comparing = head-to-head alternatives, 'vs', pros/cons, best..; the ICP is comparing "
        "different solutions in the profile's product category",
        "- info_seeking = the ICP is seeking information related to the industry or the broader space",
        "",
        "Return ONLY raw JSON (no markdown fences, no prose) in this exact shape:",
        shape,
    ]
    return "\n".join(lines)


async def generate_prompts_for_profile(store: Store, llm: TextGenerator, profile_id: str) -> dict:
    """
    Replace every category's prompt set with freshly generated prompts.

    Returns:
        dict: counts per category
    Raises NotFoundError (profile), ValueError (unparseable or empty model reply).
    """
    profile = await load_profile(store, profile_id)
    await set_profile_status(store, profile_id, "generating_prompts", 55)

    raw = await llm.generate(
        instructions=PROFILE_INSTRUCTIONS,
        input=build_profile_input(profile),
        temperature=0.5,
        max_output_tokens=1200,
    )
    parsed = safe_parse_json(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Prompt generation reply is not a JSON object")

    generated = {c: clean_prompts(parsed.get(c)) for c in CATEGORIES}
    if not any(generated.values()):
        raise ValueError("Model returned no prompts")

    await store.update(
        profile_path(profile_id, "prompts"),
        {
            category: {
                str(i).zfill(2): _prompt_record(str(i).zfill(2), text, category)
                for i, text in enumerate(texts)
            }
            for category, texts in generated.items()
        },
    )
    await set_profile_status(store, profile_id, progress=70)

    counts = {c: len(t) for c, t in generated.items()}
    logger.info("[prompts] %s generated %s", profile_id, counts)
    return {"counts": counts}


async def generate_more_prompts_for_category(
    store: Store,
    llm: TextGenerator,
    profile_id: str,
    category: str,
    count: int,
    remarks: Optional[str] = None,
) -> list[str]:
    """
    Append up to min(count, 10) new prompts distinct from the current ones.
    Returns the created prompt ids ("category:key").
    """
    if category not in CATEGORIES:
        raise ValueError(f"Unknown category: {category}")
    if count < 1:
        raise ValueError("count must be >= 1")
    count = min(count, MAX_MORE)

    profile = await load_profile(store, profile_id)
    existing = _existing_texts(profile, category)

    lines = [
        f"Company: {profile.get('companyName', '')} ({profile.get('websiteUrl', '')})",
        f"Additional remarks: {remarks}" if remarks else "",
        f"Category: {category} - {CATEGORY_DEFINITION[category]}",
        "",
        "Current prompts in this category:",
        *[f"- {p}" for p in existing],
        "",
        f"Generate {count} NEW prompts for this category that are distinct from the above.",
        "Return ONLY raw JSON (no markdown fences, no prose) in this shape:",
        f'{{"prompts": ["string", "... {count} items total"]}}',
    ]
    raw = await llm.generate(
        instructions=MORE_INSTRUCTIONS,
        input="\n".join(lines),
        temperature=0.5,
        max_output_tokens=600,
    )
    parsed = safe_parse_json(raw)
    items = parsed.get("prompts") if isinstance(parsed, dict) else None

    seen = {t.lower() for t in existing}
    fresh = [t for t in clean_prompts(items, limit=MAX_MORE) if t.lower() not in seen][:count]

    created = []
    for text in fresh:
        key = await store.append_child(
            profile_path(profile_id, "prompts", category),
            lambda k, text=text: _prompt_record(k, text, category),
        )
        created.append(f"{category}:{key}")

    logger.info("[prompts] %s +%d %s prompts", profile_id, len(created), category)
    return created


async def add_prompt(store: Store, profile_id: str, category: str, text: str) -> str:
    """Append one manual prompt; returns its id. Raises ValueError on bad input."""
    text = (text or "").strip()
    if category not in CATEGORIES:
        raise ValueError(f"Unknown category: {category}")
    if not text:
        raise ValueError("Missing category or text")

    await load_profile(store, profile_id)
    key = await store.append_child(
        profile_path(profile_id, "prompts", category),
        lambda k: _prompt_record(k, text, category),
    )
    return f"{category}:{key}"
