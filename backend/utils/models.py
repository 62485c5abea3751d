"""
Shared types for prompts and per-engine SERP results.

Persisted payloads are parsed through these pydantic models before any
workflow reads them; missing fields default to "absent" (False / empty).
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PromptCategory = Literal["brainstorming", "identified_problem", "solution_comparing", "info_seeking"]

CATEGORIES: tuple[str, ...] = (
    "brainstorming",
    "identified_problem",
    "solution_comparing",
    "info_seeking",
)

ENGINES: tuple[str, ...] = ("google", "bing")

TERMINAL_STATUSES = {"done", "error"}


class Prompt(BaseModel):
    id: str                 # "category:key"
    text: str
    category: PromptCategory

    @property
    def key(self) -> str:
        return self.id.split(":", 1)[1]


class ChannelPresence(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hasCompany: bool = False
    competitorsHit: list[str] = Field(default_factory=list)
    sellers: list[str] = Field(default_factory=list)
    brands: list[str] = Field(default_factory=list)


class EngineResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[Literal["checking", "done", "error"]] = None
    top10: list[str] = Field(default_factory=list)
    hasCompany: bool = False
    competitorsHit: list[str] = Field(default_factory=list)
    immersive: Optional[ChannelPresence] = None
    shopping: Optional[ChannelPresence] = None
    error: Optional[str] = None
    updatedAt: Optional[int] = None

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class PromptResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    google: EngineResult = Field(default_factory=EngineResult)
    bing: EngineResult = Field(default_factory=EngineResult)


def split_prompt_id(prompt_id: str) -> tuple[str, str]:
    """'solution_comparing:03' → ('solution_comparing', '03'). Raises ValueError on bad ids."""
    category, sep, key = (prompt_id or "").partition(":")
    if not sep or category not in CATEGORIES or not key:
        raise ValueError(f"Invalid promptId: {prompt_id!r}")
    return category, key


def child_key_order(key: str) -> tuple:
    """Integer keys numerically ("9" < "10" < "100"), then any other key."""
    return (not key.isdigit(), int(key) if key.isdigit() else 0, key)


def prompts_from_tree(tree: Optional[dict]) -> list[Prompt]:
    """Flatten profiles/{id}/prompts into category order, keys sorted within a category."""
    tree = tree or {}
    prompts: list[Prompt] = []
    for category in CATEGORIES:
        items = tree.get(category) or {}
        if not isinstance(items, dict):
            continue
        for key in sorted(items, key=child_key_order):
            value = items[key] or {}
            text = value.get("text", "") if isinstance(value, dict) else ""
            prompts.append(Prompt(id=f"{category}:{key}", text=text or "", category=category))
    return prompts


def results_from_tree(tree: Optional[dict]) -> dict[str, PromptResult]:
    """Parse profiles/{id}/results; malformed entries degrade to empty results."""
    parsed: dict[str, PromptResult] = {}
    for prompt_id, value in (tree or {}).items():
        if not isinstance(value, dict):
            continue
        google = value.get("google") if isinstance(value.get("google"), dict) else {}
        bing = value.get("bing") if isinstance(value.get("bing"), dict) else {}
        parsed[prompt_id] = PromptResult(
            google=_engine_or_empty(google),
            bing=_engine_or_empty(bing),
        )
    return parsed


def _engine_or_empty(raw: dict) -> EngineResult:
    try:
        return EngineResult.model_validate(raw)
    except ValueError:
        return EngineResult(status=raw.get("status") if raw.get("status") in ("checking", "done", "error") else None)
