"""
Runtime settings — read once from the environment at the composition root
(server.create_app) and passed down to every client and workflow.

Env vars:
    DATABASE_PATH         SQLite store path (default: ./profiles.db next to backend/)
    ANTHROPIC_API_KEY     text generation (narrative, prompts, keyword variants)
    LLM_MODEL             model for narrative + per-prompt reports
    LLM_FAST_MODEL        model for prompt generation + keyword variants
    SERP_API_KEY          SerpAPI key (SERPAPI_KEY also accepted)
    DATAFORSEO_LOGIN      DataForSEO account email
    DATAFORSEO_PASSWORD   DataForSEO account password
    FIRECRAWL_API_KEY     Firecrawl key for the website scrape
    SERP_CONCURRENCY      prompts checked at once (default 4)
    HTTP_TIMEOUT_SECONDS  per-call timeout for search + scrape (default 60)
    SERP_MAX_ATTEMPTS     attempts per search call, retries included (default 2)
    LOG_LEVEL             logging level (default INFO)
    CORS_ORIGINS          comma-separated origins (default *)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

BACKEND_DIR = Path(__file__).parent.parent


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    database_path: str = str(BACKEND_DIR.parent / "profiles.db")

    anthropic_api_key: str = ""
    llm_model: str = "claude-opus-4-6"
    llm_fast_model: str = "claude-haiku-4-5-20251001"

    serp_api_key: str = ""
    dataforseo_login: str = ""
    dataforseo_password: str = ""
    firecrawl_api_key: str = ""

    serp_concurrency: int = 4
    http_timeout_seconds: float = 60.0
    serp_max_attempts: int = 2

    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @staticmethod
    def from_env() -> "Settings":
        origins = [
            o.strip()
            for o in (os.environ.get("CORS_ORIGINS") or "*").split(",")
            if o.strip()
        ]
        return Settings(
            database_path=os.environ.get("DATABASE_PATH") or Settings.database_path,
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            llm_model=os.environ.get("LLM_MODEL") or Settings.llm_model,
            llm_fast_model=os.environ.get("LLM_FAST_MODEL") or Settings.llm_fast_model,
            # Accept either SERP_API_KEY or SERPAPI_KEY
            serp_api_key=os.environ.get("SERP_API_KEY") or os.environ.get("SERPAPI_KEY", ""),
            dataforseo_login=os.environ.get("DATAFORSEO_LOGIN", ""),
            dataforseo_password=os.environ.get("DATAFORSEO_PASSWORD", ""),
            firecrawl_api_key=os.environ.get("FIRECRAWL_API_KEY", ""),
            serp_concurrency=max(1, _env_int("SERP_CONCURRENCY", 4)),
            http_timeout_seconds=float(_env_int("HTTP_TIMEOUT_SECONDS", 60)),
            serp_max_attempts=max(1, _env_int("SERP_MAX_ATTEMPTS", 2)),
            log_level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
            cors_origins=origins or ["*"],
        )
