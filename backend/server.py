"""
AI Share-of-Voice Audit — API Backend
FastAPI + background jobs + SSE live subscriptions → SQLite path store
Run from /backend:  uvicorn server:app --reload
"""

import json
import logging
import uuid
from typing import Optional

import anthropic
import httpx
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from utils.config import Settings
from utils.dataforseo import DataForSeoClient
from utils.db import NotFoundError, Store, load_profile, now_ms, profile_path, set_profile_status
from utils.domains import normalize_url
from utils.firecrawl import FirecrawlClient
from utils.llm import TextGenerator, build_text_generator
from utils.serpapi import DEFAULT_REGION, REGIONS, SerpApiClient
from workflows.keyword_volume import VolumeLookupError, lookup_volumes
from workflows.overall_report import ReportNotReadyError, generate_overall_report
from workflows.pipeline import run_bootstrap
from workflows.prompt_generation import (
    add_prompt, generate_more_prompts_for_category, generate_prompts_for_profile,
)
from workflows.prompt_report import generate_prompt_report
from workflows.serp_runner import SerpRunner

logger = logging.getLogger(__name__)

# Collaborator failures that end a request with 502
UPSTREAM_ERRORS = (anthropic.APIError, httpx.HTTPError)


# ── Request schemas ───────────────────────────────────────
class ProfileCreate(BaseModel):
    companyName: str = ""
    websiteUrl: str = ""
    competitorUrls: list[str] = Field(default_factory=list)
    remarks: Optional[str] = None
    region: Optional[str] = None
    topics: list[str] = Field(default_factory=list)


class AddPromptRequest(BaseModel):
    category: str = ""
    text: str = ""


class GenerateMoreRequest(BaseModel):
    category: str = ""
    count: int = 0
    remarks: Optional[str] = None


class PromptReportRequest(BaseModel):
    promptId: str = ""


class VolumeRequest(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    language_name: str = "English"
    location_code: int = 2840


def ok(data) -> dict:
    return {"success": True, "data": data}


def sse(payload) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    llm: Optional[TextGenerator] = None,
    fast_llm: Optional[TextGenerator] = None,
    serp: Optional[SerpApiClient] = None,
    dfs: Optional[DataForSeoClient] = None,
    firecrawl: Optional[FirecrawlClient] = None,
) -> FastAPI:
    """Composition root: every client is built once here and passed down."""
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    store = store or Store(settings.database_path)
    llm = llm or build_text_generator(settings.anthropic_api_key, settings.llm_model)
    fast_llm = fast_llm or build_text_generator(settings.anthropic_api_key, settings.llm_fast_model) or llm
    serp = serp or SerpApiClient(
        settings.serp_api_key,
        timeout=settings.http_timeout_seconds,
        max_attempts=settings.serp_max_attempts,
    )
    dfs = dfs or DataForSeoClient(settings.dataforseo_login, settings.dataforseo_password)
    firecrawl = firecrawl or FirecrawlClient(settings.firecrawl_api_key, timeout=settings.http_timeout_seconds)
    runner = SerpRunner(store, serp, concurrency=settings.serp_concurrency)

    # ── App setup ─────────────────────────────────────────────
    app = FastAPI(title="AI Share-of-Voice Audit API", version="1.0.0")
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_init_db():
        store.init_db()

    @app.exception_handler(NotFoundError)
    async def not_found(_request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    def require(generator: Optional[TextGenerator]) -> TextGenerator:
        if generator is None:
            raise HTTPException(status_code=500, detail="ANTHROPIC_API_KEY not configured")
        return generator

    async def serp_job(profile_id: str) -> None:
        try:
            await runner.run_for_profile(profile_id)
        except NotFoundError:
            logger.warning("[serp] %s: profile vanished before the run started", profile_id)

    # ── Routes ────────────────────────────────────────────────
    @app.get("/health")
    def health():
        return {"status": "ok", "service": "AI Share-of-Voice Audit API"}

    # ── Profiles ──────────────────────────────────────────────

    @app.post("/api/profiles", status_code=201)
    async def create_profile(body: ProfileCreate):
        if not body.companyName.strip() or not body.websiteUrl.strip():
            raise HTTPException(status_code=400, detail="Missing companyName or websiteUrl")
        region = (body.region or DEFAULT_REGION).lower()
        if region not in REGIONS:
            raise HTTPException(status_code=400, detail=f"Unknown region: {body.region}")

        competitors = list(dict.fromkeys(
            normalize_url(u) for u in body.competitorUrls if u and u.strip()
        ))
        profile_id = str(uuid.uuid4())[:8]
        profile = {
            "companyName": body.companyName.strip(),
            "websiteUrl": normalize_url(body.websiteUrl),
            "competitorUrls": competitors,
            "region": region,
            "status": "creating",
            "progress": 0,
            "createdAt": now_ms(),
            "updatedAt": now_ms(),
        }
        if body.remarks:
            profile["remarks"] = body.remarks.strip()
        if body.topics:
            profile["topics"] = [t.strip() for t in body.topics if t.strip()]

        await store.set(profile_path(profile_id), profile)
        return ok({"id": profile_id})

    @app.get("/api/profiles/{profile_id}")
    async def get_profile(profile_id: str):
        return ok(await load_profile(store, profile_id))

    @app.post("/api/profiles/{profile_id}/bootstrap", status_code=202)
    async def bootstrap(profile_id: str, background: BackgroundTasks):
        await load_profile(store, profile_id)
        await set_profile_status(store, profile_id, "queued", 0)
        background.add_task(run_bootstrap, store, firecrawl, fast_llm, runner, profile_id)
        return ok({"message": "Scrape + prompts + SERP queued."})

    # ── Prompts ───────────────────────────────────────────────

    @app.post("/api/profiles/{profile_id}/generate-prompts")
    async def generate_prompts(profile_id: str, background: BackgroundTasks):
        generator = require(fast_llm)
        await load_profile(store, profile_id)
        try:
            data = await generate_prompts_for_profile(store, generator, profile_id)
        except (ValueError, *UPSTREAM_ERRORS) as e:
            await set_profile_status(store, profile_id, "error", lastError=str(e))
            raise HTTPException(status_code=502, detail=f"Prompt generation failed: {e}")
        background.add_task(serp_job, profile_id)
        return ok(data)

    @app.post("/api/profiles/{profile_id}/prompts/add")
    async def add_prompt_route(profile_id: str, body: AddPromptRequest, background: BackgroundTasks):
        if not body.category or not body.text.strip():
            raise HTTPException(status_code=400, detail="Missing category or text")
        try:
            prompt_id = await add_prompt(store, profile_id, body.category, body.text)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        background.add_task(runner.run_for_prompts, profile_id, [prompt_id])
        return ok({"promptId": prompt_id})

    @app.post("/api/profiles/{profile_id}/prompts/generate-more")
    async def generate_more(profile_id: str, body: GenerateMoreRequest, background: BackgroundTasks):
        if not body.category or body.count < 1:
            raise HTTPException(status_code=400, detail="Missing category or count")
        generator = require(fast_llm)
        try:
            created = await generate_more_prompts_for_category(
                store, generator, profile_id, body.category, body.count, body.remarks
            )
        except UPSTREAM_ERRORS as e:
            raise HTTPException(status_code=502, detail=f"Prompt generation failed: {e}")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        background.add_task(runner.run_for_prompts, profile_id, created)
        return ok({"createdPromptIds": created})

    @app.post("/api/profiles/{profile_id}/serp", status_code=202)
    async def run_serp(profile_id: str, background: BackgroundTasks):
        await load_profile(store, profile_id)
        background.add_task(serp_job, profile_id)
        return ok({"message": "SERP checks queued."})

    # ── Reports ───────────────────────────────────────────────

    @app.post("/api/profiles/{profile_id}/report")
    async def prompt_report(profile_id: str, body: PromptReportRequest):
        if not body.promptId:
            raise HTTPException(status_code=400, detail="Missing promptId")
        generator = require(llm)
        try:
            await generate_prompt_report(store, generator, profile_id, body.promptId)
        except UPSTREAM_ERRORS as e:
            raise HTTPException(status_code=502, detail=f"Report generation failed: {e}")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return ok({"promptId": body.promptId})

    @app.post("/api/profiles/{profile_id}/report/overall")
    async def overall_report(profile_id: str):
        try:
            report = await generate_overall_report(store, llm, profile_id)
        except ReportNotReadyError as e:
            raise HTTPException(status_code=409, detail={"message": str(e), **e.completion})
        return ok({"report": "overall", "generatedAt": report["generatedAt"]})

    @app.get("/api/profiles/{profile_id}/report/overall")
    async def get_overall_report(profile_id: str):
        await load_profile(store, profile_id)
        report = await store.get(profile_path(profile_id, "reports", "overall"))
        if report is None:
            raise HTTPException(status_code=404, detail="Report not generated yet")
        return ok(report)

    # ── Keyword volume ────────────────────────────────────────

    @app.post("/api/volume")
    async def volume(body: VolumeRequest):
        try:
            items = await lookup_volumes(
                dfs, fast_llm, body.keywords, body.language_name, body.location_code
            )
        except VolumeLookupError as e:
            return JSONResponse(status_code=502, content={"error": str(e), "items": e.items})
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"items": items}

    # ── Live subscription ─────────────────────────────────────

    @app.get("/api/profiles/{profile_id}/stream")
    async def stream(profile_id: str, request: Request, path: str = "", limit: Optional[int] = None):
        """SSE: current value at profiles/{id}/{path}, then a fresh value after each related write."""
        await load_profile(store, profile_id)
        target = profile_path(profile_id, *[p for p in path.split("/") if p])

        async def event_stream():
            sent = 0
            async for value in store.watch(target):
                yield sse({"path": target, "value": value})
                sent += 1
                if (limit is not None and sent >= limit) or await request.is_disconnected():
                    break

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",   # prevents nginx from buffering SSE
                "Connection": "keep-alive",
            },
        )

    return app


app = create_app()
