import json

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeLLM, FakeSerp, engine, seed_profile
from server import create_app
from utils.config import Settings


class FakeFirecrawl:
    async def scrape(self, url):
        return {"markdown": "# Acme CRM\nSales tooling for startups.", "html": "<h1>Acme</h1>"}


class FailingDfs:
    async def get_ai_search_volumes(self, keywords, language_name="English", location_code=2840):
        raise httpx.ReadTimeout("slow")


PROMPTS_REPLY = json.dumps({
    "brainstorming": ["plan a product launch"],
    "identified_problem": ["crm data is messy"],
    "solution_comparing": ["acme vs rival"],
    "info_seeking": ["what is a crm"],
})


def make_client(store, llm=None, serp=None, dfs=None):
    app = create_app(
        settings=Settings(database_path=store.db_path),
        store=store,
        llm=llm,
        fast_llm=llm,
        serp=serp or FakeSerp(google={"acme vs rival": ["https://acme.com/vs"]}),
        dfs=dfs,
        firecrawl=FakeFirecrawl(),
    )
    return TestClient(app)


@pytest.fixture
def client(store):
    with make_client(store, llm=FakeLLM(PROMPTS_REPLY)) as c:
        yield c


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_create_and_read_profile(client):
    resp = client.post("/api/profiles", json={
        "companyName": " Acme ",
        "websiteUrl": "acme.com",
        "competitorUrls": ["rival.com", "https://rival.com/", ""],
        "region": "US",
    })
    assert resp.status_code == 201
    profile_id = resp.json()["data"]["id"]

    profile = client.get(f"/api/profiles/{profile_id}").json()["data"]
    assert profile["companyName"] == "Acme"
    assert profile["websiteUrl"] == "https://acme.com/"
    assert profile["competitorUrls"] == ["https://rival.com/"]
    assert profile["region"] == "us"
    assert profile["status"] == "creating"


@pytest.mark.parametrize("body", [
    {"companyName": "", "websiteUrl": "acme.com"},
    {"companyName": "Acme", "websiteUrl": "acme.com", "region": "mars"},
])
def test_create_profile_validation(client, body):
    assert client.post("/api/profiles", json=body).status_code == 400


def test_unknown_profile_is_404(client):
    assert client.get("/api/profiles/ghost").status_code == 404
    assert client.post("/api/profiles/ghost/serp").status_code == 404


def test_bootstrap_runs_full_pipeline(client, store):
    seed_profile(store)
    resp = client.post("/api/profiles/p1/bootstrap")
    assert resp.status_code == 202

    profile = store.get_sync("profiles/p1")
    assert profile["status"] == "done"
    assert profile["progress"] == 100
    assert profile["scrape"]["markdownPreview"].startswith("# Acme CRM")
    assert profile["scrape"]["htmlPreview"] == "<h1>Acme</h1>"
    assert profile["results"]["solution_comparing:00"]["google"]["hasCompany"] is True
    assert len(profile["results"]) == 4


def test_bootstrap_without_generator_marks_error(store):
    seed_profile(store)
    with make_client(store, llm=None) as c:
        assert c.post("/api/profiles/p1/bootstrap").status_code == 202
    profile = store.get_sync("profiles/p1")
    assert profile["status"] == "error"
    assert "ANTHROPIC_API_KEY" in profile["lastError"]


def test_generate_prompts_then_serp(client, store):
    seed_profile(store)
    resp = client.post("/api/profiles/p1/generate-prompts")
    assert resp.status_code == 200
    assert resp.json()["data"]["counts"]["info_seeking"] == 1
    assert store.get_sync("profiles/p1/status") == "done"


def test_generate_prompts_failure_is_502(store):
    seed_profile(store)
    with make_client(store, llm=FakeLLM("no json")) as c:
        resp = c.post("/api/profiles/p1/generate-prompts")
    assert resp.status_code == 502
    assert store.get_sync("profiles/p1/status") == "error"


def test_generate_prompts_needs_generator(store):
    seed_profile(store)
    with make_client(store, llm=None) as c:
        assert c.post("/api/profiles/p1/generate-prompts").status_code == 500


def test_add_prompt_checks_it(client, store):
    seed_profile(store)
    resp = client.post("/api/profiles/p1/prompts/add", json={"category": "solution_comparing", "text": "acme vs rival"})
    assert resp.json()["data"] == {"promptId": "solution_comparing:00"}
    result = store.get_sync("profiles/p1/results/solution_comparing:00")
    assert result["google"]["status"] == "done"
    assert result["bing"]["status"] == "done"


@pytest.mark.parametrize("body", [
    {"category": "", "text": "x"},
    {"category": "nope", "text": "x"},
])
def test_add_prompt_validation(client, store, body):
    seed_profile(store)
    assert client.post("/api/profiles/p1/prompts/add", json=body).status_code == 400


def test_generate_more(store):
    seed_profile(store)
    llm = FakeLLM(json.dumps({"prompts": ["crm basics", "crm glossary"]}))
    with make_client(store, llm=llm) as c:
        resp = c.post("/api/profiles/p1/prompts/generate-more", json={"category": "info_seeking", "count": 2})
        assert resp.json()["data"]["createdPromptIds"] == ["info_seeking:00", "info_seeking:01"]
        assert c.post(
            "/api/profiles/p1/prompts/generate-more", json={"category": "info_seeking", "count": 0}
        ).status_code == 400


def test_prompt_report(store):
    seed_profile(store, prompts={"solution_comparing": ["acme vs rival"]},
                 results={"solution_comparing:00": {"google": engine(top10=["https://rival.com/x"]), "bing": engine()}})
    llm = FakeLLM("## Summary\nRival leads.")
    with make_client(store, llm=llm) as c:
        assert c.post("/api/profiles/p1/report", json={"promptId": "solution_comparing:00"}).status_code == 200
        assert c.post("/api/profiles/p1/report", json={"promptId": "info_seeking:05"}).status_code == 404
        assert c.post("/api/profiles/p1/report", json={"promptId": "garbage"}).status_code == 400

    stored = store.get_sync("profiles/p1/reports/solution_comparing:00")
    assert stored["markdown"] == "## Summary\nRival leads."
    assert "1. https://rival.com/x" in llm.calls[0]["input"]


def test_overall_report_not_ready_then_ready(client, store):
    seed_profile(store, prompts={"info_seeking": ["what is a crm"]},
                 results={"info_seeking:00": {"google": engine(), "bing": {"status": "checking"}}})

    resp = client.post("/api/profiles/p1/report/overall")
    assert resp.status_code == 409
    assert resp.json()["detail"]["done"] == 0
    assert client.get("/api/profiles/p1/report/overall").status_code == 404

    store.set_sync("profiles/p1/results/info_seeking:00/bing", engine())
    resp = client.post("/api/profiles/p1/report/overall")
    assert resp.status_code == 200
    report = client.get("/api/profiles/p1/report/overall").json()["data"]
    assert report["generatedAt"] == resp.json()["data"]["generatedAt"]
    assert report["_meta"]["totalPrompts"] == 1


def test_volume_bad_request(client):
    assert client.post("/api/volume", json={"keywords": []}).status_code == 400


def test_volume_upstream_failure(store):
    with make_client(store, dfs=FailingDfs()) as c:
        resp = c.post("/api/volume", json={"keywords": ["crm"]})
    assert resp.status_code == 502
    assert resp.json()["items"] == [{"keyword": "crm", "volume": 0, "monthly": []}]


def test_stream_sends_current_value(client, store):
    seed_profile(store)
    resp = client.get("/api/profiles/p1/stream", params={"path": "status", "limit": 1})
    assert resp.headers["content-type"].startswith("text/event-stream")
    event = json.loads(resp.text.strip().removeprefix("data: "))
    assert event == {"path": "profiles/p1/status", "value": "creating"}
