import asyncio
import json

import httpx
import pytest

from utils.dataforseo import DataForSeoClient
from utils.firecrawl import FirecrawlClient
from utils.serpapi import (
    SerpApiClient,
    extract_immersive_tokens,
    extract_organic_top10,
    extract_shopping_seller_hosts,
    extract_stores_and_brand,
    region_params,
)


def transport(handler):
    return httpx.MockTransport(handler)


# ── SerpAPI extraction ────────────────────────────────────

def test_extract_organic_top10_caps_at_ten():
    data = {"organic_results": [{"link": f"https://s{i}.com"} for i in range(14)] + [{"title": "no link"}]}
    assert len(extract_organic_top10(data)) == 10
    assert extract_organic_top10({"organic_results": "bad"}) == []


def test_extract_shopping_skips_google_hosts():
    data = {
        "shopping_results": [{"link": "https://www.rival.com/p"}, {"link": "https://www.google.com/aclk"}],
        "inline_shopping_results": [{"product_link": "https://shop.acme.com/x"}, {"link": "https://rival.com/q"}],
    }
    assert extract_shopping_seller_hosts(data) == ["rival.com", "shop.acme.com"]


def test_immersive_tokens_and_product_parsing():
    data = {"immersive_products": [{"immersive_product_page_token": "t1"}, {"page_token": "t2"}, {}]}
    assert extract_immersive_tokens(data) == ["t1", "t2"]
    hosts, brand = extract_stores_and_brand({
        "product_results": {"brand": " Acme ", "stores": [{"link": "https://store.acme.com/p"}, {"name": "x"}]},
    })
    assert hosts == ["store.acme.com"]
    assert brand == "Acme"


def test_unknown_region_uses_default():
    assert region_params("zz")["location"] == "Singapore"
    assert region_params("US")["google_domain"] == "google.com"


# ── SerpAPI client ────────────────────────────────────────

def test_missing_key_raises():
    with pytest.raises(ValueError, match="SERP_API_KEY"):
        asyncio.run(SerpApiClient("").search_raw("q"))


def test_retries_on_rate_limit_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, text="slow down")
        return httpx.Response(200, json={"organic_results": [{"link": "https://a.com"}]})

    client = SerpApiClient("key", transport=transport(handler), retry_delay=0)
    assert asyncio.run(client.top10("crm", "google", "us")) == ["https://a.com"]
    assert len(calls) == 2
    params = calls[0].url.params
    assert params["q"] == "crm"
    assert params["gl"] == "us"
    assert params["api_key"] == "key"


def test_bing_params():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(200, json={})

    asyncio.run(SerpApiClient("key", transport=transport(handler)).top10("crm", "bing", "uk"))
    assert seen["engine"] == "bing"
    assert seen["cc"] == "UK"


def test_no_results_error_is_empty_serp():
    def handler(request):
        return httpx.Response(200, json={"error": "Google hasn't returned any results for this query."})

    client = SerpApiClient("key", transport=transport(handler))
    assert asyncio.run(client.top10("obscure")) == []


def test_api_error_raises():
    def handler(request):
        return httpx.Response(200, json={"error": "Invalid API key."})

    with pytest.raises(ValueError, match="Invalid API key"):
        asyncio.run(SerpApiClient("key", transport=transport(handler)).search_raw("q"))


def test_http_error_after_final_attempt():
    def handler(request):
        return httpx.Response(503, text="unavailable")

    client = SerpApiClient("key", transport=transport(handler), retry_delay=0)
    with pytest.raises(ValueError, match="503"):
        asyncio.run(client.search_raw("q"))


def test_immersive_follow_up_failure_is_skipped():
    def handler(request):
        token = request.url.params.get("page_token")
        if token == "bad":
            return httpx.Response(400, text="nope")
        return httpx.Response(200, json={
            "product_results": {"brand": "Rival", "stores": [{"link": "https://rival.com/p"}]},
        })

    client = SerpApiClient("key", transport=transport(handler), max_attempts=1)
    data = {"immersive_products": [{"page_token": "bad"}, {"page_token": "good"}]}
    hosts, brands = asyncio.run(client.fetch_immersive_stores_and_brands(data))
    assert hosts == ["rival.com"]
    assert brands == ["Rival"]


# ── DataForSEO ────────────────────────────────────────────

def test_dataforseo_volumes():
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "status_code": 20000,
            "tasks": [{"status_code": 20000, "result": [{"items": [
                {"keyword": "crm", "ai_search_volume": 120, "ai_monthly_searches": [{"year": 2025, "month": 1}]},
                None,
                {"keyword": "rare", "ai_search_volume": None},
            ]}]}],
        })

    client = DataForSeoClient("me@x.com", "pw", transport=transport(handler))
    items = asyncio.run(client.get_ai_search_volumes(["crm", "rare"], location_code=2702))
    assert items == [
        {"keyword": "crm", "volume": 120, "monthly": [{"year": 2025, "month": 1}]},
        {"keyword": "rare", "volume": 0, "monthly": []},
    ]
    assert captured["auth"].startswith("Basic ")
    assert captured["body"][0]["location_code"] == 2702


def test_dataforseo_task_error():
    def handler(request):
        return httpx.Response(200, json={"status_code": 20000, "tasks": [{"status_code": 40501, "status_message": "bad"}]})

    with pytest.raises(ValueError, match="40501"):
        asyncio.run(DataForSeoClient("a", "b", transport=transport(handler)).get_ai_search_volumes(["x"]))


def test_dataforseo_missing_credentials():
    with pytest.raises(ValueError, match="DATAFORSEO_LOGIN"):
        asyncio.run(DataForSeoClient("", "").get_ai_search_volumes(["x"]))


# ── Firecrawl ─────────────────────────────────────────────

def test_firecrawl_scrape():
    def handler(request):
        assert request.headers["Authorization"] == "Bearer fc"
        assert json.loads(request.content)["url"] == "https://acme.com/"
        return httpx.Response(200, json={"success": True, "data": {"markdown": "# Acme"}})

    out = asyncio.run(FirecrawlClient("fc", transport=transport(handler)).scrape("https://acme.com/"))
    assert out == {"markdown": "# Acme", "html": ""}


def test_firecrawl_failure():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "blocked"})

    with pytest.raises(ValueError, match="blocked"):
        asyncio.run(FirecrawlClient("fc", transport=transport(handler)).scrape("https://acme.com/"))
