"""
SerpAPI client — organic top 10 for Google + Bing, plus the Google shopping and
immersive-product blocks used for brand presence.

Required env var:
    SERP_API_KEY    (SERPAPI_KEY also accepted)

Calls:
  search_raw()                       — full Google SERP JSON for a query + region
  top10()                            — organic result links, Google or Bing
  fetch_immersive_stores_and_brands()— follows every immersive product listing
                                       (one google_immersive_product call each,
                                       sequential) and collects store hosts + brands
"""

import asyncio
import logging
from typing import Optional

import httpx

from utils.domains import host_from_result_url

logger = logging.getLogger(__name__)

SERP_BASE = "https://serpapi.com/search.json"

REGIONS: dict[str, dict[str, str]] = {
    "sg": {"location": "Singapore", "gl": "sg", "hl": "en", "google_domain": "google.com.sg"},
    "us": {"location": "United States", "gl": "us", "hl": "en", "google_domain": "google.com"},
    "uk": {"location": "United Kingdom", "gl": "uk", "hl": "en", "google_domain": "google.co.uk"},
    "au": {"location": "Australia", "gl": "au", "hl": "en", "google_domain": "google.com.au"},
    "in": {"location": "India", "gl": "in", "hl": "en", "google_domain": "google.co.in"},
}
DEFAULT_REGION = "sg"

MAX_IMMERSIVE_LISTINGS = 10

# Retry only on rate limiting and upstream failures
_RETRY_STATUS = {429, 500, 502, 503, 504}


def region_params(region: Optional[str]) -> dict[str, str]:
    return REGIONS.get((region or "").lower(), REGIONS[DEFAULT_REGION])


# ── Pure extraction helpers ───────────────────────────────────────────────────

def extract_organic_top10(data: dict) -> list[str]:
    organic = data.get("organic_results")
    if not isinstance(organic, list):
        return []
    links = [r.get("link") for r in organic if isinstance(r, dict)]
    return [u for u in links if isinstance(u, str)][:10]


def extract_shopping_seller_hosts(data: dict) -> list[str]:
    """Seller hostnames from the shopping blocks on the main SERP (google.* redirects skipped)."""
    hosts: dict[str, None] = {}
    for block in ("shopping_results", "inline_shopping_results"):
        items = data.get(block)
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            url = item.get("link") or item.get("product_link") or ""
            host = host_from_result_url(url) if isinstance(url, str) else None
            if host and not host.startswith("google.") and ".google." not in host:
                hosts[host] = None
    return list(hosts)


def extract_immersive_tokens(data: dict, limit: int = MAX_IMMERSIVE_LISTINGS) -> list[str]:
    items = data.get("immersive_products")
    if not isinstance(items, list):
        return []
    tokens = []
    for item in items:
        if not isinstance(item, dict):
            continue
        token = item.get("immersive_product_page_token") or item.get("page_token")
        if isinstance(token, str) and token:
            tokens.append(token)
    return tokens[:limit]


def extract_stores_and_brand(product: dict) -> tuple[list[str], Optional[str]]:
    results = product.get("product_results") or {}
    if not isinstance(results, dict):
        return [], None
    hosts = []
    for store in results.get("stores") or []:
        if isinstance(store, dict) and isinstance(store.get("link"), str):
            host = host_from_result_url(store["link"])
            if host:
                hosts.append(host)
    brand = results.get("brand")
    return hosts, brand.strip() if isinstance(brand, str) and brand.strip() else None


# ── Client ────────────────────────────────────────────────────────────────────

class SerpApiClient:
    """One instance per process; pass transport= in tests (httpx.MockTransport)."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        max_attempts: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_delay: float = 1.0,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.transport = transport
        self.retry_delay = retry_delay

    async def _get(self, params: dict, label: str) -> dict:
        """
        Single SerpAPI call with bounded retries.
        Raises ValueError on API-level errors, httpx.HTTPError on transport errors.
        """
        if not self.api_key:
            raise ValueError("Missing SERP_API_KEY (or SERPAPI_KEY)")

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    resp = await client.get(SERP_BASE, params={**params, "api_key": self.api_key})
            except httpx.TransportError:
                if attempt == self.max_attempts:
                    raise
                await asyncio.sleep(self.retry_delay * attempt)
                continue

            if resp.status_code in _RETRY_STATUS and attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay * attempt)
                continue
            if resp.status_code >= 400:
                raise ValueError(f"SerpAPI {label} failed: {resp.status_code} {resp.text[:300]}")
            break

        data = resp.json()
        error = data.get("error") if isinstance(data, dict) else "Unexpected SerpAPI response"
        if error:
            # An empty SERP is reported as an error but is a valid "nothing found"
            if "returned any results" in str(error):
                return {}
            raise ValueError(f"SerpAPI {label} error: {error}")
        return data

    async def search_raw(self, query: str, region: Optional[str] = None) -> dict:
        """Full Google SERP JSON (organic + shopping + immersive blocks)."""
        return await self._get({"q": query, **region_params(region)}, "google")

    async def top10(self, query: str, engine: str = "google", region: Optional[str] = None) -> list[str]:
        r = region_params(region)
        if engine == "bing":
            params = {"engine": "bing", "q": query, "location": r["location"], "cc": r["gl"].upper()}
        else:
            params = {"q": query, **r}
        return extract_organic_top10(await self._get(params, engine))

    async def immersive_product(self, page_token: str, region: Optional[str] = None) -> dict:
        r = region_params(region)
        return await self._get(
            {
                "engine": "google_immersive_product",
                "page_token": page_token,
                "gl": r["gl"],
                "hl": r["hl"],
            },
            "immersive",
        )

    async def fetch_immersive_stores_and_brands(
        self, data: dict, region: Optional[str] = None
    ) -> tuple[list[str], list[str]]:
        """
        Follow each immersive product listing one at a time.
        A failed listing is logged and skipped; the rest still count.
        """
        hosts: dict[str, None] = {}
        brands: dict[str, None] = {}
        for token in extract_immersive_tokens(data):
            try:
                product = await self.immersive_product(token, region)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("[serp][immersive] listing follow-up failed: %s", e)
                continue
            store_hosts, brand = extract_stores_and_brand(product)
            for h in store_hosts:
                hosts[h] = None
            if brand:
                brands[brand] = None
        return list(hosts), list(brands)
