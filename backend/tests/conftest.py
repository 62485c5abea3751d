"""
Shared fixtures and hand-written test doubles.

No network: the text generator and search client are fakes; HTTP clients
are exercised through httpx.MockTransport in their own test modules.
"""

import asyncio

import pytest

from utils.db import Store, profile_path


class FakeLLM:
    """Returns scripted replies in order (the last one repeats); records every call."""

    def __init__(self, *replies):
        self.replies = list(replies) or ["{}"]
        self.calls: list[dict] = []

    async def generate(self, instructions, input, temperature=0.5, max_output_tokens=1200):
        self.calls.append({
            "instructions": instructions,
            "input": input,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        })
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeSerp:
    """Stands in for SerpApiClient: canned organic links per engine, optional failures."""

    def __init__(self, google=None, bing=None, shopping=None, brands=None, fail=()):
        self.google = google or {}
        self.bing = bing or {}
        self.shopping = shopping or {}
        self.brands = brands or {}
        self.fail = set(fail)
        self.calls: list[tuple[str, str]] = []

    async def search_raw(self, query, region=None):
        self.calls.append(("google", query))
        await asyncio.sleep(0)
        if "google" in self.fail:
            raise ValueError("SerpAPI google failed: 500 boom")
        data = {"organic_results": [{"link": u} for u in self.google.get(query, [])]}
        if query in self.shopping:
            data["shopping_results"] = [{"link": u} for u in self.shopping[query]]
        data["_query"] = query
        return data

    async def top10(self, query, engine="google", region=None):
        self.calls.append((engine, query))
        await asyncio.sleep(0)
        if engine in self.fail:
            raise ValueError(f"SerpAPI {engine} failed: 500 boom")
        source = self.bing if engine == "bing" else self.google
        return list(source.get(query, []))[:10]

    async def fetch_immersive_stores_and_brands(self, data, region=None):
        return [], list(self.brands.get(data.get("_query"), []))


@pytest.fixture
def store(tmp_path):
    s = Store(str(tmp_path / "test.db"))
    s.init_db()
    return s


def seed_profile(store: Store, profile_id: str = "p1", prompts=None, results=None, **fields) -> dict:
    """Write a profile synchronously; prompts is {category: [text, ...]}."""
    profile = {
        "companyName": "Acme",
        "websiteUrl": "https://www.acme.com/",
        "competitorUrls": ["https://rival.com/", "https://other.io/"],
        "region": "sg",
        "status": "creating",
        "progress": 0,
        **fields,
    }
    if prompts:
        profile["prompts"] = {
            category: {
                str(i).zfill(2): {"id": str(i).zfill(2), "text": text, "category": category}
                for i, text in enumerate(texts)
            }
            for category, texts in prompts.items()
        }
    if results:
        profile["results"] = results
    store.set_sync(profile_path(profile_id), profile)
    return profile


def engine(has=False, hits=(), status="done", top10=()):
    return {"status": status, "hasCompany": has, "competitorsHit": list(hits), "top10": list(top10)}
