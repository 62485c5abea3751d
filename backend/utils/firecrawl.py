"""
Firecrawl client — single-page scrape of the profile website (markdown + html).

Required env var:
    FIRECRAWL_API_KEY
"""

from typing import Optional

import httpx

FIRECRAWL_BASE = "https://api.firecrawl.dev/v1"


class FirecrawlClient:
    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def scrape(self, url: str) -> dict:
        """
        Scrape one page.

        Returns:
            dict: markdown, html (html may be empty)
        Raises ValueError when the key is missing or Firecrawl reports failure.
        """
        if not self.api_key:
            raise ValueError("FIRECRAWL_API_KEY is not set")

        async with httpx.AsyncClient(timeout=self.timeout + 10, transport=self.transport) as client:
            resp = await client.post(
                f"{FIRECRAWL_BASE}/scrape",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "url": url,
                    "formats": ["markdown", "html"],
                    "timeout": int(self.timeout * 1000),
                },
            )
            resp.raise_for_status()
            body = resp.json()

        if not body.get("success"):
            raise ValueError(body.get("error") or "Firecrawl scrape failed")

        data = body.get("data") or {}
        return {
            "markdown": data.get("markdown") or "",
            "html": data.get("html") or "",
        }
