"""
DataForSEO client — AI keyword search volume for prompt keywords.

Required env vars:
    DATAFORSEO_LOGIN      your DataForSEO account email
    DATAFORSEO_PASSWORD   your DataForSEO account password

Endpoint:
  ai_optimization/ai_keyword_data/keywords_search_volume/live
    — how often a keyword is asked of AI tools, plus the monthly series.

Location codes: 2840 = United States (default), 2702 = Singapore.
"""

import base64
from typing import Optional

import httpx

DFS_BASE = "https://api.dataforseo.com/v3"


class DataForSeoClient:
    def __init__(
        self,
        login: str,
        password: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.login = login
        self.password = password
        self.timeout = timeout
        self.transport = transport

    # ── Auth ─────────────────────────────────────────────────────────────────

    def _auth_header(self) -> str:
        if not self.login or not self.password:
            raise ValueError("Missing DATAFORSEO_LOGIN or DATAFORSEO_PASSWORD environment variables")
        token = base64.b64encode(f"{self.login}:{self.password}".encode()).decode()
        return f"Basic {token}"

    # ── Core HTTP call ───────────────────────────────────────────────────────

    async def _dfs_post(self, endpoint: str, payload: list[dict]) -> dict:
        """
        Make a single DataForSEO API call.
        Raises ValueError on API-level errors, httpx.HTTPError on transport errors.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(
                f"{DFS_BASE}/{endpoint}",
                headers={
                    "Authorization": self._auth_header(),
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            resp.raise_for_status()
            data = resp.json()

        # DataForSEO status codes: 20000 = success
        if data.get("status_code", 20000) != 20000:
            raise ValueError(
                f"DataForSEO error {data['status_code']}: {data.get('status_message', 'Unknown')}"
            )

        try:
            task = data["tasks"][0]
            if task.get("status_code", 20000) != 20000:
                raise ValueError(
                    f"DataForSEO task error {task['status_code']}: {task.get('status_message', '')}"
                )
        except (KeyError, IndexError):
            raise ValueError("Unexpected DataForSEO response structure")

        return data

    # ── AI keyword data ──────────────────────────────────────────────────────

    async def get_ai_search_volumes(
        self,
        keywords: list[str],
        language_name: str = "English",
        location_code: int = 2840,
    ) -> list[dict]:
        """
        AI search volume for each keyword (max 1000 per call).

        Returns:
            List of dicts: keyword, volume, monthly ([{year, month, ai_search_volume}])
        """
        if not keywords:
            return []

        data = await self._dfs_post(
            "ai_optimization/ai_keyword_data/keywords_search_volume/live",
            [{
                "keywords": keywords[:1000],
                "language_name": language_name,
                "location_code": location_code,
            }],
        )

        try:
            items = data["tasks"][0]["result"][0]["items"] or []
        except (KeyError, IndexError, TypeError):
            return []

        results = []
        for item in items:
            if not item:
                continue
            results.append({
                "keyword": item.get("keyword", ""),
                "volume":  item.get("ai_search_volume") or 0,
                "monthly": item.get("ai_monthly_searches") or [],
            })
        return results
