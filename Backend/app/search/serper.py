# app/search/serper.py
"""
Serper (google.serper.dev) web search client.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import aiohttp

from app.core.config import settings
from app.core.exceptions import SearchError
from app.core.logging import log


API_URL = "https://google.serper.dev/search"


@dataclass
class SearchResult:
    title: str
    link: str
    snippet: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SerperClient:
    def __init__(self, api_key: Optional[str] = None, top_n: Optional[int] = None):
        self.api_key = api_key or settings.search.serper_api_key
        self.top_n = top_n or settings.search.top_n

    async def search(self, query: str) -> List[SearchResult]:
        """Return the top organic results for a query."""
        if not self.api_key:
            raise SearchError("SERPER_API_KEY not configured")

        headers = {
            "X-API-KEY": self.api_key,
            "Content-Type": "application/json",
        }

        async with aiohttp.ClientSession() as session:
            async with session.post(
                API_URL,
                json={"q": query},
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=30),
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise SearchError(f"Serper API error {response.status}: {text[:200]}")
                data = await response.json()

        organic = data.get("organic") or []
        results = [
            SearchResult(
                title=item.get("title", ""),
                link=item.get("link", ""),
                snippet=item.get("snippet", ""),
            )
            for item in organic[: self.top_n]
        ]
        log("SEARCH", f"'{query[:40]}' -> {len(results)} results")
        return results
