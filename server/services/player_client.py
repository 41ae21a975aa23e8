from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx


class PlayerClient:
    """HTTP client for the aggregation API used by players.

    Each ``play()`` call takes a new token from a monotonically increasing
    counter. When the response arrives after a later ``play()`` has been
    issued, it is dropped and ``None`` is returned, so a slow upstream can never
    replace the track the listener picked last.
    """

    def __init__(self, *, base_url: str = "", client: Optional[httpx.AsyncClient] = None, timeout: float = 15) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._play_token = 0

    @property
    def current_token(self) -> int:
        return self._play_token

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        resp.raise_for_status()
        return resp.json()

    async def search(self, source: str, query: str, *, page: int = 1, type: str = "music") -> List[Dict[str, Any]]:
        resp = await self._client.get(
            "/api/search",
            params={"query": query, "source": source, "page": page, "type": type},
        )
        return self._json(resp)

    async def play(self, source: str, item: Dict[str, Any]) -> Optional[str]:
        self._play_token += 1
        token = self._play_token
        try:
            resp = await self._client.post("/api/play", json={"source": source, "musicItem": item})
            payload = self._json(resp)
        except httpx.HTTPError:
            if token != self._play_token:
                return None
            raise
        if token != self._play_token:
            return None
        return payload.get("url")

    async def lyric(self, source: str, item: Dict[str, Any]) -> Optional[str]:
        resp = await self._client.post("/api/lyric", json={"source": source, "musicItem": item})
        payload = self._json(resp)
        return payload.get("lrc")
