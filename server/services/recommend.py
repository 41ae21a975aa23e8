from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from providers.registry import SEARCH, PluginRegistry

from .models import Track, dedupe_tracks
from .search import SearchDispatcher


log = logging.getLogger("tunebridge")

PLAYLIST_TRACK_LIMIT = 100


@dataclass(frozen=True)
class Category:
    id: str
    title: str
    badge: str
    queries: Sequence[str]


CATEGORIES: Tuple[Category, ...] = (
    Category("rnb", "R&B Picks", "R&B", ("R&B 流行", "R&B 热歌", "R&B 经典", "R&B 新歌")),
    Category("jp", "Japanese Hits", "JP", ("日语 流行", "日语 动漫", "日语 治愈", "J-Pop")),
    Category("en", "English Hits", "EN", ("欧美 流行", "Billboard 热歌", "欧美 经典", "欧美 节奏")),
    Category("cn", "Chinese Pop", "CN", ("华语 流行", "华语 金曲", "华语 新歌", "C-Pop")),
    Category("kr", "K-Pop Rhythm", "KR", ("K-Pop 热歌", "韩语 流行", "韩语 OST", "K-Pop 舞曲")),
)


def playlist_cover(tracks: Sequence[Track]) -> str:
    if not tracks:
        return ""
    first = tracks[0].payload
    return str(first.get("artwork") or first.get("cover") or "")


class RecommendationService:
    """Curated category playlists built from concurrent provider searches."""

    def __init__(
        self,
        *,
        registry: PluginRegistry,
        dispatcher: SearchDispatcher,
        source: str = "qq",
        categories: Sequence[Category] = CATEGORIES,
        cache_ttl: int = 300,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._source = source
        self._categories = tuple(categories)
        self._cache_ttl = cache_ttl
        self._rng = rng or random.Random()
        self._cached: Optional[Tuple[float, dict]] = None

    @property
    def source(self) -> str:
        return self._source

    async def playlists(self, *, refresh: bool = False) -> dict:
        self._registry.require(self._source, SEARCH)
        if not refresh and self._cached is not None:
            expires_at, payload = self._cached
            if expires_at > time.time():
                return payload

        results = await asyncio.gather(
            *(self._build(category) for category in self._categories),
            return_exceptions=True,
        )
        playlists: List[dict] = []
        for category, result in zip(self._categories, results):
            if isinstance(result, BaseException):
                log.warning("recommend playlist error %s: %s", category.id, result)
                continue
            if result:
                playlists.append(result)

        payload = {"source": self._source, "playlists": playlists}
        if self._cache_ttl > 0 and playlists:
            self._cached = (time.time() + self._cache_ttl, payload)
        return payload

    async def _build(self, category: Category) -> Optional[Dict[str, Any]]:
        query = self._rng.choice(list(category.queries))
        page = self._rng.randint(1, 3)
        hits = await self._dispatcher.search(self._source, query, page, "music")
        tracks = dedupe_tracks(hits)
        if not tracks:
            return None
        self._rng.shuffle(tracks)
        tracks = tracks[:PLAYLIST_TRACK_LIMIT]
        return {
            "id": category.id,
            "title": category.title,
            "badge": category.badge,
            "cover": playlist_cover(tracks),
            "subtitle": f"{len(tracks)} tracks",
            "tracks": [track.to_json() for track in tracks],
        }
