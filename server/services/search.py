from __future__ import annotations

import logging
from typing import List, Optional

from providers.registry import SEARCH, PluginRegistry

from .models import Track, normalize_track_list


log = logging.getLogger("tunebridge")


class SearchDispatcher:
    def __init__(self, *, registry: PluginRegistry) -> None:
        self._registry = registry

    async def search(self, provider_id: Optional[str], query: str, page: int = 1, type: str = "music") -> List[Track]:
        """Run one provider's search and return its hits in provider order.

        Raises CapabilityError when the provider is unknown or cannot search,
        and UpstreamError when the provider itself fails.
        """
        provider = self._registry.require(provider_id, SEARCH)
        if page < 1:
            raise ValueError("page must be >= 1")
        raw = await provider.invoke(SEARCH, query, int(page), type or "music")
        return normalize_track_list(raw)

    def ensure(self, provider_id: Optional[str]) -> None:
        self._registry.require(provider_id, SEARCH)

    async def first_hit(self, provider_id: str, query: str, type: str = "music") -> Optional[Track]:
        if not query:
            return None
        hits = await self.search(provider_id, query, 1, type)
        return hits[0] if hits else None
