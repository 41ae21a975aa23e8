from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence

import httpx
from bs4 import BeautifulSoup

from providers.errors import CapabilityError, ImportNotFound
from providers.registry import IMPORT_MUSIC_SHEET, SEARCH, PluginRegistry

from .models import PlaylistImportResult, Track, normalize_track_list
from .search import SearchDispatcher


log = logging.getLogger("tunebridge")


@dataclass(frozen=True)
class CrossPlatformRoute:
    """Playlist URLs of one platform re-matched against another provider."""

    name: str
    url_patterns: Sequence[Pattern[str]]
    source_provider: str
    target_provider: str

    def matches(self, url: str) -> bool:
        return all(pattern.search(url) for pattern in self.url_patterns)


NETEASE_TO_QQ = CrossPlatformRoute(
    name="netease-playlist",
    url_patterns=(re.compile(r"music\.163\.com"), re.compile(r"playlist\?id=\d+")),
    source_provider="netease",
    target_provider="qq",
)


def _title_from_html(html: str) -> Optional[str]:
    soup = BeautifulSoup(html or "", "html.parser")
    raw = soup.title.get_text() if soup.title else ""
    if not raw:
        return None
    title = raw.split("-")[0].strip()
    return title or None


class PlaylistImporter:
    def __init__(
        self,
        *,
        registry: PluginRegistry,
        dispatcher: SearchDispatcher,
        http: httpx.AsyncClient,
        routes: Sequence[CrossPlatformRoute] = (NETEASE_TO_QQ,),
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._http = http
        self._routes = tuple(routes)

    def detect_route(self, url: str) -> Optional[CrossPlatformRoute]:
        for route in self._routes:
            if route.matches(url):
                return route
        return None

    async def import_url(self, url: str, source: Optional[str] = None) -> PlaylistImportResult:
        route = self.detect_route(url)
        if route is not None:
            return await self._import_cross_platform(route, url)
        return await self._import_generic(url, source)

    async def _import_cross_platform(self, route: CrossPlatformRoute, url: str) -> PlaylistImportResult:
        origin = self._registry.require(route.source_provider, IMPORT_MUSIC_SHEET)
        self._registry.require(route.target_provider, SEARCH)

        imported = normalize_track_list(await origin.invoke(IMPORT_MUSIC_SHEET, url))
        if not imported:
            return PlaylistImportResult(source=route.target_provider, tracks=[])

        matched: List[Track] = []
        for track in imported:
            query = track.search_query()
            if not query:
                continue
            try:
                hit = await self._dispatcher.first_hit(route.target_provider, query)
            except Exception as exc:
                log.warning("Cross-platform match failed for %r: %s", query, exc)
                continue
            if hit is not None:
                matched.append(hit)
        log.info(
            "Imported %s: matched %d of %d tracks on %s",
            route.name,
            len(matched),
            len(imported),
            route.target_provider,
        )

        title = await self._scrape_title(url)
        return PlaylistImportResult(source=route.target_provider, tracks=matched, title=title)

    async def _scrape_title(self, url: str) -> Optional[str]:
        try:
            resp = await self._http.get(url, headers={"User-Agent": "Mozilla/5.0"})
            resp.raise_for_status()
            return _title_from_html(resp.text)
        except Exception as exc:
            log.debug("Playlist title scrape failed for %s: %s", url, exc)
            return None

    async def _import_generic(self, url: str, source: Optional[str]) -> PlaylistImportResult:
        if source:
            provider = self._registry.get(source)
            if provider is None:
                raise CapabilityError(source, None)
            if not provider.has(IMPORT_MUSIC_SHEET):
                raise CapabilityError(provider.id, IMPORT_MUSIC_SHEET)
            candidates = [provider]
        else:
            candidates = self._registry.providers_with(IMPORT_MUSIC_SHEET)

        for provider in candidates:
            try:
                tracks = normalize_track_list(await provider.invoke(IMPORT_MUSIC_SHEET, url))
            except Exception as exc:
                log.debug("Plugin %s could not import %s: %s", provider.id, url, exc)
                continue
            if tracks:
                return PlaylistImportResult(source=provider.id, tracks=tracks)
        raise ImportNotFound(url)
