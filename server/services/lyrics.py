from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import httpx

from providers.errors import CapabilityError
from providers.registry import GET_LYRIC, SEARCH, PluginRegistry, Provider

from .models import LyricDocument, Track
from .search import SearchDispatcher


log = logging.getLogger("tunebridge")


@dataclass(frozen=True)
class LyricSourceConfig:
    id_lyric_source: str = "qq"
    id_lyric_url: str = "https://matomo.oiapi.net/api/QQMusicLyric"
    lrc_api_base: str = "https://api.lrc.cx/api/v1/lyrics"
    netease_api_base: str = "http://localhost:3001"
    backup_providers: Sequence[str] = field(default_factory=lambda: ("kuwo", "kugou"))


def prefer(candidate: Optional[LyricDocument], current: Optional[LyricDocument]) -> bool:
    """Whether ``candidate`` should replace ``current`` as the best lyric.

    Synced text beats unsynced text; among synced texts the longer one wins.
    An unsynced candidate only fills an empty slot, so the first unsynced text
    found is never overwritten by a later unsynced one.
    """
    if candidate is None:
        return False
    if current is None:
        return True
    if candidate.synced and not current.synced:
        return True
    if candidate.synced and current.synced:
        return len(candidate) > len(current)
    return False


class LyricResolver:
    def __init__(
        self,
        *,
        registry: PluginRegistry,
        dispatcher: SearchDispatcher,
        http: httpx.AsyncClient,
        config: Optional[LyricSourceConfig] = None,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._http = http
        self._config = config or LyricSourceConfig()

    async def resolve(self, provider_id: Optional[str], item: Dict[str, Any]) -> Optional[LyricDocument]:
        provider = self._registry.require(provider_id)
        track = Track.from_payload(item or {})
        best: Optional[LyricDocument] = None

        try:
            native = await self._lyric_from_provider(provider, item or {})
        except Exception as exc:
            log.warning("Native lyric lookup failed for %s: %s", provider.id, exc)
            native = None
        if native is not None:
            best = native

        if not self._synced(best) and provider.id == self._config.id_lyric_source and track.id:
            try:
                candidate = await self._id_keyed_lyric(track.id)
            except Exception as exc:
                log.warning("External lyric api error: %s", exc)
                candidate = None
            if candidate is not None and (candidate.synced or best is None):
                best = candidate

        try:
            candidate = await self._external_full_lyric(track)
        except Exception as exc:
            log.warning("External full lyric api error: %s", exc)
            candidate = None
        if candidate is not None and candidate.synced and prefer(candidate, best):
            best = candidate

        if not self._synced(best):
            try:
                candidate = await self._netease_lyric_by_search(track)
            except Exception as exc:
                log.warning("Netease lyric api error: %s", exc)
                candidate = None
            if prefer(candidate, best):
                best = candidate

        if not self._synced(best):
            for name in self._config.backup_providers:
                try:
                    candidate = await self._lyric_by_search(name, track)
                except Exception as exc:
                    log.warning("Backup lyric provider %s failed: %s", name, exc)
                    continue
                if candidate is not None and candidate.synced:
                    if prefer(candidate, best):
                        best = candidate
                    break

        return best

    @staticmethod
    def _synced(doc: Optional[LyricDocument]) -> bool:
        return doc is not None and doc.synced

    async def _lyric_from_provider(self, provider: Provider, item: Dict[str, Any]) -> Optional[LyricDocument]:
        if not provider.has(GET_LYRIC):
            return None
        result = await provider.invoke(GET_LYRIC, item)
        return LyricDocument.from_provider_result(result)

    async def _lyric_by_search(self, provider_id: str, track: Track) -> Optional[LyricDocument]:
        provider = self._registry.get(provider_id)
        if provider is None or not provider.has(GET_LYRIC) or not provider.has(SEARCH):
            return None
        try:
            hit = await self._dispatcher.first_hit(provider.id, track.search_query(), "lyric")
        except CapabilityError:
            return None
        if hit is None:
            return None
        return await self._lyric_from_provider(provider, hit.to_json())

    async def _id_keyed_lyric(self, track_id: str) -> Optional[LyricDocument]:
        resp = await self._http.get(self._config.id_lyric_url, params={"id": track_id})
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict) or data.get("code") != 1:
            return None
        return LyricDocument.from_text(data.get("message"))

    async def _external_full_lyric(self, track: Track) -> Optional[LyricDocument]:
        if not track.title and not track.artist:
            return None
        base = self._config.lrc_api_base.rstrip("/")
        resp = await self._http.get(f"{base}/single", params={"title": track.title, "artist": track.artist})
        resp.raise_for_status()
        return LyricDocument.from_text(resp.text)

    async def _netease_lyric_by_search(self, track: Track) -> Optional[LyricDocument]:
        keywords = track.search_query()
        if not keywords:
            return None
        base = self._config.netease_api_base.rstrip("/")
        resp = await self._http.get(f"{base}/search", params={"keywords": keywords, "limit": 1})
        resp.raise_for_status()
        result = (resp.json() or {}).get("result") or {}
        songs = result.get("songs") if isinstance(result, dict) else None
        if not isinstance(songs, list) or not songs or not isinstance(songs[0], dict):
            return None
        song_id = songs[0].get("id")
        if not song_id:
            return None

        resp = await self._http.get(f"{base}/lyric", params={"id": song_id})
        resp.raise_for_status()
        data = resp.json() or {}
        for key in ("lrc", "klyric", "yrc"):
            entry = data.get(key)
            if isinstance(entry, dict) and isinstance(entry.get("lyric"), str):
                return LyricDocument.from_text(entry["lyric"])
        return None
