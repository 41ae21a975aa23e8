from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from . import sandbox
from .errors import CapabilityError, LoadError, UpstreamError
from .storage import PluginCache, PluginSource, normalize_provider_id


log = logging.getLogger("tunebridge")

SEARCH = "search"
GET_MEDIA_SOURCE = "getMediaSource"
GET_LYRIC = "getLyric"
IMPORT_MUSIC_SHEET = "importMusicSheet"
CAPABILITIES = (SEARCH, GET_MEDIA_SOURCE, GET_LYRIC, IMPORT_MUSIC_SHEET)


@dataclass(frozen=True)
class Provider:
    id: str
    source_ref: str
    capabilities: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    platform: Optional[str] = None
    version: Optional[str] = None
    state: str = "loaded"

    def has(self, capability: str) -> bool:
        return capability in self.capabilities

    def describe(self) -> dict:
        return {
            "id": self.id,
            "platform": self.platform or self.id,
            "version": self.version,
            "state": self.state,
            "capabilities": [cap for cap in CAPABILITIES if cap in self.capabilities],
        }

    async def invoke(self, capability: str, *args: Any) -> Any:
        fn = self.capabilities.get(capability)
        if fn is None:
            raise CapabilityError(self.id, capability)
        try:
            if inspect.iscoroutinefunction(fn):
                result = await fn(*args)
            else:
                result = await asyncio.to_thread(fn, *args)
                if inspect.isawaitable(result):
                    result = await result
        except (asyncio.CancelledError, KeyboardInterrupt):
            raise
        except BaseException as exc:
            raise UpstreamError(str(exc) or type(exc).__name__, provider_id=self.id) from exc
        return result


class PluginRegistry:
    """Process-wide set of loaded providers.

    Providers are loaded at most once per process. A failed load is remembered
    and never retried; the provider stays absent until the process restarts.
    """

    def __init__(self, *, cache: PluginCache, http: httpx.AsyncClient) -> None:
        self._cache = cache
        self._http = http
        self._providers: Dict[str, Provider] = {}
        self._failed: Dict[str, LoadError] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, provider_id: str) -> asyncio.Lock:
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[provider_id] = lock
        return lock

    async def register_provider(self, provider_id: str, source_locator: str = "") -> Provider:
        pid = normalize_provider_id(provider_id)
        if not pid:
            raise LoadError(str(provider_id), "invalid provider id")
        async with self._lock_for(pid):
            existing = self._providers.get(pid)
            if existing is not None:
                return existing
            failure = self._failed.get(pid)
            if failure is not None:
                raise failure
            try:
                provider = await self._load(pid, source_locator)
            except LoadError as exc:
                self._failed[pid] = exc
                log.error("%s", exc)
                raise
            self._providers[pid] = provider
            log.info("Plugin %s loaded successfully (%s)", pid, ", ".join(provider.capabilities))
            return provider

    async def _load(self, provider_id: str, source_locator: str) -> Provider:
        source = self._cache.read(provider_id)
        if source is not None:
            log.info("Loading local plugin: %s", provider_id)
            source_ref = str(self._cache.path_for(provider_id))
        else:
            if not source_locator:
                raise LoadError(provider_id, "no cached code and no remote location")
            log.info("Downloading plugin: %s from %s", provider_id, source_locator)
            source = await self._fetch(provider_id, source_locator)
            try:
                self._cache.write(provider_id, source)
            except OSError as exc:
                log.warning("Could not cache plugin %s: %s", provider_id, exc)
            source_ref = source_locator

        # Top-level provider code may block; keep it off the event loop.
        module = await asyncio.to_thread(sandbox.evaluate, provider_id, source, filename=source_ref)
        return Provider(
            id=provider_id,
            source_ref=source_ref,
            capabilities=module.capabilities,
            platform=module.platform,
            version=module.version,
        )

    async def _fetch(self, provider_id: str, url: str) -> str:
        try:
            resp = await self._http.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise LoadError(provider_id, f"download failed: {exc}") from exc
        return resp.text

    async def load_all(self, sources: Iterable[PluginSource]) -> List[str]:
        loaded: List[str] = []
        for source in sources:
            try:
                await self.register_provider(source.id, source.url)
            except LoadError:
                continue
            except Exception:
                log.exception("Plugin %s crashed the loader", source.id)
                continue
            loaded.append(source.id)
        return loaded

    def get(self, provider_id: Optional[str]) -> Optional[Provider]:
        if not provider_id:
            return None
        return self._providers.get(provider_id.strip().lower())

    def require(self, provider_id: Optional[str], capability: Optional[str] = None) -> Provider:
        provider = self.get(provider_id)
        if provider is None:
            raise CapabilityError(provider_id, None)
        if capability is not None and not provider.has(capability):
            raise CapabilityError(provider.id, capability)
        return provider

    def ids(self) -> List[str]:
        return list(self._providers.keys())

    def providers(self) -> List[Provider]:
        return list(self._providers.values())

    def providers_with(self, capability: str) -> List[Provider]:
        return [provider for provider in self._providers.values() if provider.has(capability)]

    def failures(self) -> Dict[str, str]:
        return {pid: exc.reason for pid, exc in self._failed.items()}
