import logging
import os
from pathlib import Path
from typing import List

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from providers.registry import PluginRegistry
from providers.storage import PluginCache, PluginSource, infer_sources, load_manifest

from api.health import create_health_router
from api.lyrics import create_lyrics_router
from api.media import create_media_router
from api.playlists import create_playlists_router
from api.plugins import create_plugins_router
from api.search import create_search_router
from api.users import create_users_router
from services.lyrics import LyricResolver, LyricSourceConfig
from services.media_proxy import MediaProxy
from services.mixes import MixBuilder
from services.playlist_import import NETEASE_TO_QQ, CrossPlatformRoute, PlaylistImporter
from services.recommend import RecommendationService
from services.search import SearchDispatcher
from services.user_store import UserStore


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
log = logging.getLogger("tunebridge")


def _csv_env(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


PLUGINS_DIR = Path(os.getenv("PLUGINS_DIR", "/config/plugins"))
PLUGINS_MANIFEST_PATH = Path(os.getenv("PLUGINS_MANIFEST_PATH", "/config/plugins.json"))
USERS_PATH = Path(os.getenv("USERS_PATH", "/config/users.json"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))
NETEASE_API_BASE = os.getenv("NETEASE_API_BASE", "http://localhost:3001").rstrip("/")
LRC_API_BASE = os.getenv("LRC_API_BASE", "https://api.lrc.cx/api/v1/lyrics").rstrip("/")
ID_LYRIC_API_URL = os.getenv("ID_LYRIC_API_URL", "https://matomo.oiapi.net/api/QQMusicLyric")
ID_LYRIC_SOURCE = os.getenv("ID_LYRIC_SOURCE", "qq").strip().lower() or "qq"
LYRIC_BACKUP_PROVIDERS = _csv_env("LYRIC_BACKUP_PROVIDERS", "kuwo,kugou")
RECOMMEND_SOURCE = os.getenv("RECOMMEND_SOURCE", "qq").strip().lower() or "qq"
RECOMMEND_CACHE_TTL = int(os.getenv("RECOMMEND_CACHE_TTL", "300"))
PROXY_REQUIRED_PROVIDERS = _csv_env("PROXY_REQUIRED_PROVIDERS", "bilibili")
ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin.strip()]


http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True)
registry = PluginRegistry(cache=PluginCache(PLUGINS_DIR), http=http_client)
dispatcher = SearchDispatcher(registry=registry)
lyric_resolver = LyricResolver(
    registry=registry,
    dispatcher=dispatcher,
    http=http_client,
    config=LyricSourceConfig(
        id_lyric_source=ID_LYRIC_SOURCE,
        id_lyric_url=ID_LYRIC_API_URL,
        lrc_api_base=LRC_API_BASE,
        netease_api_base=NETEASE_API_BASE,
        backup_providers=tuple(LYRIC_BACKUP_PROVIDERS),
    ),
)
playlist_importer = PlaylistImporter(
    registry=registry,
    dispatcher=dispatcher,
    http=http_client,
    routes=(
        CrossPlatformRoute(
            name=NETEASE_TO_QQ.name,
            url_patterns=NETEASE_TO_QQ.url_patterns,
            source_provider=NETEASE_TO_QQ.source_provider,
            target_provider=RECOMMEND_SOURCE,
        ),
    ),
)
media_proxy = MediaProxy(registry=registry, http=http_client, always_proxy=PROXY_REQUIRED_PROVIDERS)
recommendations = RecommendationService(
    registry=registry,
    dispatcher=dispatcher,
    source=RECOMMEND_SOURCE,
    cache_ttl=RECOMMEND_CACHE_TTL,
)
mix_builder = MixBuilder(dispatcher=dispatcher)
user_store = UserStore(users_path=USERS_PATH)


def plugin_sources() -> List[PluginSource]:
    sources = load_manifest(PLUGINS_MANIFEST_PATH)
    if sources:
        return sources
    inferred = infer_sources(PLUGINS_DIR)
    if inferred:
        log.info("No plugin manifest at %s; using %d cached plugins", PLUGINS_MANIFEST_PATH, len(inferred))
    return inferred


app = FastAPI(title="TuneBridge", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(create_health_router(provider_ids=registry.ids))
app.include_router(
    create_plugins_router(
        provider_ids=registry.ids,
        describe_providers=lambda: [provider.describe() for provider in registry.providers()],
        load_failures=registry.failures,
    )
)
app.include_router(
    create_search_router(
        dispatcher=dispatcher,
        recommendations=recommendations,
        mixes=mix_builder,
    )
)
app.include_router(create_media_router(media_proxy=media_proxy))
app.include_router(create_lyrics_router(resolver=lyric_resolver))
app.include_router(create_playlists_router(importer=playlist_importer))
app.include_router(
    create_users_router(
        register=user_store.register,
        authenticate=user_store.authenticate,
        sync=user_store.sync,
    )
)


@app.on_event("startup")
async def _startup_events() -> None:
    try:
        PLUGINS_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log.warning("Plugin cache directory %s is not writable: %s", PLUGINS_DIR, exc)
    sources = plugin_sources()
    loaded = await registry.load_all(sources)
    log.info("Loaded %d of %d plugins: %s", len(loaded), len(sources), ", ".join(loaded) or "none")


@app.on_event("shutdown")
async def _shutdown_events() -> None:
    await http_client.aclose()
