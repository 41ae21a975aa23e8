from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from providers.errors import CapabilityError, UpstreamError
from services.mixes import MixBuilder, build_random_track_list
from services.recommend import RecommendationService
from services.search import SearchDispatcher


log = logging.getLogger("tunebridge")


class SimilarMixPayload(BaseModel):
    source: str = Field(min_length=1, max_length=40)
    seeds: List[Dict[str, Any]] = Field(default_factory=list)
    id: str = Field(default="mix", min_length=1, max_length=60)
    title: str = Field(default="Mix", max_length=120)
    subtitle: str = Field(default="", max_length=200)
    badge: str = Field(default="", max_length=40)


class RandomMixPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tracks: List[Dict[str, Any]] = Field(default_factory=list)
    min_count: int = Field(default=20, ge=0, alias="minCount")
    max_count: int = Field(default=50, ge=0, alias="maxCount")


def create_search_router(
    *,
    dispatcher: SearchDispatcher,
    recommendations: RecommendationService,
    mixes: MixBuilder,
) -> APIRouter:
    router = APIRouter()

    @router.get("/api/search")
    async def search_api(
        query: str = Query(..., max_length=200),
        source: Optional[str] = Query(None),
        page: int = Query(1, ge=1),
        type: str = Query("music", max_length=40),
    ) -> List[Dict[str, Any]]:
        try:
            tracks = await dispatcher.search(source, query, page, type)
        except CapabilityError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except UpstreamError as exc:
            log.error("Search via %s failed: %s", source, exc)
            raise HTTPException(status_code=500, detail=str(exc))
        return [track.to_json() for track in tracks]

    @router.get("/api/recommendPlaylists")
    async def recommend_playlists_api(refresh: bool = Query(False)) -> dict:
        try:
            return await recommendations.playlists(refresh=refresh)
        except CapabilityError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @router.post("/api/mix")
    async def similar_mix_api(payload: SimilarMixPayload) -> dict:
        try:
            mix = await mixes.similar_mix(
                payload.source,
                payload.seeds,
                mix_id=payload.id,
                title=payload.title,
                subtitle=payload.subtitle,
                badge=payload.badge,
            )
        except CapabilityError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"mix": mix}

    @router.post("/api/mix/random")
    async def random_mix_api(payload: RandomMixPayload) -> dict:
        tracks = build_random_track_list(payload.tracks, payload.min_count, payload.max_count)
        return {"tracks": [track.to_json() for track in tracks]}

    return router
