from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from providers.errors import CapabilityError
from services.lyrics import LyricResolver


class LyricPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: Optional[str] = Field(default=None, max_length=40)
    music_item: Dict[str, Any] = Field(default_factory=dict, alias="musicItem")


def create_lyrics_router(*, resolver: LyricResolver) -> APIRouter:
    router = APIRouter()

    @router.post("/api/lyric")
    async def lyric_api(payload: LyricPayload) -> dict:
        try:
            doc = await resolver.resolve(payload.source, payload.music_item)
        except CapabilityError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"lrc": doc.text if doc else None, "synced": bool(doc and doc.synced)}

    return router
