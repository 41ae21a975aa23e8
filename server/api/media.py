from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from providers.errors import CapabilityError, UpstreamError
from services.media_proxy import MediaProxy, is_proxyable_url


log = logging.getLogger("tunebridge")


class PlayPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: Optional[str] = Field(default=None, max_length=40)
    music_item: Dict[str, Any] = Field(default_factory=dict, alias="musicItem")


def create_media_router(*, media_proxy: MediaProxy) -> APIRouter:
    router = APIRouter()

    @router.post("/api/play")
    async def play_api(payload: PlayPayload) -> dict:
        try:
            url = await media_proxy.resolve(payload.source, payload.music_item)
        except CapabilityError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except UpstreamError as exc:
            log.error("Play error (%s): %s", payload.source, exc)
            detail = str(exc) if exc.__cause__ is None else "Failed to get media source"
            raise HTTPException(status_code=500, detail=detail)
        return {"url": url}

    @router.get("/api/proxy")
    async def proxy_api(request: Request, url: Optional[str] = Query(None)) -> StreamingResponse:
        if not url:
            raise HTTPException(status_code=400, detail="Missing URL")
        if not is_proxyable_url(url):
            raise HTTPException(status_code=400, detail="Unsupported URL")
        try:
            upstream = await media_proxy.open(url, range_header=request.headers.get("range"))
        except UpstreamError as exc:
            log.error("Proxy error: %s", exc)
            raise HTTPException(status_code=500, detail="Proxy failed")

        async def _iter_bytes() -> AsyncIterator[bytes]:
            try:
                async for chunk in upstream.aiter_raw():
                    yield chunk
            except Exception as exc:
                log.warning("Proxy stream interrupted: %s", exc)
            finally:
                await upstream.aclose()

        headers = media_proxy.forwarded_headers(upstream)
        headers["Cache-Control"] = "no-store"
        return StreamingResponse(
            _iter_bytes(),
            status_code=upstream.status_code,
            headers=headers,
            media_type=upstream.headers.get("content-type"),
        )

    return router
