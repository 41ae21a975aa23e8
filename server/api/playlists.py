from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from providers.errors import CapabilityError, ImportNotFound, UpstreamError
from services.playlist_import import PlaylistImporter


log = logging.getLogger("tunebridge")


def create_playlists_router(*, importer: PlaylistImporter) -> APIRouter:
    router = APIRouter()

    @router.get("/api/import")
    async def import_playlist_api(
        url: Optional[str] = Query(None, max_length=2048),
        source: Optional[str] = Query(None, max_length=40),
    ) -> dict:
        if not url:
            raise HTTPException(status_code=400, detail="Missing url")
        try:
            result = await importer.import_url(url.strip(), source or None)
        except CapabilityError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except ImportNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except UpstreamError as exc:
            log.error("Playlist import failed for %s: %s", url, exc)
            raise HTTPException(status_code=500, detail=str(exc))
        return result.to_json()

    return router
