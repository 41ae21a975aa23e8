from __future__ import annotations

from typing import Callable, List

from fastapi import APIRouter


def create_health_router(*, provider_ids: Callable[[], List[str]]) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "plugins": len(provider_ids())}

    return router
