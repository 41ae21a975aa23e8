from __future__ import annotations

from typing import Callable, Dict, List

from fastapi import APIRouter, Query


def create_plugins_router(
    *,
    provider_ids: Callable[[], List[str]],
    describe_providers: Callable[[], List[dict]],
    load_failures: Callable[[], Dict[str, str]],
) -> APIRouter:
    router = APIRouter()

    @router.get("/api/plugins")
    async def list_plugins_api(detail: bool = Query(False)):
        if not detail:
            return provider_ids()
        return {"plugins": describe_providers(), "failed": load_failures()}

    @router.get("/api/platforms")
    async def list_platforms_api() -> List[str]:
        return provider_ids()

    return router
