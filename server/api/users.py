from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field


class CredentialsPayload(BaseModel):
    username: str = Field(min_length=1, max_length=60)
    password: str = Field(min_length=1, max_length=128)


class SyncPayload(CredentialsPayload):
    data: Optional[Dict[str, Any]] = None


def create_users_router(
    *,
    register: Callable[[str, str], None],
    authenticate: Callable[[str, str], Dict[str, Any]],
    sync: Callable[[str, str, Optional[Dict[str, Any]]], Dict[str, Any]],
) -> APIRouter:
    router = APIRouter()

    # bcrypt and whole-file I/O block; plain handlers run in the threadpool.
    @router.post("/api/register")
    def register_api(payload: CredentialsPayload) -> dict:
        register(payload.username, payload.password)
        return {"success": True, "message": "Registration successful"}

    @router.post("/api/login")
    def login_api(payload: CredentialsPayload) -> dict:
        data = authenticate(payload.username, payload.password)
        return {"success": True, "username": payload.username, "data": data}

    @router.post("/api/user/sync")
    def sync_api(payload: SyncPayload) -> dict:
        data = sync(payload.username, payload.password, payload.data)
        return {"success": True, "data": data}

    return router
