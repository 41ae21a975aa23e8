from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import bcrypt
from fastapi import HTTPException


log = logging.getLogger("tunebridge")

DATA_FIELDS = ("playlists", "history", "liked")


def empty_data() -> Dict[str, list]:
    return {name: [] for name in DATA_FIELDS}


class UserStore:
    """One record per username: a bcrypt hash plus a free-form data blob.

    Every operation reads the whole file and writes the whole file back.
    There is no locking between requests; concurrent writers race and the
    last write wins.
    """

    def __init__(self, *, users_path: Path) -> None:
        self._users_path = users_path

    def _read(self) -> Dict[str, dict]:
        if not self._users_path.exists():
            return {}
        try:
            data = json.loads(self._users_path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            log.error("Error reading users file: %s", exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, users: Dict[str, dict]) -> None:
        self._users_path.parent.mkdir(parents=True, exist_ok=True)
        self._users_path.write_text(json.dumps(users, indent=2))

    @staticmethod
    def _hash_password(raw: str) -> str:
        return bcrypt.hashpw(raw.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    @staticmethod
    def verify_password(raw: str, hashed: Optional[str]) -> bool:
        if not raw or not hashed:
            return False
        try:
            return bcrypt.checkpw(raw.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    def register(self, username: str, password: str) -> None:
        if not username or not password:
            raise HTTPException(status_code=400, detail="Username and password required")
        users = self._read()
        if username in users:
            raise HTTPException(status_code=400, detail="Username already exists")
        users[username] = {"password": self._hash_password(password), "data": empty_data()}
        self._write(users)

    def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        user = self._read().get(username)
        if not isinstance(user, dict) or not self.verify_password(password, user.get("password")):
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return self._data_of(user)

    def sync(self, username: str, password: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        users = self._read()
        user = users.get(username)
        if not isinstance(user, dict):
            raise HTTPException(status_code=401, detail="User not found")
        if not self.verify_password(password, user.get("password")):
            raise HTTPException(status_code=401, detail="Unauthorized")
        current = self._data_of(user)
        if data:
            for name in DATA_FIELDS:
                if data.get(name) is not None:
                    current[name] = data[name]
            user["data"] = current
            self._write(users)
        return current

    @staticmethod
    def _data_of(user: dict) -> Dict[str, Any]:
        data = user.get("data")
        if not isinstance(data, dict):
            data = empty_data()
        for name in DATA_FIELDS:
            data.setdefault(name, [])
        return data
