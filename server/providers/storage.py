from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional


log = logging.getLogger("tunebridge")

_PROVIDER_ID_RE = re.compile(r"^[a-z0-9_][a-z0-9_\-]{0,39}$")


@dataclass(frozen=True)
class PluginSource:
    id: str
    url: str = ""

    def to_json(self) -> dict:
        payload: dict = {"id": self.id}
        if self.url:
            payload["url"] = self.url
        return payload


def normalize_provider_id(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    raw = value.strip().lower()
    if not raw or not _PROVIDER_ID_RE.match(raw):
        return None
    return raw


def load_manifest(path: Path) -> List[PluginSource]:
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError:
        log.warning("%s is invalid; ignoring", path.name)
        return []
    if not isinstance(data, list):
        return []
    result: List[PluginSource] = []
    seen: set[str] = set()
    for raw in data:
        if not isinstance(raw, dict):
            continue
        pid = normalize_provider_id(raw.get("id"))
        if not pid or pid in seen:
            continue
        url = raw.get("url") if isinstance(raw.get("url"), str) else ""
        result.append(PluginSource(id=pid, url=url.strip()))
        seen.add(pid)
    return result


def save_manifest(path: Path, sources: List[PluginSource]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([source.to_json() for source in sources], indent=2))


def infer_sources(plugins_dir: Path) -> List[PluginSource]:
    """Infer cache-only sources when no manifest exists.

    Every cached ``<id>.py`` becomes a source without a remote locator, in
    name order so the registry order is stable across restarts.
    """
    if not plugins_dir.is_dir():
        return []
    inferred: List[PluginSource] = []
    for path in sorted(plugins_dir.glob("*.py")):
        pid = normalize_provider_id(path.stem)
        if pid:
            inferred.append(PluginSource(id=pid))
    return inferred


class PluginCache:
    """Write-once, read-always store of provider source files."""

    def __init__(self, plugins_dir: Path) -> None:
        self._plugins_dir = plugins_dir

    @property
    def plugins_dir(self) -> Path:
        return self._plugins_dir

    def path_for(self, provider_id: str) -> Path:
        return self._plugins_dir / f"{provider_id}.py"

    def read(self, provider_id: str) -> Optional[str]:
        path = self.path_for(provider_id)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, provider_id: str, source: str) -> Path:
        path = self.path_for(provider_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path
        path.write_text(source, encoding="utf-8")
        return path
