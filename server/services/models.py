from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional


ENVELOPE_FIELDS = ("data", "list")
TIME_TAG_RE = re.compile(r"\[\d{1,2}:\d{2}(?:\.\d{1,3})?\]")


def has_time_tag(text: Any) -> bool:
    if not text or not isinstance(text, str):
        return False
    return TIME_TAG_RE.search(text) is not None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        parts = []
        for entry in value:
            if isinstance(entry, dict):
                entry = entry.get("name") or entry.get("title")
            if entry:
                parts.append(str(entry))
        return ", ".join(parts)
    return str(value).strip()


@dataclass(frozen=True)
class Track:
    title: str
    artist: str
    album: Optional[str] = None
    artwork: Optional[str] = None
    duration: Optional[float] = None
    id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> "Track":
        duration = raw.get("duration")
        try:
            duration_value = float(duration) if duration is not None else None
        except (TypeError, ValueError):
            duration_value = None
        raw_id = raw.get("id")
        return cls(
            title=_text(raw.get("title") or raw.get("name")),
            artist=_text(raw.get("artist") or raw.get("artists") or raw.get("singer")),
            album=_text(raw.get("album")) or None,
            artwork=_text(raw.get("artwork") or raw.get("cover")) or None,
            duration=duration_value,
            id=str(raw_id) if raw_id is not None and raw_id != "" else None,
            payload=raw,
        )

    @property
    def key(self) -> Optional[str]:
        """Identity used for deduplication: the id when present, else title+artist."""
        if self.id is not None:
            return f"id:{self.id}"
        if self.title and self.artist:
            return f"key:{self.title}::{self.artist}"
        return None

    def search_query(self) -> str:
        return " ".join(part for part in (self.title, self.artist) if part).strip()

    def to_json(self) -> Dict[str, Any]:
        return self.payload


def track_key(item: Any) -> Optional[str]:
    if isinstance(item, Track):
        return item.key
    if not isinstance(item, dict):
        return None
    return Track.from_payload(item).key


def dedupe_tracks(tracks: Iterable[Track], *, seen: Optional[set[str]] = None) -> List[Track]:
    seen_keys = seen if seen is not None else set()
    result: List[Track] = []
    for track in tracks:
        key = track.key
        if key is not None:
            if key in seen_keys:
                continue
            seen_keys.add(key)
        result.append(track)
    return result


def normalize_track_list(raw: Any) -> List[Track]:
    """Flatten a provider response into tracks.

    Providers answer either with a bare list or with an envelope object that
    wraps the list under a conventional field name.
    """
    items: Any = None
    if isinstance(raw, list):
        items = raw
    elif isinstance(raw, dict):
        for name in ENVELOPE_FIELDS:
            if isinstance(raw.get(name), list):
                items = raw[name]
                break
    if not items:
        return []
    return [Track.from_payload(item) for item in items if isinstance(item, dict)]


@dataclass(frozen=True)
class LyricDocument:
    text: str

    @property
    def synced(self) -> bool:
        return has_time_tag(self.text)

    def __len__(self) -> int:
        return len(self.text)

    @classmethod
    def from_text(cls, text: Any) -> Optional["LyricDocument"]:
        if not isinstance(text, str) or not text.strip():
            return None
        return cls(text=text)

    @classmethod
    def from_provider_result(cls, result: Any) -> Optional["LyricDocument"]:
        if isinstance(result, str):
            return cls.from_text(result)
        if isinstance(result, dict):
            return cls.from_text(result.get("lrc") or result.get("rawLrc"))
        return None


@dataclass(frozen=True)
class MediaStreamDescriptor:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def requires_proxy(self) -> bool:
        return bool(self.headers)

    @classmethod
    def from_provider_result(cls, result: Any) -> Optional["MediaStreamDescriptor"]:
        if isinstance(result, str):
            url = result
            headers: Any = None
        elif isinstance(result, dict):
            url = result.get("url")
            headers = result.get("headers")
        else:
            return None
        if not isinstance(url, str) or not url.strip():
            return None
        if not isinstance(headers, dict):
            headers = {}
        return cls(url=url.strip(), headers={str(k): str(v) for k, v in headers.items()})


@dataclass
class PlaylistImportResult:
    source: str
    tracks: List[Track]
    title: Optional[str] = None

    def to_json(self) -> dict:
        payload: dict = {"source": self.source, "list": [track.to_json() for track in self.tracks]}
        if self.title:
            payload["title"] = self.title
        return payload
