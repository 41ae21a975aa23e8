from __future__ import annotations

import logging
import random
import re
from typing import Any, Dict, List, Optional, Sequence

from .models import Track, dedupe_tracks, normalize_track_list
from .recommend import playlist_cover
from .search import SearchDispatcher


log = logging.getLogger("tunebridge")

MAX_SEEDS = 10
CANDIDATE_LIMIT = 60
MIX_SIZE = 20

LANGUAGE_HINTS = {"cn": "华语", "jp": "日语", "kr": "韩语", "en": "英文"}

_HANGUL_RE = re.compile(r"[가-힣]")
_KANA_RE = re.compile(r"[ぁ-ゔゞァ-・ヽヾ゛゜ー]")
_HAN_RE = re.compile(r"[一-龥]")
_LATIN_RE = re.compile(r"[a-zA-Z]")


def detect_language(track: Track) -> str:
    text = " ".join(part for part in (track.title, track.artist, track.album or "") if part)
    if _HANGUL_RE.search(text):
        return "kr"
    if _KANA_RE.search(text):
        return "jp"
    if _HAN_RE.search(text):
        return "cn"
    if _LATIN_RE.search(text):
        return "en"
    return "other"


def seed_query(track: Track) -> Optional[str]:
    anchor = track.artist or track.title
    if not anchor:
        return None
    hint = LANGUAGE_HINTS.get(detect_language(track))
    return f"{anchor} {hint}" if hint else anchor


def build_random_track_list(
    items: Sequence[Dict[str, Any]],
    min_count: int,
    max_count: int,
    *,
    rng: Optional[random.Random] = None,
) -> List[Track]:
    rng = rng or random.Random()
    base = dedupe_tracks(normalize_track_list(list(items)))
    upper = min(len(base), max_count)
    lower = min(upper, min_count)
    if upper <= 0:
        return []
    count = upper if upper == lower else rng.randint(lower, upper)
    rng.shuffle(base)
    return base[:count]


class MixBuilder:
    def __init__(self, *, dispatcher: SearchDispatcher, rng: Optional[random.Random] = None) -> None:
        self._dispatcher = dispatcher
        self._rng = rng or random.Random()

    async def similar_mix(
        self,
        source: str,
        seeds: Sequence[Dict[str, Any]],
        *,
        mix_id: str,
        title: str,
        subtitle: str = "",
        badge: str = "",
    ) -> Optional[dict]:
        self._dispatcher.ensure(source)
        base = dedupe_tracks(normalize_track_list(list(seeds)))
        if not base:
            return None
        seen = {track.key for track in base if track.key is not None}

        picks = list(base)
        self._rng.shuffle(picks)
        candidates: List[Track] = []
        for seed in picks[:MAX_SEEDS]:
            query = seed_query(seed)
            if not query:
                continue
            try:
                hits = await self._dispatcher.search(source, query, 1, "music")
            except Exception as exc:
                log.warning("build mix search error %s: %s", mix_id, exc)
                continue
            candidates.extend(track for track in dedupe_tracks(hits, seen=seen) if track.key is not None)
            if len(candidates) >= CANDIDATE_LIMIT:
                break

        self._rng.shuffle(candidates)
        tracks = candidates[:MIX_SIZE]
        if not tracks:
            return None
        return {
            "id": mix_id,
            "title": title,
            "subtitle": subtitle,
            "badge": badge,
            "cover": playlist_cover(tracks) or playlist_cover(base),
            "tracks": [track.to_json() for track in tracks],
        }
