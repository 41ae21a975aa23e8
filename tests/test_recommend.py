import random

import pytest

from providers.errors import CapabilityError
from services.mixes import MixBuilder, build_random_track_list, detect_language, seed_query
from services.models import Track
from services.recommend import Category, RecommendationService
from services.search import SearchDispatcher


CATALOG = """
def search(query, page, type):
    if query.startswith("fail"):
        raise RuntimeError("category search failed")
    if query.startswith("empty"):
        return []
    hits = [
        {"id": query + "-" + str(n), "title": "Song " + str(n), "artist": query, "artwork": "http://img/" + str(n)}
        for n in range(3)
    ]
    return {"data": hits + hits[:1]}
"""

CATEGORIES = (
    Category("one", "One", "1", ("ok one",)),
    Category("two", "Two", "2", ("fail two",)),
    Category("three", "Three", "3", ("ok three",)),
    Category("four", "Four", "4", ("fail four",)),
    Category("five", "Five", "5", ("ok five",)),
)


async def _service(make_registry, categories=CATEGORIES, cache_ttl=300) -> RecommendationService:
    registry = await make_registry({"qq": CATALOG})
    return RecommendationService(
        registry=registry,
        dispatcher=SearchDispatcher(registry=registry),
        source="qq",
        categories=categories,
        cache_ttl=cache_ttl,
        rng=random.Random(7),
    )


class TestRecommendations:
    """Concurrent category fan-out."""

    @pytest.mark.asyncio
    async def test_failed_categories_are_omitted(self, make_registry) -> None:
        service = await _service(make_registry)

        result = await service.playlists()

        assert result["source"] == "qq"
        assert [playlist["id"] for playlist in result["playlists"]] == ["one", "three", "five"]

    @pytest.mark.asyncio
    async def test_playlist_shape(self, make_registry) -> None:
        service = await _service(make_registry, categories=CATEGORIES[:1])

        playlist = (await service.playlists())["playlists"][0]

        assert playlist["title"] == "One"
        assert playlist["badge"] == "1"
        # The duplicate hit is dropped.
        assert len(playlist["tracks"]) == 3
        assert playlist["subtitle"] == "3 tracks"
        assert playlist["cover"] == playlist["tracks"][0]["artwork"]

    @pytest.mark.asyncio
    async def test_empty_categories_are_omitted(self, make_registry) -> None:
        service = await _service(make_registry, categories=(Category("e", "E", "E", ("empty",)),) + CATEGORIES[:1])

        result = await service.playlists()

        assert [playlist["id"] for playlist in result["playlists"]] == ["one"]

    @pytest.mark.asyncio
    async def test_results_are_cached_until_refresh(self, make_registry) -> None:
        service = await _service(make_registry)

        first = await service.playlists()
        second = await service.playlists()
        refreshed = await service.playlists(refresh=True)

        assert second is first
        assert refreshed is not first

    @pytest.mark.asyncio
    async def test_cache_disabled(self, make_registry) -> None:
        service = await _service(make_registry, cache_ttl=0)

        assert await service.playlists() is not await service.playlists()

    @pytest.mark.asyncio
    async def test_missing_source(self, make_registry) -> None:
        registry = await make_registry({"kuwo": CATALOG})
        service = RecommendationService(registry=registry, dispatcher=SearchDispatcher(registry=registry), source="qq")

        with pytest.raises(CapabilityError):
            await service.playlists()


class TestMixes:
    def test_detect_language(self) -> None:
        assert detect_language(Track.from_payload({"title": "사랑", "artist": "x"})) == "kr"
        assert detect_language(Track.from_payload({"title": "さくら"})) == "jp"
        assert detect_language(Track.from_payload({"title": "月亮"})) == "cn"
        assert detect_language(Track.from_payload({"title": "Moon"})) == "en"
        assert detect_language(Track.from_payload({"title": "123"})) == "other"

    def test_seed_query_uses_artist_and_hint(self) -> None:
        assert seed_query(Track.from_payload({"title": "Moon", "artist": "Band"})) == "Band 英文"
        assert seed_query(Track.from_payload({"title": "123"})) == "123"
        assert seed_query(Track.from_payload({})) is None

    def test_random_list_respects_bounds(self) -> None:
        items = [{"id": n} for n in range(30)] + [{"id": 0}]

        tracks = build_random_track_list(items, 5, 10, rng=random.Random(1))

        assert 5 <= len(tracks) <= 10
        assert len({track.id for track in tracks}) == len(tracks)

    def test_random_list_smaller_than_minimum(self) -> None:
        tracks = build_random_track_list([{"id": 1}, {"id": 2}], 20, 50)

        assert sorted(track.id for track in tracks) == ["1", "2"]

    def test_random_list_empty(self) -> None:
        assert build_random_track_list([], 1, 5) == []

    @pytest.mark.asyncio
    async def test_similar_mix_skips_seeds_and_failures(self, make_registry) -> None:
        registry = await make_registry({"qq": CATALOG})
        builder = MixBuilder(dispatcher=SearchDispatcher(registry=registry), rng=random.Random(3))
        seeds = [
            {"id": "ok-0", "title": "Seed", "artist": "ok"},
            {"id": "fail-0", "title": "Seed", "artist": "fail"},
        ]

        mix = await builder.similar_mix("qq", seeds, mix_id="daily", title="Daily", badge="D")

        ids = sorted(track["id"] for track in mix["tracks"])
        assert ids == ["ok 英文-0", "ok 英文-1", "ok 英文-2"]
        assert mix["id"] == "daily"
        assert mix["badge"] == "D"

    @pytest.mark.asyncio
    async def test_similar_mix_unknown_source(self, make_registry) -> None:
        registry = await make_registry({"qq": CATALOG})
        builder = MixBuilder(dispatcher=SearchDispatcher(registry=registry))

        with pytest.raises(CapabilityError):
            await builder.similar_mix("missing", [{"id": 1}], mix_id="m", title="M")

    @pytest.mark.asyncio
    async def test_similar_mix_without_seeds(self, make_registry) -> None:
        registry = await make_registry({"qq": CATALOG})
        builder = MixBuilder(dispatcher=SearchDispatcher(registry=registry))

        assert await builder.similar_mix("qq", [], mix_id="m", title="M") is None
