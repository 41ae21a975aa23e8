import asyncio
import json

import httpx
import pytest

from services.player_client import PlayerClient


def _client(handler) -> PlayerClient:
    return PlayerClient(client=httpx.AsyncClient(base_url="http://api.test", transport=httpx.MockTransport(handler)))


class TestPlayToken:
    """A superseded play() must not surface its URL."""

    @pytest.mark.asyncio
    async def test_stale_response_is_dropped(self) -> None:
        release_first = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            item = json.loads(request.content)["musicItem"]
            if item["id"] == "slow":
                await release_first.wait()
            return httpx.Response(200, json={"url": f"https://cdn.example/{item['id']}.mp3"})

        client = _client(handler)
        slow = asyncio.create_task(client.play("demo", {"id": "slow"}))
        await asyncio.sleep(0)

        fast = await client.play("demo", {"id": "fast"})
        release_first.set()

        assert fast == "https://cdn.example/fast.mp3"
        assert await slow is None
        assert client.current_token == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_stale_error_is_dropped(self) -> None:
        release_first = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            item = json.loads(request.content)["musicItem"]
            if item["id"] == "slow":
                await release_first.wait()
                return httpx.Response(500, json={"detail": "boom"})
            return httpx.Response(200, json={"url": "https://cdn.example/ok.mp3"})

        client = _client(handler)
        slow = asyncio.create_task(client.play("demo", {"id": "slow"}))
        await asyncio.sleep(0)

        await client.play("demo", {"id": "fast"})
        release_first.set()

        assert await slow is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_current_error_is_raised(self) -> None:
        client = _client(lambda request: httpx.Response(400, json={"detail": "Plugin 'x' not found"}))

        with pytest.raises(httpx.HTTPStatusError):
            await client.play("x", {})
        await client.aclose()


class TestQueries:
    @pytest.mark.asyncio
    async def test_search_and_lyric(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/search":
                assert request.url.params["query"] == "moon"
                assert request.url.params["page"] == "2"
                return httpx.Response(200, json=[{"id": 1}])
            if request.url.path == "/api/lyric":
                return httpx.Response(200, json={"lrc": "[00:01.00]x", "synced": True})
            return httpx.Response(404)

        client = _client(handler)

        assert await client.search("demo", "moon", page=2) == [{"id": 1}]
        assert await client.lyric("demo", {"id": 1}) == "[00:01.00]x"
        await client.aclose()
