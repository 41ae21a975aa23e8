"""Shared fixtures: on-disk plugin caches and mocked outbound HTTP."""

import textwrap
from pathlib import Path
from typing import Callable, Dict, Optional

import httpx
import pytest

from providers.registry import PluginRegistry
from providers.storage import PluginCache


def _not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, text="not mocked")


@pytest.fixture
def plugins_dir(tmp_path: Path) -> Path:
    path = tmp_path / "plugins"
    path.mkdir()
    return path


@pytest.fixture
def write_plugin(plugins_dir: Path) -> Callable[[str, str], Path]:
    def _write(provider_id: str, source: str) -> Path:
        path = plugins_dir / f"{provider_id}.py"
        path.write_text(textwrap.dedent(source))
        return path

    return _write


@pytest.fixture
def mock_http() -> Callable[..., httpx.AsyncClient]:
    def _make(handler: Optional[Callable] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler or _not_found))

    return _make


@pytest.fixture
def make_registry(plugins_dir: Path, write_plugin, mock_http):
    """Build a registry with the given plugins already cached and loaded."""

    async def _make(plugins: Dict[str, str], http: Optional[httpx.AsyncClient] = None) -> PluginRegistry:
        for provider_id, source in plugins.items():
            write_plugin(provider_id, source)
        registry = PluginRegistry(cache=PluginCache(plugins_dir), http=http or mock_http())
        for provider_id in plugins:
            await registry.register_provider(provider_id)
        return registry

    return _make
