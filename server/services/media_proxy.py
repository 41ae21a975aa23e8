from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlencode, urlparse

import httpx

from providers.errors import UpstreamError
from providers.registry import GET_MEDIA_SOURCE, PluginRegistry

from .models import MediaStreamDescriptor


log = logging.getLogger("tunebridge")

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Host suffix -> Referer the CDN expects.
ORIGIN_REFERERS: Dict[str, str] = {
    "bilibili.com": "https://www.bilibili.com/",
    "bilivideo.com": "https://www.bilibili.com/",
    "bilivideo.cn": "https://www.bilibili.com/",
    "akamaized.net": "https://www.bilibili.com/",
    "hdslb.com": "https://www.bilibili.com/",
}

FORWARDED_RESPONSE_HEADERS = ("content-type", "content-length", "content-range", "accept-ranges")


def is_proxyable_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def spoofed_headers(url: str) -> Dict[str, str]:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    referer = f"{parsed.scheme}://{parsed.netloc}/"
    for suffix, value in ORIGIN_REFERERS.items():
        if host == suffix or host.endswith(f".{suffix}"):
            referer = value
            break
    return {"User-Agent": BROWSER_USER_AGENT, "Referer": referer}


class MediaProxy:
    def __init__(
        self,
        *,
        registry: PluginRegistry,
        http: httpx.AsyncClient,
        proxy_path: str = "/api/proxy",
        always_proxy: Iterable[str] = ("bilibili",),
    ) -> None:
        self._registry = registry
        self._http = http
        self._proxy_path = proxy_path
        self._always_proxy = {pid.strip().lower() for pid in always_proxy if pid and pid.strip()}

    def proxy_reference(self, url: str) -> str:
        return f"{self._proxy_path}?{urlencode({'url': url})}"

    def play_url(self, provider_id: str, descriptor: MediaStreamDescriptor) -> str:
        if descriptor.requires_proxy or provider_id in self._always_proxy:
            return self.proxy_reference(descriptor.url)
        return descriptor.url

    async def resolve(self, provider_id: Optional[str], item: Dict[str, Any]) -> str:
        provider = self._registry.require(provider_id, GET_MEDIA_SOURCE)
        result = await provider.invoke(GET_MEDIA_SOURCE, item)
        descriptor = MediaStreamDescriptor.from_provider_result(result)
        if descriptor is None:
            raise UpstreamError("No media URL returned by plugin", provider_id=provider.id)
        return self.play_url(provider.id, descriptor)

    async def open(self, url: str, *, range_header: Optional[str] = None) -> httpx.Response:
        """Start the upstream request; the caller must close the returned response."""
        headers = spoofed_headers(url)
        # Content-Length is forwarded as-is, so the body must not be re-encoded.
        headers["Accept-Encoding"] = "identity"
        if range_header:
            headers["Range"] = range_header
        request = self._http.build_request("GET", url, headers=headers)
        try:
            resp = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Upstream request failed: {exc}") from exc
        if resp.status_code >= 400:
            await resp.aclose()
            raise UpstreamError(f"Upstream responded with {resp.status_code}")
        return resp

    @staticmethod
    def forwarded_headers(resp: httpx.Response) -> Dict[str, str]:
        return {name: resp.headers[name] for name in FORWARDED_RESPONSE_HEADERS if name in resp.headers}
