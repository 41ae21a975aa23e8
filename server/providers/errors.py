from __future__ import annotations

from typing import Optional


class TuneBridgeError(RuntimeError):
    pass


class LoadError(TuneBridgeError):
    """Provider code is missing, does not compile, or raised while executing."""

    def __init__(self, provider_id: str, message: str) -> None:
        super().__init__(f"Failed to load provider '{provider_id}': {message}")
        self.provider_id = provider_id
        self.reason = message


class CapabilityError(TuneBridgeError):
    """Provider id is unknown, or the provider does not declare the capability."""

    def __init__(self, provider_id: Optional[str], capability: Optional[str] = None) -> None:
        if not provider_id:
            message = "Plugin not found or not specified"
        elif capability is None:
            message = f"Plugin '{provider_id}' not found"
        else:
            message = f"Plugin '{provider_id}' does not support {capability}"
        super().__init__(message)
        self.provider_id = provider_id
        self.capability = capability


class UpstreamError(TuneBridgeError):
    def __init__(self, message: str, *, provider_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider_id = provider_id


class ImportNotFound(TuneBridgeError):
    def __init__(self, url: str) -> None:
        super().__init__("No plugin could import this URL")
        self.url = url
