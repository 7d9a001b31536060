"""
Exception hierarchy for the bridge.

Status and model-discovery calls never raise these past the adapter boundary;
chat calls do, and the server maps them to HTTP status codes.
"""
from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""


class UpstreamError(BridgeError):
    """An upstream provider failed a chat call."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.body = body


class AdapterUnavailable(UpstreamError):
    """Upstream could not be reached at all (connection refused, timeout)."""


class UnknownProviderError(BridgeError):
    """The request named a provider that is not registered."""

    def __init__(self, provider: str, available: list[str]):
        super().__init__(
            f"Unknown provider '{provider}'. Available: {', '.join(available) or 'none'}"
        )
        self.provider = provider
        self.available = available


class InvalidRequestError(BridgeError):
    """The client sent a request that cannot be routed."""


class ParseError(BridgeError):
    """Structured output was expected but could not be parsed."""
