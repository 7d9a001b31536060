"""
LuxRig Bridge - one API in front of local and cloud LLM servers.

This package provides:
- Provider adapters for LM Studio, Ollama and Gemini
- The aggregator that fans status/model queries out and routes chat
- The status broadcaster behind the /stream WebSocket
- FastAPI app factories for the bridge and the filesystem bridge
"""

from .aggregator import AggregatedSnapshot, Aggregator
from .broadcaster import StatusBroadcaster, Subscriber, SubscriberRegistry, SubscriberState
from .errors import (
    AdapterUnavailable,
    BridgeError,
    InvalidRequestError,
    ParseError,
    UnknownProviderError,
    UpstreamError,
)
from .provider import ChatOptions, ChatResult, ModelDescriptor, ProviderAdapter, ProviderStatus, Usage
from .server import create_app

__all__ = [
    # Provider interface
    "ProviderAdapter",
    "ProviderStatus",
    "ModelDescriptor",
    "ChatOptions",
    "ChatResult",
    "Usage",
    # Services
    "Aggregator",
    "AggregatedSnapshot",
    "StatusBroadcaster",
    "Subscriber",
    "SubscriberRegistry",
    "SubscriberState",
    # Errors
    "BridgeError",
    "UpstreamError",
    "AdapterUnavailable",
    "UnknownProviderError",
    "InvalidRequestError",
    "ParseError",
    # App factory
    "create_app",
]
