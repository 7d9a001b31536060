"""
Aggregator service.

Single entry point that hides which providers exist. Holds the registry of
provider adapters, fans status and model queries out to all of them
concurrently, and dispatches chat requests to exactly one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .errors import InvalidRequestError, UnknownProviderError, UpstreamError
from .models import ChatRequest
from .parsing import extract_json
from .provider import ChatOptions, ChatResult, ModelDescriptor, ProviderAdapter, ProviderStatus
from .stats import ChatStats
from .system import SystemService

logger = logging.getLogger(__name__)


@dataclass
class AggregatedSnapshot:
    """Full point-in-time status of the bridge. Never diffed."""
    timestamp: str
    services: dict[str, ProviderStatus]
    system: dict = field(default_factory=dict)
    agents: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "services": {
                provider_id: status.to_dict()
                for provider_id, status in self.services.items()
            },
            "system": self.system,
            "agents": list(self.agents),
        }


class Aggregator:
    """Registry of provider adapters plus the fan-out/dispatch logic."""

    def __init__(
        self,
        adapters: Optional[list[ProviderAdapter]] = None,
        system: Optional[SystemService] = None,
        stats: Optional[ChatStats] = None,
        default_provider: str = "lmstudio",
        default_temperature: float = 0.7,
        default_max_tokens: int = 2000,
    ):
        self._adapters: dict[str, ProviderAdapter] = {}
        self._system = system
        self.stats = stats or ChatStats()
        self.default_provider = default_provider
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens

        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ProviderAdapter) -> None:
        """Register an adapter under its provider_id. Replaces any existing one."""
        if adapter.provider_id in self._adapters:
            logger.warning("Replacing adapter for provider %s", adapter.provider_id)
        self._adapters[adapter.provider_id] = adapter
        logger.info("Registered provider: %s (%s)", adapter.provider_id, adapter.base_url)

    @property
    def providers(self) -> list[str]:
        return list(self._adapters)

    def get_adapter(self, provider_id: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            raise UnknownProviderError(provider_id, self.providers)
        return adapter

    async def initialize(self) -> None:
        await asyncio.gather(*(a.initialize() for a in self._adapters.values()))

    async def shutdown(self) -> None:
        results = await asyncio.gather(
            *(a.shutdown() for a in self._adapters.values()),
            return_exceptions=True,
        )
        for provider_id, result in zip(self._adapters, results):
            if isinstance(result, Exception):
                logger.warning("Error shutting down %s: %s", provider_id, result)

    # =========================================================================
    # Status
    # =========================================================================

    async def get_all_statuses(self) -> dict[str, ProviderStatus]:
        adapters = list(self._adapters.values())
        results = await asyncio.gather(
            *(a.get_status() for a in adapters),
            return_exceptions=True,
        )

        statuses = {}
        for adapter, result in zip(adapters, results):
            if isinstance(result, BaseException):
                # Adapters should never raise here; keep the snapshot whole anyway
                logger.error("%s get_status raised: %s", adapter.provider_id, result)
                result = adapter.offline(str(result) or result.__class__.__name__)
            statuses[adapter.provider_id] = result
        return statuses

    async def get_aggregated_status(self) -> AggregatedSnapshot:
        """Query every provider (and host metrics) concurrently."""
        if self._system is not None:
            statuses, system = await asyncio.gather(
                self.get_all_statuses(),
                self._system.get_metrics(),
            )
        else:
            statuses, system = await self.get_all_statuses(), {}

        return AggregatedSnapshot(
            timestamp=datetime.now(timezone.utc).isoformat(),
            services=statuses,
            system=system,
            agents=[],
        )

    async def get_system_metrics(self) -> dict:
        if self._system is None:
            return {}
        return await self._system.get_metrics()

    async def get_gpu(self) -> dict:
        if self._system is None:
            return {"available": False}
        return await self._system.get_gpu()

    # =========================================================================
    # Models
    # =========================================================================

    async def list_all_models(self) -> dict[str, list[ModelDescriptor]]:
        """Collect models from every provider. Offline providers yield []."""
        adapters = list(self._adapters.values())
        results = await asyncio.gather(
            *(a.list_models() for a in adapters),
            return_exceptions=True,
        )

        models = {}
        for adapter, result in zip(adapters, results):
            if isinstance(result, BaseException):
                logger.error("%s list_models raised: %s", adapter.provider_id, result)
                result = []
            models[adapter.provider_id] = result
        return models

    # =========================================================================
    # Chat
    # =========================================================================

    async def route_chat(self, request: ChatRequest) -> ChatResult:
        """
        Dispatch a chat request to the named provider.

        No load balancing, no retry, no fallback to another provider.

        Raises:
            UnknownProviderError: provider is not registered
            InvalidRequestError: messages is empty
            UpstreamError: passed through from the adapter
        """
        provider_id = request.provider or self.default_provider
        adapter = self.get_adapter(provider_id)

        if not request.messages:
            raise InvalidRequestError("messages must contain at least one message")

        messages = [{"role": m.role, "content": m.content} for m in request.messages]
        options = ChatOptions(
            temperature=(
                request.temperature if request.temperature is not None
                else self.default_temperature
            ),
            max_tokens=(
                request.max_tokens if request.max_tokens is not None
                else self.default_max_tokens
            ),
            json_mode=request.json_mode,
        )

        logger.debug(
            "Chat request: provider=%s, model=%s, messages=%d, temp=%.2f, max_tokens=%d",
            provider_id, request.model, len(messages), options.temperature, options.max_tokens,
        )

        stats = self.stats.for_provider(provider_id)
        start_time = time.time()

        try:
            result = await adapter.chat(messages, request.model, options)
        except UpstreamError as e:
            latency_ms = (time.time() - start_time) * 1000
            stats.record_request(success=False, latency_ms=latency_ms, error=e.message)
            logger.error("%s chat failed after %dms: %s", provider_id, latency_ms, e.message)
            raise

        latency_ms = (time.time() - start_time) * 1000
        stats.record_request(
            success=True,
            latency_ms=latency_ms,
            prompt_tokens=result.usage.prompt_tokens if result.usage else None,
            completion_tokens=result.usage.completion_tokens if result.usage else None,
        )

        if request.json_mode:
            result.data = extract_json(result.content)

        logger.debug(
            "Chat response: provider=%s, latency=%dms, len=%d",
            provider_id, latency_ms, len(result.content),
        )
        return result
