"""
Chat call statistics, tracked per provider.
"""
import statistics
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ProviderChatStats:
    """
    Counters for one provider's chat calls.

    Only mutated from the event loop, so no locking is needed.
    """

    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0

    # Last 1000 latencies, for percentiles
    latencies: deque = field(default_factory=lambda: deque(maxlen=1000))
    min_latency_ms: Optional[float] = None
    max_latency_ms: Optional[float] = None

    prompt_tokens: int = 0
    completion_tokens: int = 0

    recent_errors: deque = field(default_factory=lambda: deque(maxlen=5))

    def record_request(
        self,
        success: bool,
        latency_ms: float,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
        error: Optional[str] = None,
    ):
        """Record a completed request."""
        self.total_requests += 1

        if success:
            self.success_count += 1
        else:
            self.failure_count += 1
            if error:
                self.recent_errors.append({
                    "timestamp": time.time(),
                    "error": error,
                    "latency_ms": round(latency_ms),
                })

        self.latencies.append(latency_ms)
        if self.min_latency_ms is None or latency_ms < self.min_latency_ms:
            self.min_latency_ms = latency_ms
        if self.max_latency_ms is None or latency_ms > self.max_latency_ms:
            self.max_latency_ms = latency_ms

        if prompt_tokens is not None:
            self.prompt_tokens += prompt_tokens
        if completion_tokens is not None:
            self.completion_tokens += completion_tokens

    def get_percentile(self, p: float) -> Optional[float]:
        """Get latency percentile (0-100)."""
        if not self.latencies:
            return None
        sorted_latencies = sorted(self.latencies)
        idx = int(len(sorted_latencies) * p / 100)
        idx = min(idx, len(sorted_latencies) - 1)
        return sorted_latencies[idx]

    def summary(self) -> dict:
        latency_stats = {
            "avg": None,
            "min": None,
            "max": None,
            "p50": None,
            "p95": None,
        }

        if self.latencies:
            latency_stats["avg"] = round(statistics.mean(self.latencies), 1)
            latency_stats["min"] = round(self.min_latency_ms, 1)
            latency_stats["max"] = round(self.max_latency_ms, 1)
            latency_stats["p50"] = round(self.get_percentile(50), 1)
            latency_stats["p95"] = round(self.get_percentile(95), 1)

        failure_rate = 0.0
        if self.total_requests:
            failure_rate = round(self.failure_count / self.total_requests * 100, 2)

        return {
            "requests": {
                "total": self.total_requests,
                "success": self.success_count,
                "failure": self.failure_count,
                "failure_rate": failure_rate,
            },
            "latency_ms": latency_stats,
            "tokens": {
                "total": self.prompt_tokens + self.completion_tokens,
                "prompt": self.prompt_tokens,
                "completion": self.completion_tokens,
            },
            "recent_errors": list(reversed(self.recent_errors)),
        }


class ChatStats:
    """Per-provider chat statistics."""

    def __init__(self):
        self.start_time = time.time()
        self._providers: dict[str, ProviderChatStats] = {}

    def for_provider(self, provider_id: str) -> ProviderChatStats:
        if provider_id not in self._providers:
            self._providers[provider_id] = ProviderChatStats()
        return self._providers[provider_id]

    def get_stats(self) -> dict:
        return {
            "uptime_seconds": round(time.time() - self.start_time, 1),
            "providers": {
                provider_id: stats.summary()
                for provider_id, stats in self._providers.items()
            },
        }
