"""Provider health tracking based on recent API call success/failure rates."""

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from ..models.provider import ProviderType

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Provider health status levels."""
    HEALTHY = "healthy"      # working normally
    DEGRADED = "degraded"    # experiencing issues
    UNHEALTHY = "unhealthy"  # down, throttled or rejecting credentials
    UNKNOWN = "unknown"      # no recent data


@dataclass
class ProviderHealth:
    """Health status for a single provider."""
    status: HealthStatus
    success_rate: float  # 0.0 to 1.0
    recent_calls: int
    rate_limited_calls: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[float] = None


@dataclass
class CallRecord:
    """Outcome of a single provider attempt."""
    timestamp: float
    success: bool
    rate_limited: bool = False


class ProviderHealthTracker:
    """
    Tracks health of AI providers from the outcomes the execution engine
    observes.

    Each provider keeps a bounded history of recent attempts. Only attempts
    inside the sliding window count towards the success rate.
    """

    WINDOW_SECONDS = 300  # 5 minute window
    MAX_RECORDS = 100
    HEALTHY_THRESHOLD = 0.7  # at or above 70% success = healthy
    DEGRADED_THRESHOLD = 0.3  # at or above 30% success = degraded

    def __init__(self, providers: Iterable[ProviderType] = tuple(ProviderType)):
        self._calls: dict[ProviderType, deque[CallRecord]] = {
            ProviderType(p): deque(maxlen=self.MAX_RECORDS) for p in providers
        }
        self._last_errors: dict[ProviderType, tuple[str, float]] = {}

    def _history(self, provider: ProviderType) -> deque[CallRecord]:
        provider = ProviderType(provider)
        if provider not in self._calls:
            self._calls[provider] = deque(maxlen=self.MAX_RECORDS)
        return self._calls[provider]

    def record_success(self, provider: ProviderType) -> None:
        """Record a successful provider call."""
        self._history(provider).append(CallRecord(timestamp=time.time(), success=True))

    def record_failure(
        self,
        provider: ProviderType,
        error_message: str,
        rate_limited: bool = False,
    ) -> None:
        """Record a failed provider call."""
        now = time.time()
        self._history(provider).append(CallRecord(
            timestamp=now,
            success=False,
            rate_limited=rate_limited,
        ))
        self._last_errors[ProviderType(provider)] = (error_message, now)

    def get_health(self, provider: ProviderType) -> ProviderHealth:
        """Get current health status for a provider."""
        provider = ProviderType(provider)
        cutoff = time.time() - self.WINDOW_SECONDS
        recent = [c for c in self._history(provider) if c.timestamp > cutoff]

        if not recent:
            return ProviderHealth(
                status=HealthStatus.UNKNOWN,
                success_rate=1.0,
                recent_calls=0,
            )

        success_rate = sum(1 for c in recent if c.success) / len(recent)
        throttled = sum(1 for c in recent if c.rate_limited)

        if success_rate >= self.HEALTHY_THRESHOLD:
            status = HealthStatus.HEALTHY
        elif success_rate >= self.DEGRADED_THRESHOLD:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        last_error, last_error_time = self._last_errors.get(provider, (None, None))

        return ProviderHealth(
            status=status,
            success_rate=success_rate,
            recent_calls=len(recent),
            rate_limited_calls=throttled,
            last_error=last_error,
            last_error_time=last_error_time,
        )

    def get_all_health(self) -> dict[str, dict]:
        """Health summary for every tracked provider, keyed by provider id."""
        summary = {}
        for provider in self._calls:
            health = self.get_health(provider)
            summary[provider.value] = {
                "status": health.status.value,
                "success_rate": round(health.success_rate * 100, 1),
                "recent_calls": health.recent_calls,
                "rate_limited_calls": health.rate_limited_calls,
                "last_error": health.last_error,
            }
        return summary
