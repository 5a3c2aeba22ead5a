"""
Statistics collection for SMS dispatch.
"""
import asyncio
import logging
from typing import Dict, Optional
from datetime import datetime, timezone

from smsgateway.schemas.metrics import CounterStats, PeriodInfo, StatsSnapshot, CacheInfo, ProviderAvailability

logger = logging.getLogger("smsgateway.metrics")

# Success rate assumed for providers that were never tried
DEFAULT_SUCCESS_RATE = 0.5


class StatsCollector:
    """
    In-memory send counters, global, per provider and per message type.

    Counters only grow; they are reset by restarting the process.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._totals = CounterStats()
        self._by_provider: Dict[str, CounterStats] = {}
        self._by_type: Dict[str, CounterStats] = {}
        self._last_updated: Optional[datetime] = None

    @staticmethod
    def _bump(counters: CounterStats, success: bool, cost: int) -> None:
        counters.sent += 1
        if success:
            counters.succeeded += 1
        else:
            counters.failed += 1
        counters.cost += max(0, cost)

    async def record(self, provider: str, message_type: str, success: bool, cost: int = 0) -> None:
        """
        Record the outcome of one adapter call.

        Args:
            provider: Provider name
            message_type: Message type
            success: Whether the attempt succeeded
            cost: Cost of the attempt in FCFA
        """
        async with self._lock:
            self._bump(self._totals, success, cost)
            self._bump(self._by_provider.setdefault(provider, CounterStats()), success, cost)
            self._bump(self._by_type.setdefault(message_type, CounterStats()), success, cost)
            self._last_updated = datetime.now(timezone.utc)

        logger.debug(f"Recorded {'success' if success else 'failure'} for {provider} ({message_type})")

    def provider_stats(self, provider: str) -> CounterStats:
        return self._by_provider.get(provider, CounterStats()).model_copy()

    def type_stats(self, message_type: str) -> CounterStats:
        return self._by_type.get(message_type, CounterStats()).model_copy()

    def success_rate(self, provider: str) -> float:
        """Ratio of successful attempts, DEFAULT_SUCCESS_RATE when untested."""
        stats = self._by_provider.get(provider)
        if not stats or stats.sent == 0:
            return DEFAULT_SUCCESS_RATE
        return stats.succeeded / stats.sent

    def get_statistics(
        self,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        cache: Optional[CacheInfo] = None,
        providers: Optional[Dict[str, ProviderAvailability]] = None,
    ) -> StatsSnapshot:
        """
        Build a statistics snapshot.

        The period is reported as requested; counters cover the process
        lifetime.
        """
        totals = self._totals
        success_rate = round(totals.succeeded / totals.sent * 100, 2) if totals.sent else 0.0

        return StatsSnapshot(
            total_sent=totals.sent,
            total_succeeded=totals.succeeded,
            total_failed=totals.failed,
            total_cost=totals.cost,
            success_rate=success_rate,
            by_provider={name: stats.model_copy() for name, stats in self._by_provider.items()},
            by_type={name: stats.model_copy() for name, stats in self._by_type.items()},
            period=PeriodInfo(start=range_start, end=range_end),
            cache=cache or CacheInfo(rate_limit_keys=0, retry_queue=0),
            providers=providers or {},
            last_updated=self._last_updated,
        )
