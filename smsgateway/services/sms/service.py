"""
Lifecycle facade for the SMS subsystem.

Wires the provider registry, rate limiter, statistics, retry queue and
dispatcher together, and owns the two background tasks (cache pruning and
retry redrive).
"""
import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from smsgateway.core.config import Settings, settings
from smsgateway.core.exceptions import ConfigurationError
from smsgateway.schemas.metrics import (
    CacheInfo,
    HealthSnapshot,
    ProviderAvailability,
    ProviderHealth,
    StatsSnapshot,
)
from smsgateway.schemas.sms import DeliveryStatusResult, GENERAL_MESSAGE_TYPE, ProviderName, SendResult
from smsgateway.services.event_bus.bus import EventBus, get_event_bus
from smsgateway.services.event_bus.events import EventType
from smsgateway.services.metrics.collector import StatsCollector
from smsgateway.services.rate_limiter import RateLimiter
from smsgateway.services.sms.providers.registry import ProviderRegistry
from smsgateway.services.sms.retry_engine import RetryEngine, RetryQueue
from smsgateway.services.sms.selector import ProviderSelector
from smsgateway.services.sms.sender import SMSSender

logger = logging.getLogger("smsgateway.service")


class SMSService:
    """
    Long-lived SMS service.

    Construct through ``create_sms_service``; call ``start`` once the event
    loop runs and ``shutdown`` before it stops.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        event_bus: EventBus,
        config: Settings = settings,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.registry = registry
        self.event_bus = event_bus
        self.stats = StatsCollector()
        self.rate_limiter = RateLimiter.from_settings(config, clock=clock)
        self.retry_queue = RetryQueue.from_settings(config, clock=clock)
        self.selector = ProviderSelector(registry, self.stats, otp_provider=config.SMS_OTP_PROVIDER)
        self.sender = SMSSender(
            registry=registry,
            selector=self.selector,
            rate_limiter=self.rate_limiter,
            stats=self.stats,
            retry_queue=self.retry_queue,
            event_bus=event_bus,
            max_retries=config.SMS_MAX_RETRIES,
            backoff_seconds=config.SMS_RETRY_BACKOFF_SECONDS,
            max_message_length=config.SMS_MAX_MESSAGE_LENGTH,
        )
        self.retry_engine = RetryEngine(
            queue=self.retry_queue,
            registry=registry,
            selector=self.selector,
            stats=self.stats,
            event_bus=event_bus,
            interval=config.SMS_RETRY_QUEUE_INTERVAL_SECONDS,
        )

        self._running = False
        self._stopped = False
        self._started_at: Optional[float] = None
        self._prune_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    # Lifecycle

    async def start(self) -> None:
        """Launch the background tasks and announce readiness."""
        if self._running:
            return

        self._running = True
        self._started_at = time.monotonic()
        self._prune_task = asyncio.create_task(self._prune_loop())
        self._retry_task = asyncio.create_task(self.retry_engine.start())

        logger.info(f"SMS service started (default provider: {self.registry.default_provider.value})")
        await self.event_bus.publish(
            EventType.SERVICE_READY,
            {
                "default_provider": self.registry.default_provider.value,
                "providers": list(self.registry.status().keys()),
            },
        )

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop the background tasks, make one final pass over the retry
        queue, release resources and announce the stop.

        Args:
            timeout: Bound for the final retry pass in seconds
        """
        if self._stopped:
            return

        timeout = self.config.SMS_SHUTDOWN_DRAIN_TIMEOUT if timeout is None else timeout
        logger.info("Shutting down SMS service")
        self._running = False
        await self.retry_engine.stop()

        for task in (self._prune_task, self._retry_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._prune_task = None
        self._retry_task = None

        if self.retry_queue.size:
            logger.info(f"Final retry pass over {self.retry_queue.size} queued messages")
            try:
                await asyncio.wait_for(self.retry_engine.process(force=True), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Final retry pass did not finish within {timeout}s")

        if self.retry_queue.size:
            logger.warning(f"{self.retry_queue.size} queued messages lost at shutdown")

        await self.rate_limiter.clear()
        await self.registry.aclose()
        self._stopped = True

        await self.event_bus.publish(EventType.SERVICE_STOPPED, {})
        logger.info("SMS service stopped")

    async def _prune_loop(self) -> None:
        interval = self.config.SMS_CACHE_PRUNE_INTERVAL_SECONDS
        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.prune_cache()
            except Exception as e:
                logger.error(f"Error pruning rate limit cache: {e}", exc_info=True)
                await self.event_bus.publish(EventType.SERVICE_ERROR, {"error": f"Cache pruning failed: {e}"})

    async def prune_cache(self) -> Dict[str, int]:
        """Drop expired rate limit entries and empty keys."""
        removed, remaining = await self.rate_limiter.prune()
        logger.debug(f"Cache cleanup done: {removed} removed, {remaining} remaining")
        await self.event_bus.publish(
            EventType.CACHE_CLEANED,
            {"removed": removed, "remaining_size": remaining},
        )
        return {"removed": removed, "remaining_size": remaining}

    # Sending

    async def send_otp(self, recipient: str, code: str, locale: str = "fr") -> SendResult:
        return await self.sender.send_otp(recipient, code, locale)

    async def send_payment_notification(
        self,
        recipient: str,
        kind,
        data: Optional[Mapping[str, Any]] = None,
        locale: str = "fr",
    ) -> SendResult:
        return await self.sender.send_payment_notification(recipient, kind, data, locale)

    async def send_raw(self, recipient: str, body: str, message_type: str = GENERAL_MESSAGE_TYPE) -> SendResult:
        return await self.sender.send_raw(recipient, body, message_type)

    async def check_status(self, message_id: str, provider) -> DeliveryStatusResult:
        return await self.sender.check_status(message_id, provider)

    # Telemetry

    def _cache_info(self) -> CacheInfo:
        return CacheInfo(rate_limit_keys=self.rate_limiter.size, retry_queue=self.retry_queue.size)

    def get_statistics(
        self,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
    ) -> StatsSnapshot:
        """
        Dispatch statistics.

        The range is echoed back; counters cover the whole process lifetime.
        """
        providers = {
            name: ProviderAvailability(**status) for name, status in self.registry.status().items()
        }
        return self.stats.get_statistics(
            range_start=range_start,
            range_end=range_end,
            cache=self._cache_info(),
            providers=providers,
        )

    def get_health(self) -> HealthSnapshot:
        """Service health with provider status and configuration summary."""
        providers = {
            name: ProviderHealth(
                **status,
                stats=self.stats.provider_stats(name),
            )
            for name, status in self.registry.status().items()
        }

        if self._stopped or not self._running:
            status = "stopped"
        elif self.retry_queue.size:
            status = "degraded"
        else:
            status = "healthy"

        uptime = time.monotonic() - self._started_at if self._started_at is not None else 0.0
        return HealthSnapshot(
            status=status,
            timestamp=datetime.now(timezone.utc),
            uptime_seconds=round(uptime, 3),
            running=self._running,
            providers=providers,
            default_provider=self.registry.default_provider.value,
            cache=self._cache_info(),
            rate_limits=self.rate_limiter.limits(),
            max_retries=self.config.SMS_MAX_RETRIES,
        )


async def create_sms_service(
    config: Settings = settings,
    event_bus: Optional[EventBus] = None,
    transports: Optional[Dict[ProviderName, httpx.AsyncBaseTransport]] = None,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.time,
) -> SMSService:
    """
    Build an SMS service from settings.

    Raises:
        ConfigurationError: If the provider configuration is invalid, after
            publishing ``service.error``
    """
    event_bus = event_bus or get_event_bus()
    try:
        registry = ProviderRegistry.from_settings(config, transports=transports, rng=rng)
    except ConfigurationError as e:
        await event_bus.publish(EventType.SERVICE_ERROR, {"error": e.message, "errors": e.errors})
        raise

    return SMSService(registry, event_bus, config=config, clock=clock)
