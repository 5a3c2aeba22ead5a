"""
Deferred redelivery of messages every provider failed to send.
"""
import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from smsgateway.core.config import settings
from smsgateway.schemas.sms import RetryQueueItem
from smsgateway.services.event_bus.events import EventType
from smsgateway.services.metrics.collector import StatsCollector
from smsgateway.services.sms.providers.registry import ProviderRegistry
from smsgateway.services.sms.selector import ProviderSelector
from smsgateway.utils.phone import mask_phone

logger = logging.getLogger("smsgateway.retry")


class RetryQueue:
    """
    In-memory queue of messages awaiting redelivery.

    Items are not persisted; a restart loses them.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 300,
        backoff: float = 600,
        max_age: float = 86400,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff = backoff
        self.max_age = max_age
        self._clock = clock
        self._items: Dict[str, RetryQueueItem] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, config=settings, clock: Callable[[], float] = time.time) -> "RetryQueue":
        return cls(
            max_attempts=config.SMS_RETRY_QUEUE_MAX_ATTEMPTS,
            initial_delay=config.SMS_RETRY_QUEUE_INITIAL_DELAY_SECONDS,
            backoff=config.SMS_RETRY_QUEUE_BACKOFF_SECONDS,
            max_age=config.SMS_RETRY_QUEUE_MAX_AGE_SECONDS,
            clock=clock,
        )

    def now(self) -> float:
        return self._clock()

    @property
    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> List[RetryQueueItem]:
        return [item.model_copy() for item in self._items.values()]

    def get(self, item_id: str) -> Optional[RetryQueueItem]:
        item = self._items.get(item_id)
        return item.model_copy() if item else None

    async def enqueue(
        self,
        recipient: str,
        body: str,
        message_type: str,
        error: Optional[str] = None,
    ) -> RetryQueueItem:
        """
        Add a message for later redelivery.

        Returns:
            RetryQueueItem: The queued item
        """
        now = self.now()
        item = RetryQueueItem(
            id=str(uuid.uuid4()),
            recipient=recipient,
            body=body,
            message_type=message_type,
            attempts=0,
            created_at=now,
            next_retry_at=now + self.initial_delay,
            last_error=error,
        )
        async with self._lock:
            self._items[item.id] = item

        logger.info(f"Queued {message_type} to {mask_phone(recipient)} for retry (queue size {self.size})")
        return item.model_copy()

    async def due(self, force: bool = False) -> List[RetryQueueItem]:
        """Items ready for an attempt; with force, every item under the attempt ceiling."""
        now = self.now()
        async with self._lock:
            return [
                item.model_copy()
                for item in self._items.values()
                if item.attempts < self.max_attempts and (force or item.next_retry_at <= now)
            ]

    async def remove(self, item_id: str) -> Optional[RetryQueueItem]:
        async with self._lock:
            return self._items.pop(item_id, None)

    async def mark_failed(self, item_id: str, error: Optional[str]) -> Optional[RetryQueueItem]:
        """
        Record a failed attempt.

        Returns the updated item, or None if it was dropped for reaching the
        attempt ceiling (or is no longer queued).
        """
        now = self.now()
        async with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return None

            item.attempts += 1
            item.last_error = error
            if item.attempts >= self.max_attempts:
                del self._items[item_id]
                return None

            item.next_retry_at = now + item.attempts * self.backoff
            return item.model_copy()

    async def purge_expired(self) -> List[RetryQueueItem]:
        """Drop items older than the maximum age."""
        now = self.now()
        async with self._lock:
            expired = [item for item in self._items.values() if now - item.created_at > self.max_age]
            for item in expired:
                del self._items[item.id]
        return expired

    async def clear(self) -> None:
        async with self._lock:
            self._items.clear()


class RetryEngine:
    """
    Service for retrying failed messages.

    Periodically takes due items from the retry queue and gives each one a
    single attempt on the provider chosen by the selector.
    """

    def __init__(
        self,
        queue: RetryQueue,
        registry: ProviderRegistry,
        selector: ProviderSelector,
        stats: StatsCollector,
        event_bus: Any,
        interval: float = 300,
    ):
        """
        Initialize retry engine with required dependencies.

        Args:
            queue: Queue of messages to redeliver
            registry: Provider registry for adapter lookup
            selector: Provider selector
            stats: Statistics collector updated for every attempt
            event_bus: Event bus for publishing events
            interval: Seconds between cycles
        """
        self.queue = queue
        self.registry = registry
        self.selector = selector
        self.stats = stats
        self.event_bus = event_bus
        self.interval = interval
        self._running = False
        self._semaphore = asyncio.Semaphore(5)  # Limit concurrent retries

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run retry cycles until stopped."""
        if self._running:
            return

        self._running = True
        logger.info("Starting retry engine")

        while self._running:
            # Wait before next cycle
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            try:
                await self.process()
            except Exception as e:
                logger.error(f"Error in retry engine: {e}", exc_info=True)
                await self.event_bus.publish(EventType.SERVICE_ERROR, {"error": f"Retry cycle failed: {e}"})

    async def stop(self) -> None:
        """Stop the retry engine."""
        self._running = False
        logger.info("Retry engine stopped")

    async def process(self, force: bool = False) -> Dict[str, int]:
        """
        Run one retry cycle.

        Args:
            force: Attempt every queued item regardless of its next retry time

        Returns:
            Dict[str, int]: Counts of succeeded, failed, dropped and expired items
        """
        summary = {"succeeded": 0, "failed": 0, "dropped": 0, "expired": 0}
        candidates = await self.queue.due(force=force)

        if candidates:
            logger.info(f"Found {len(candidates)} messages to retry")
            outcomes = await asyncio.gather(*(self._retry_item(item) for item in candidates))
            for outcome in outcomes:
                summary[outcome] += 1
        else:
            logger.debug("No messages to retry")

        for item in await self.queue.purge_expired():
            summary["expired"] += 1
            logger.warning(
                f"Dropping {item.message_type} to {mask_phone(item.recipient)}: "
                f"older than {self.queue.max_age:.0f}s"
            )
            await self._publish_dropped(item, "expired")

        return summary

    async def _retry_item(self, item: RetryQueueItem) -> str:
        """Give one queued item a single attempt."""
        masked = mask_phone(item.recipient)
        provider_name = self.selector.choose(item.recipient, item.message_type)
        adapter = self.registry.get(provider_name) if provider_name else None

        if adapter is None:
            error = "No SMS provider available"
            provider = None
        else:
            provider = provider_name.value
            logger.info(f"Retrying {item.message_type} to {masked} via {provider} (attempt {item.attempts + 1})")
            async with self._semaphore:
                result = await adapter.send(item.recipient, item.body, item.message_type)
            await self.stats.record(provider, item.message_type, result.success, result.cost)

            if result.success:
                await self.queue.remove(item.id)
                logger.info(f"Successfully retried {item.message_type} to {masked} via {provider}")
                await self.event_bus.publish(
                    EventType.SMS_RETRY_SUCCEEDED,
                    {
                        "type": item.message_type,
                        "masked_recipient": masked,
                        "provider": provider,
                        "message_id": result.message_id,
                        "attempts": item.attempts + 1,
                    },
                )
                return "succeeded"
            error = result.error_message

        updated = await self.queue.mark_failed(item.id, error)
        if updated is not None:
            logger.warning(f"Retry of {item.message_type} to {masked} failed: {error}")
            return "failed"

        logger.error(
            f"Dropping {item.message_type} to {masked} after {self.queue.max_attempts} attempts: {error}"
        )
        await self._publish_dropped(item, "max_attempts", error=error, provider=provider)
        return "dropped"

    async def _publish_dropped(self, item: RetryQueueItem, reason: str, **extra) -> None:
        await self.event_bus.publish(
            EventType.SMS_RETRY_DROPPED,
            {
                "type": item.message_type,
                "masked_recipient": mask_phone(item.recipient),
                "reason": reason,
                **extra,
            },
        )
