"""
Sliding-window rate limiting for outbound SMS.
"""
import asyncio
import time
from typing import Any, Callable, Dict, List, Tuple
import logging

from smsgateway.core.config import settings
from smsgateway.schemas.sms import OTP_MESSAGE_TYPE
from smsgateway.utils.phone import mask_phone

logger = logging.getLogger("smsgateway.rate_limiter")

MINUTE = 60
HOUR = 60 * 60
DAY = 24 * 60 * 60


class RateLimiter:
    """
    Per (recipient, message type) sliding-window limiter.

    Each key maps to the ordered timestamps of successful sends. Entries
    older than 24 hours are dropped whenever the key is touched.
    """

    def __init__(
        self,
        minute_limit: int = 10,
        hour_limit: int = 100,
        daily_otp_limit: int = 20,
        clock: Callable[[], float] = time.time,
    ):
        self.minute_limit = minute_limit
        self.hour_limit = hour_limit
        self.daily_otp_limit = daily_otp_limit
        self._clock = clock
        self._sends: Dict[Tuple[str, str], List[float]] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, config=settings, clock: Callable[[], float] = time.time) -> "RateLimiter":
        return cls(
            minute_limit=config.SMS_RATE_LIMIT_MINUTE,
            hour_limit=config.SMS_RATE_LIMIT_HOUR,
            daily_otp_limit=config.SMS_RATE_LIMIT_OTP_DAY,
            clock=clock,
        )

    @property
    def size(self) -> int:
        """Number of tracked keys."""
        return len(self._sends)

    def _prune_key(self, key: Tuple[str, str], now: float) -> List[float]:
        sends = [ts for ts in self._sends.get(key, []) if now - ts < DAY]
        self._sends[key] = sends
        return sends

    async def admit(self, recipient: str, message_type: str) -> bool:
        """
        Check whether a send to this recipient is within limits.

        Args:
            recipient: Normalized recipient number
            message_type: Message type (OTP, GENERAL, ...)

        Returns:
            bool: True if the send may proceed
        """
        key = (recipient, message_type)
        now = self._clock()

        async with self._lock:
            sends = self._prune_key(key, now)

            if message_type == OTP_MESSAGE_TYPE and len(sends) >= self.daily_otp_limit:
                logger.warning(f"Daily OTP limit reached for {mask_phone(recipient)}")
                return False

            last_hour = sum(1 for ts in sends if now - ts < HOUR)
            if last_hour >= self.hour_limit:
                logger.warning(f"Hourly limit reached for {mask_phone(recipient)} ({message_type})")
                return False

            last_minute = sum(1 for ts in sends if now - ts < MINUTE)
            if last_minute >= self.minute_limit:
                logger.warning(f"Per-minute limit reached for {mask_phone(recipient)} ({message_type})")
                return False

            return True

    async def record(self, recipient: str, message_type: str) -> None:
        """Record a successful send."""
        key = (recipient, message_type)
        now = self._clock()
        async with self._lock:
            self._prune_key(key, now).append(now)

    async def prune(self) -> Tuple[int, int]:
        """
        Drop expired timestamps and empty keys.

        Returns:
            Tuple[int, int]: (removed keys, remaining keys)
        """
        now = self._clock()
        removed = 0
        async with self._lock:
            for key in list(self._sends.keys()):
                if not self._prune_key(key, now):
                    del self._sends[key]
                    removed += 1
            remaining = len(self._sends)

        if removed:
            logger.info(f"Rate limit cache pruned: {removed} keys removed, {remaining} remaining")
        return removed, remaining

    async def clear(self) -> None:
        async with self._lock:
            self._sends.clear()

    async def get_limit_status(self, recipient: str, message_type: str) -> Dict[str, Any]:
        """
        Get current usage for a recipient and message type.

        Args:
            recipient: Normalized recipient number
            message_type: Message type

        Returns:
            Dict: Used and remaining counts per window
        """
        key = (recipient, message_type)
        now = self._clock()
        async with self._lock:
            sends = list(self._sends.get(key, []))

        last_day = sum(1 for ts in sends if now - ts < DAY)
        last_hour = sum(1 for ts in sends if now - ts < HOUR)
        last_minute = sum(1 for ts in sends if now - ts < MINUTE)
        status = {
            "minute": {"used": last_minute, "limit": self.minute_limit,
                       "remaining": max(0, self.minute_limit - last_minute)},
            "hour": {"used": last_hour, "limit": self.hour_limit,
                     "remaining": max(0, self.hour_limit - last_hour)},
        }
        if message_type == OTP_MESSAGE_TYPE:
            status["day"] = {"used": last_day, "limit": self.daily_otp_limit,
                             "remaining": max(0, self.daily_otp_limit - last_day)}
        return status

    def limits(self) -> Dict[str, int]:
        return {
            "per_minute": self.minute_limit,
            "per_hour": self.hour_limit,
            "otp_per_day": self.daily_otp_limit,
        }
