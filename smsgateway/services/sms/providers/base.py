"""
Common contract for SMS gateway adapters.
"""
import asyncio
import logging
import math
import secrets
import time
from typing import Any, Dict, Optional

import httpx

from smsgateway.core.exceptions import (
    ErrorCode,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitedError,
    ProviderTimeoutError,
)
from smsgateway.schemas.sms import (
    DeliveryStatus,
    DeliveryStatusResult,
    ProviderConfig,
    ProviderName,
    SendAttemptResult,
)
from smsgateway.utils.phone import mask_phone

logger = logging.getLogger("smsgateway.providers")

SINGLE_SEGMENT_LENGTH = 160
CONCAT_SEGMENT_LENGTH = 153

_GENERIC_STATUSES = {
    "QUEUED": DeliveryStatus.QUEUED,
    "PENDING": DeliveryStatus.QUEUED,
    "BUFFERED": DeliveryStatus.QUEUED,
    "ACCEPTED": DeliveryStatus.SENT,
    "SUBMITTED": DeliveryStatus.SENT,
    "SENT": DeliveryStatus.SENT,
    "DELIVERED": DeliveryStatus.DELIVERED,
    "DELIVEREDTOTERMINAL": DeliveryStatus.DELIVERED,
    "DELIVEREDTONETWORK": DeliveryStatus.SENT,
    "UNDELIVERED": DeliveryStatus.UNDELIVERED,
    "DELIVERYIMPOSSIBLE": DeliveryStatus.FAILED,
    "EXPIRED": DeliveryStatus.FAILED,
    "REJECTED": DeliveryStatus.FAILED,
    "FAILED": DeliveryStatus.FAILED,
}


def count_segments(body: str) -> int:
    """Number of SMS segments needed for a body."""
    length = len(body or "")
    if length <= SINGLE_SEGMENT_LENGTH:
        return 1
    return 1 + math.ceil((length - SINGLE_SEGMENT_LENGTH) / CONCAT_SEGMENT_LENGTH)


def map_status(raw: Optional[str], default: DeliveryStatus = DeliveryStatus.UNKNOWN) -> DeliveryStatus:
    """Map a provider status string onto DeliveryStatus."""
    if not raw:
        return default
    return _GENERIC_STATUSES.get(str(raw).replace("_", "").upper(), DeliveryStatus.UNKNOWN)


class SMSProvider:
    """
    Base class for gateway adapters.

    Subclasses implement ``_send`` and ``_check_status``; they may raise
    ``ProviderError`` or let ``httpx`` errors escape. ``send`` and
    ``check_status`` enforce the configured timeout and turn every expected
    failure into a result value.
    """

    name: ProviderName
    message_id_prefix: str = "SMS"

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeout(self) -> float:
        return self.config.timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def calculate_cost(self, body: str) -> int:
        return self.config.cost_per_segment * count_segments(body)

    def fallback_message_id(self) -> str:
        return f"{self.message_id_prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    async def send(self, recipient: str, body: str, message_type: str) -> SendAttemptResult:
        """
        Send one message through this gateway.

        Args:
            recipient: Normalized recipient number
            body: Message body
            message_type: Message type, forwarded to gateways that accept it

        Returns:
            SendAttemptResult: success or the mapped failure
        """
        provider = self.name.value
        try:
            return await asyncio.wait_for(
                self._send(recipient, body, message_type),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            error = ProviderTimeoutError(provider, self.timeout)
        except ProviderError as e:
            error = e
        except httpx.HTTPError as e:
            error = ProviderError(message=f"{provider} transport error: {e}", provider=provider)

        logger.warning(
            f"{provider} failed to send {message_type} to {mask_phone(recipient)}: "
            f"[{getattr(error.code, 'value', error.code)}] {error.message}"
        )
        return SendAttemptResult(
            success=False,
            provider=provider,
            status=DeliveryStatus.FAILED,
            error_code=error.code,
            error_message=error.message,
        )

    async def check_status(self, message_id: str) -> DeliveryStatusResult:
        """Query the delivery status of a message."""
        provider = self.name.value
        try:
            return await asyncio.wait_for(self._check_status(message_id), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            error = ProviderTimeoutError(provider, self.timeout)
        except ProviderError as e:
            error = e
        except httpx.HTTPError as e:
            error = ProviderError(message=f"{provider} transport error: {e}", provider=provider)

        logger.warning(f"{provider} status check failed for {message_id}: {error.message}")
        return DeliveryStatusResult(
            message_id=message_id,
            provider=provider,
            status=DeliveryStatus.ERROR,
            error=error.message,
        )

    async def _send(self, recipient: str, body: str, message_type: str) -> SendAttemptResult:
        raise NotImplementedError

    async def _check_status(self, message_id: str) -> DeliveryStatusResult:
        raise NotImplementedError

    # Helpers for HTTP based adapters

    def _error_message(self, payload: Dict[str, Any]) -> Optional[str]:
        return payload.get("message") or payload.get("error")

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON object body or raise MALFORMED_RESPONSE."""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise ProviderError(
                message=f"{self.name.value} returned a malformed response",
                code=ErrorCode.MALFORMED_RESPONSE,
                provider=self.name.value,
                details={"status_code": response.status_code},
            )
        return payload

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map HTTP error statuses onto provider errors."""
        if response.is_success:
            return

        provider = self.name.value
        status_code = response.status_code
        if status_code in (401, 403):
            logger.error(f"Invalid {provider} credentials ({status_code})")
            raise ProviderAuthError(provider, details={"status_code": status_code})
        if status_code == 429:
            try:
                retry_after = int(response.headers.get("Retry-After", "60"))
            except ValueError:
                retry_after = 60
            raise ProviderRateLimitedError(provider, retry_after=retry_after)

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        message = self._error_message(payload) if isinstance(payload, dict) else None
        raise ProviderError(
            message=f"{provider} error ({status_code}): {message or response.reason_phrase}",
            provider=provider,
            details={"status_code": status_code, "response": payload},
        )
