"""
SMS dispatcher: validation, rate limiting and delivery with provider failover.
"""
import asyncio
import logging
import re
from typing import Any, List, Mapping, Optional

from smsgateway.core.config import settings
from smsgateway.core.exceptions import (
    ErrorCode,
    InvalidPhoneNumberError,
    RATE_LIMIT_CODES,
    RateLimitExceededError,
    SMSGatewayException,
    ValidationError,
)
from smsgateway.schemas.sms import (
    DeliveryStatus,
    DeliveryStatusResult,
    GENERAL_MESSAGE_TYPE,
    OTP_MESSAGE_TYPE,
    NotificationKind,
    ProviderName,
    SendResult,
)
from smsgateway.services.event_bus.events import EventType
from smsgateway.services.metrics.collector import StatsCollector
from smsgateway.services.rate_limiter import RateLimiter
from smsgateway.services.sms import templates
from smsgateway.services.sms.providers.registry import ProviderRegistry
from smsgateway.services.sms.retry_engine import RetryQueue
from smsgateway.services.sms.selector import ProviderSelector
from smsgateway.utils.phone import mask_phone, normalize_phone, validate_phone

logger = logging.getLogger("smsgateway.sms")

OTP_CODE_PATTERN = re.compile(r"[0-9]{4,8}")


class SMSSender:
    """
    Service for sending SMS messages through the configured gateways.

    Expected failures never raise: validation errors, rate limiting and
    provider failures all come back as an unsuccessful SendResult.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        selector: ProviderSelector,
        rate_limiter: RateLimiter,
        stats: StatsCollector,
        retry_queue: RetryQueue,
        event_bus: Any,
        max_retries: int = settings.SMS_MAX_RETRIES,
        backoff_seconds: float = settings.SMS_RETRY_BACKOFF_SECONDS,
        max_message_length: int = settings.SMS_MAX_MESSAGE_LENGTH,
    ):
        """
        Initialize SMS sender service.

        Args:
            registry: Provider registry
            selector: Provider selector
            rate_limiter: Per recipient rate limiter
            stats: Statistics collector
            retry_queue: Queue for messages every provider failed
            event_bus: Event bus for publishing events
            max_retries: Provider attempts per message
            backoff_seconds: Base of the linear backoff between attempts
            max_message_length: Longest accepted message body
        """
        self.registry = registry
        self.selector = selector
        self.rate_limiter = rate_limiter
        self.stats = stats
        self.retry_queue = retry_queue
        self.event_bus = event_bus
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_message_length = max_message_length

    async def send_otp(self, recipient: str, code: str, locale: str = "fr") -> SendResult:
        """
        Send an OTP code.

        Args:
            recipient: Recipient phone number, any accepted shape
            code: 4 to 8 digit code
            locale: Template language

        Returns:
            SendResult: Outcome of the send
        """
        try:
            self._require(recipient=recipient, code=code)
            if not OTP_CODE_PATTERN.fullmatch(str(code)):
                raise ValidationError(
                    message="OTP code must be 4 to 8 digits",
                    code=ErrorCode.INVALID_OTP_CODE,
                )
            number = self._normalize(recipient)
            body = templates.render(NotificationKind.OTP, locale, {"code": code})
        except SMSGatewayException as e:
            return self._rejected(e, OTP_MESSAGE_TYPE)

        return await self._dispatch(number, body, OTP_MESSAGE_TYPE)

    async def send_payment_notification(
        self,
        recipient: str,
        kind,
        data: Optional[Mapping[str, Any]] = None,
        locale: str = "fr",
    ) -> SendResult:
        """
        Send a templated transactional notification.

        Args:
            recipient: Recipient phone number
            kind: NotificationKind (or its value)
            data: Template variables
            locale: Template language

        Returns:
            SendResult: Outcome of the send
        """
        message_type = kind.value if isinstance(kind, NotificationKind) else str(kind or "")
        try:
            self._require(recipient=recipient, kind=message_type)
            if not templates.has_template(message_type):
                raise ValidationError(
                    message=f"Unknown notification kind: {message_type}",
                    code=ErrorCode.UNKNOWN_TEMPLATE,
                )
            number = self._normalize(recipient)
            body = templates.render(message_type, locale, data or {})
        except SMSGatewayException as e:
            return self._rejected(e, message_type or GENERAL_MESSAGE_TYPE)

        return await self._dispatch(number, body, message_type)

    async def send_raw(
        self,
        recipient: str,
        body: str,
        message_type: str = GENERAL_MESSAGE_TYPE,
    ) -> SendResult:
        """Send a free-form message."""
        message_type = message_type or GENERAL_MESSAGE_TYPE
        try:
            self._require(recipient=recipient, body=body)
            self._check_length(body)
            number = self._normalize(recipient)
        except SMSGatewayException as e:
            return self._rejected(e, message_type)

        return await self._dispatch(number, body, message_type)

    async def check_status(self, message_id: str, provider) -> DeliveryStatusResult:
        """
        Query the delivery status of a sent message.

        Never raises: an unknown provider yields UNKNOWN and provider
        failures yield ERROR.
        """
        provider_value = getattr(provider, "value", provider)
        if not message_id or not provider_value:
            return DeliveryStatusResult(
                message_id=message_id or None,
                provider=provider_value or None,
                status=DeliveryStatus.ERROR,
                error="message_id and provider are required",
            )

        adapter = self.registry.get(provider_value)
        if adapter is None:
            logger.warning(f"Status check for unknown provider {provider_value}")
            return DeliveryStatusResult(
                message_id=message_id,
                provider=str(provider_value).upper(),
                status=DeliveryStatus.UNKNOWN,
                error=f"Unknown provider: {provider_value}",
            )

        return await adapter.check_status(message_id)

    def _require(self, **params) -> None:
        missing = [name for name, value in params.items() if value is None or str(value).strip() == ""]
        if missing:
            raise ValidationError(
                message=f"Missing required parameters: {', '.join(missing)}",
                code=ErrorCode.MISSING_PARAMETER,
                details={"missing": missing},
            )

    def _check_length(self, body: str) -> None:
        if len(str(body)) > self.max_message_length:
            raise ValidationError(
                message=f"Message exceeds {self.max_message_length} characters",
                code=ErrorCode.MESSAGE_TOO_LONG,
                details={"length": len(str(body))},
            )

    def _normalize(self, recipient: str) -> str:
        if not validate_phone(recipient):
            raise InvalidPhoneNumberError(
                message=f"Invalid phone number: {mask_phone(recipient)}",
                details={"number": mask_phone(recipient)},
            )
        return normalize_phone(recipient)

    def _rejected(self, error: SMSGatewayException, message_type: str) -> SendResult:
        code = getattr(error.code, "value", error.code)
        logger.warning(f"Rejected {message_type} message: [{code}] {error.message}")
        return SendResult(
            success=False,
            message_type=message_type,
            error=error.message,
            code=code,
        )

    async def _dispatch(self, recipient: str, body: str, message_type: str) -> SendResult:
        """Clean, check and admit a message, then deliver it."""
        body = templates.clean_message(body)
        try:
            self._require(body=body)
            self._check_length(body)
            if not await self.rate_limiter.admit(recipient, message_type):
                raise RateLimitExceededError()
        except SMSGatewayException as e:
            return self._rejected(e, message_type)

        return await self._send_with_retry(recipient, body, message_type)

    async def _send_with_retry(self, recipient: str, body: str, message_type: str) -> SendResult:
        """
        Try providers one after another until one accepts the message.

        On exhaustion the message is queued for deferred redelivery.
        """
        masked = mask_phone(recipient)
        tried: List[ProviderName] = []
        last_error: Optional[str] = None
        last_code: Optional[str] = None

        for attempt in range(1, self.max_retries + 1):
            provider_name = self.selector.choose(recipient, message_type, tried)
            if provider_name is None:
                break
            if attempt > 1 and self.backoff_seconds > 0:
                await asyncio.sleep((attempt - 1) * self.backoff_seconds)
            adapter = self.registry.get(provider_name)
            tried.append(provider_name)

            logger.info(f"Sending {message_type} to {masked} via {provider_name.value} (attempt {attempt})")
            result = await adapter.send(recipient, body, message_type)
            await self.stats.record(provider_name.value, message_type, result.success, result.cost)

            if result.success:
                await self.rate_limiter.record(recipient, message_type)
                await self.event_bus.publish(
                    EventType.SMS_SENT,
                    {
                        "type": message_type,
                        "masked_recipient": masked,
                        "provider": provider_name.value,
                        "message_id": result.message_id,
                    },
                )
                return SendResult(
                    success=True,
                    message_id=result.message_id,
                    provider=provider_name,
                    status=result.status,
                    cost=result.cost,
                    message_type=message_type,
                )

            last_error = result.error_message
            last_code = result.error_code
            if last_code in RATE_LIMIT_CODES:
                logger.warning(f"{provider_name.value} throttled {message_type} to {masked}, not trying further")
                break

        if not tried:
            last_error = "No SMS provider available"
            last_code = ErrorCode.NO_PROVIDER_AVAILABLE.value

        await self.retry_queue.enqueue(recipient, body, message_type, error=last_error)

        logger.error(f"Failed to send {message_type} to {masked} after {len(tried)} attempts: {last_error}")
        await self.event_bus.publish(
            EventType.SMS_ERROR,
            {
                "type": message_type,
                "masked_recipient": masked,
                "error": last_error,
                "code": last_code,
            },
        )
        return SendResult(
            success=False,
            provider=tried[-1] if tried else None,
            status=DeliveryStatus.FAILED,
            message_type=message_type,
            error=last_error,
            code=last_code,
        )
