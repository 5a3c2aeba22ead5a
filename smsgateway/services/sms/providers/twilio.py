"""
Twilio REST API adapter.
"""
from typing import Any, Dict, Optional

from smsgateway.schemas.sms import (
    DeliveryStatus,
    DeliveryStatusResult,
    ProviderName,
    SendAttemptResult,
)
from smsgateway.services.sms.providers.base import SMSProvider, logger
from smsgateway.utils.phone import mask_phone

_TWILIO_STATUSES = {
    "accepted": DeliveryStatus.QUEUED,
    "scheduled": DeliveryStatus.QUEUED,
    "queued": DeliveryStatus.QUEUED,
    "sending": DeliveryStatus.QUEUED,
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "read": DeliveryStatus.DELIVERED,
    "undelivered": DeliveryStatus.UNDELIVERED,
    "failed": DeliveryStatus.FAILED,
    "canceled": DeliveryStatus.FAILED,
}


class TwilioProvider(SMSProvider):
    """Sends messages through the Twilio Messages resource."""

    name = ProviderName.TWILIO
    message_id_prefix = "TWILIO"

    @property
    def _account_sid(self) -> str:
        return self.config.credentials["account_sid"]

    @property
    def _auth(self):
        return (self._account_sid, self.config.credentials["auth_token"])

    @property
    def _messages_url(self) -> str:
        base_url = (self.config.credentials.get("api_url") or "https://api.twilio.com/2010-04-01").rstrip("/")
        return f"{base_url}/Accounts/{self._account_sid}/Messages"

    def _error_message(self, payload: Dict[str, Any]) -> Optional[str]:
        # Twilio errors look like {"code": 21211, "message": "...", "more_info": "..."}
        message = payload.get("message")
        if payload.get("code"):
            return f"{message} (Twilio code {payload['code']})"
        return message

    @staticmethod
    def _map_status(raw: Optional[str]) -> DeliveryStatus:
        return _TWILIO_STATUSES.get((raw or "").lower(), DeliveryStatus.UNKNOWN)

    async def _send(self, recipient: str, body: str, message_type: str) -> SendAttemptResult:
        response = await self.client.post(
            f"{self._messages_url}.json",
            data={
                "From": self.config.sender,
                "To": recipient,
                "Body": body,
            },
            auth=self._auth,
        )
        self._raise_for_status(response)
        payload = self._json(response)

        message_id = payload.get("sid") or self.fallback_message_id()
        logger.info(f"SMS sent via Twilio to {mask_phone(recipient)} (sid={message_id}, status={payload.get('status')})")

        return SendAttemptResult(
            success=True,
            provider=self.name,
            message_id=message_id,
            status=self._map_status(payload.get("status")) if payload.get("status") else DeliveryStatus.QUEUED,
            cost=self.calculate_cost(body),
        )

    async def _check_status(self, message_id: str) -> DeliveryStatusResult:
        response = await self.client.get(f"{self._messages_url}/{message_id}.json", auth=self._auth)
        self._raise_for_status(response)
        payload = self._json(response)

        return DeliveryStatusResult(
            message_id=message_id,
            provider=self.name,
            status=self._map_status(payload.get("status")),
            raw_status=payload.get("status"),
            error=payload.get("error_message"),
        )
