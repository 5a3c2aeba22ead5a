"""
Orange SMS API adapter.
"""
from smsgateway.schemas.sms import (
    DeliveryStatus,
    DeliveryStatusResult,
    ProviderName,
    SendAttemptResult,
)
from smsgateway.services.sms.providers.base import SMSProvider, logger, map_status
from smsgateway.utils.phone import mask_phone


class OrangeSMSProvider(SMSProvider):
    """Sends messages through the Orange SMS REST API with a bearer key."""

    name = ProviderName.ORANGE_SMS
    message_id_prefix = "ORANGE"

    @property
    def _api_url(self) -> str:
        return self.config.credentials["api_url"].rstrip("/")

    @property
    def _headers(self):
        return {"Authorization": f"Bearer {self.config.credentials['api_key']}"}

    async def _send(self, recipient: str, body: str, message_type: str) -> SendAttemptResult:
        response = await self.client.post(
            self._api_url,
            json={
                "sender": self.config.sender,
                "recipient": recipient,
                "message": body,
                "type": message_type,
            },
            headers=self._headers,
        )
        self._raise_for_status(response)
        payload = self._json(response)

        message_id = payload.get("messageId") or self.fallback_message_id()
        logger.info(f"SMS sent via Orange to {mask_phone(recipient)} (id={message_id})")

        return SendAttemptResult(
            success=True,
            provider=self.name,
            message_id=message_id,
            status=map_status(payload.get("status"), default=DeliveryStatus.SENT),
            cost=self.calculate_cost(body),
        )

    async def _check_status(self, message_id: str) -> DeliveryStatusResult:
        response = await self.client.get(f"{self._api_url}/status/{message_id}", headers=self._headers)
        self._raise_for_status(response)
        payload = self._json(response)

        return DeliveryStatusResult(
            message_id=message_id,
            provider=self.name,
            status=map_status(payload.get("status")),
            raw_status=payload.get("status"),
        )
