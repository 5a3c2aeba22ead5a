"""
Bulk SMS gateway adapter.
"""
from smsgateway.schemas.sms import (
    DeliveryStatus,
    DeliveryStatusResult,
    ProviderName,
    SendAttemptResult,
)
from smsgateway.services.sms.providers.base import SMSProvider, logger, map_status
from smsgateway.utils.phone import mask_phone


class BulkSMSProvider(SMSProvider):
    """Sends messages through a Bulk SMS JSON API with basic auth."""

    name = ProviderName.BULK_SMS
    message_id_prefix = "BULK"

    @property
    def _api_url(self) -> str:
        return self.config.credentials["api_url"].rstrip("/")

    @property
    def _auth(self):
        return (self.config.credentials["username"], self.config.credentials["password"])

    async def _send(self, recipient: str, body: str, message_type: str) -> SendAttemptResult:
        request = {"to": recipient, "body": body}
        if self.config.sender:
            request["from"] = self.config.sender

        response = await self.client.post(self._api_url, json=request, auth=self._auth)
        self._raise_for_status(response)
        payload = self._json(response)

        message_id = payload.get("id") or self.fallback_message_id()
        logger.info(f"SMS sent via Bulk SMS to {mask_phone(recipient)} (id={message_id})")

        return SendAttemptResult(
            success=True,
            provider=self.name,
            message_id=message_id,
            status=map_status(payload.get("status"), default=DeliveryStatus.SENT),
            cost=self.calculate_cost(body),
        )

    async def _check_status(self, message_id: str) -> DeliveryStatusResult:
        response = await self.client.get(f"{self._api_url}/status/{message_id}", auth=self._auth)
        self._raise_for_status(response)
        payload = self._json(response)

        return DeliveryStatusResult(
            message_id=message_id,
            provider=self.name,
            status=map_status(payload.get("status")),
            raw_status=payload.get("status"),
        )
