"""
In-process gateway simulation for development and tests.
"""
import asyncio
import random
import secrets
from typing import Optional

from smsgateway.core.exceptions import ErrorCode, ProviderError
from smsgateway.schemas.sms import (
    DeliveryStatus,
    DeliveryStatusResult,
    ProviderConfig,
    ProviderName,
    SendAttemptResult,
)
from smsgateway.services.sms.providers.base import SMSProvider, logger
from smsgateway.utils.phone import mask_phone


class SimulationProvider(SMSProvider):
    """
    Pretends to send messages. Never performs network I/O.

    Succeeds with probability ``success_rate`` after a random delay.
    """

    name = ProviderName.SIMULATION
    message_id_prefix = "SIM"

    def __init__(
        self,
        config: ProviderConfig,
        success_rate: float = 0.95,
        min_delay: float = 0.5,
        max_delay: float = 1.5,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(config)
        self.success_rate = success_rate
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._rng = rng or random.Random()

    async def _send(self, recipient: str, body: str, message_type: str) -> SendAttemptResult:
        preview = body if len(body) <= 50 else body[:47] + "..."
        logger.info(f"[SIMULATION] {message_type} to {mask_phone(recipient)}: {preview}")

        if self.max_delay > 0:
            await asyncio.sleep(self._rng.uniform(self.min_delay, self.max_delay))

        if self._rng.random() >= self.success_rate:
            raise ProviderError(
                message="Simulated SMS failure",
                code=ErrorCode.SIMULATION_ERROR,
                provider=self.name.value,
            )

        return SendAttemptResult(
            success=True,
            provider=self.name,
            message_id=f"SIM_{secrets.token_hex(8)}",
            status=DeliveryStatus.DELIVERED,
            cost=self.calculate_cost(body),
        )

    async def _check_status(self, message_id: str) -> DeliveryStatusResult:
        return DeliveryStatusResult(
            message_id=message_id,
            provider=self.name,
            status=DeliveryStatus.DELIVERED,
            raw_status="DELIVERED",
        )
