"""
Provider selection for outbound SMS.
"""
import logging
from typing import Iterable, Optional

from smsgateway.core.config import settings
from smsgateway.schemas.sms import OTP_MESSAGE_TYPE, ProviderName
from smsgateway.services.metrics.collector import StatsCollector
from smsgateway.services.sms.providers.registry import ProviderRegistry
from smsgateway.utils.phone import Operator, detect_operator, mask_phone

logger = logging.getLogger("smsgateway.selector")

# Gateway operated by the recipient's carrier
OPERATOR_AFFINITY = {
    Operator.ORANGE: ProviderName.ORANGE_SMS,
}


class ProviderSelector:
    """
    Chooses the next provider for a send attempt.

    Preference order among untried real providers: operator affinity, the
    OTP provider for OTP messages, then the best observed success rate.
    When every real provider has been tried the default provider is used
    if it has not been tried either.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        stats: StatsCollector,
        otp_provider: str = settings.SMS_OTP_PROVIDER,
    ):
        self.registry = registry
        self.stats = stats
        try:
            self.otp_provider: Optional[ProviderName] = ProviderName(otp_provider.upper())
        except ValueError:
            logger.warning(f"Unknown OTP provider {otp_provider}, ignoring")
            self.otp_provider = None

    def choose(
        self,
        recipient: str,
        message_type: str,
        already_tried: Iterable[ProviderName] = (),
    ) -> Optional[ProviderName]:
        """
        Pick a provider for the next attempt.

        Args:
            recipient: Normalized recipient number
            message_type: Message type
            already_tried: Providers already attempted for this message

        Returns:
            Optional[ProviderName]: Chosen provider, None if none is left
        """
        tried = set(already_tried)
        candidates = [p for p in self.registry.available_providers() if p not in tried]

        if candidates:
            preferred = OPERATOR_AFFINITY.get(detect_operator(recipient))
            if preferred in candidates:
                logger.debug(f"Operator affinity: {preferred.value} for {mask_phone(recipient)}")
                return preferred

            if message_type == OTP_MESSAGE_TYPE and self.otp_provider in candidates:
                return self.otp_provider

            # max() keeps the first of equal rates, so ties follow registry order
            return max(candidates, key=lambda p: self.stats.success_rate(p.value))

        default = self.registry.default_provider
        if default not in tried and self.registry.get(default) is not None:
            return default

        return None
