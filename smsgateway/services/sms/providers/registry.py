"""
Provider configuration and adapter wiring.

The registry validates configuration when it is built and refuses to
construct when an enabled provider lacks credentials.
"""
import logging
import random
from typing import Dict, List, Optional

import httpx

from smsgateway.core.config import Settings, settings
from smsgateway.core.exceptions import ConfigurationError
from smsgateway.schemas.sms import ProviderConfig, ProviderName
from smsgateway.services.sms.providers.base import SMSProvider
from smsgateway.services.sms.providers.bulk import BulkSMSProvider
from smsgateway.services.sms.providers.orange import OrangeSMSProvider
from smsgateway.services.sms.providers.simulation import SimulationProvider
from smsgateway.services.sms.providers.twilio import TwilioProvider

logger = logging.getLogger("smsgateway.providers")

# Real gateways, in tie-break order
REAL_PROVIDERS = [ProviderName.TWILIO, ProviderName.ORANGE_SMS, ProviderName.BULK_SMS]

REQUIRED_CREDENTIALS = {
    ProviderName.TWILIO: ["account_sid", "auth_token", "phone_number"],
    ProviderName.ORANGE_SMS: ["api_url", "api_key"],
    ProviderName.BULK_SMS: ["api_url", "username", "password"],
}

ADAPTERS = {
    ProviderName.TWILIO: TwilioProvider,
    ProviderName.ORANGE_SMS: OrangeSMSProvider,
    ProviderName.BULK_SMS: BulkSMSProvider,
}


def provider_configs_from_settings(config: Settings = settings) -> List[ProviderConfig]:
    """Build one ProviderConfig per gateway from settings."""
    return [
        ProviderConfig(
            name=ProviderName.TWILIO,
            enabled=config.TWILIO_ENABLED,
            credentials={
                "account_sid": config.TWILIO_ACCOUNT_SID,
                "auth_token": config.TWILIO_AUTH_TOKEN,
                "phone_number": config.TWILIO_PHONE_NUMBER,
                "api_url": config.TWILIO_API_URL,
            },
            timeout=config.TWILIO_TIMEOUT,
            sender=config.TWILIO_PHONE_NUMBER,
            cost_per_segment=config.SMS_COST_TWILIO,
        ),
        ProviderConfig(
            name=ProviderName.ORANGE_SMS,
            enabled=config.ORANGE_SMS_ENABLED,
            credentials={
                "api_url": config.ORANGE_SMS_API_URL,
                "api_key": config.ORANGE_SMS_API_KEY,
            },
            timeout=config.ORANGE_SMS_TIMEOUT,
            sender=config.ORANGE_SMS_SENDER,
            cost_per_segment=config.SMS_COST_ORANGE_SMS,
        ),
        ProviderConfig(
            name=ProviderName.BULK_SMS,
            enabled=config.BULK_SMS_ENABLED,
            credentials={
                "api_url": config.BULK_SMS_API_URL,
                "username": config.BULK_SMS_USERNAME,
                "password": config.BULK_SMS_PASSWORD,
            },
            timeout=config.BULK_SMS_TIMEOUT,
            sender=config.BULK_SMS_SENDER,
            cost_per_segment=config.SMS_COST_BULK_SMS,
        ),
    ]


def missing_credentials(config: ProviderConfig) -> List[str]:
    return [key for key in REQUIRED_CREDENTIALS.get(config.name, []) if not config.credentials.get(key)]


def validate_configuration(configs: List[ProviderConfig], default_provider: str) -> List[str]:
    """
    Check provider configuration.

    Returns:
        List[str]: Human readable problems, empty when valid
    """
    errors = []
    by_name = {c.name: c for c in configs}

    try:
        default = ProviderName(default_provider.upper())
    except ValueError:
        errors.append(f"Unknown default SMS provider: {default_provider}")
        default = None

    enabled = [c for c in configs if c.enabled]
    if not enabled and default != ProviderName.SIMULATION:
        errors.append("No SMS provider enabled and simulation mode disabled")

    for config in enabled:
        missing = missing_credentials(config)
        if missing:
            errors.append(f"Incomplete {config.name.value} configuration (missing {', '.join(missing)})")

    if default in by_name and not by_name[default].enabled:
        errors.append(f"Default SMS provider {default.value} is not enabled")

    return errors


class ProviderRegistry:
    """
    Holds provider configuration and the adapter instance of every usable
    provider.
    """

    def __init__(
        self,
        configs: List[ProviderConfig],
        default_provider: str = ProviderName.SIMULATION.value,
        include_simulation: bool = True,
        simulation_config: Optional[Dict] = None,
        transports: Optional[Dict[ProviderName, httpx.AsyncBaseTransport]] = None,
    ):
        errors = validate_configuration(configs, default_provider)
        if errors:
            for error in errors:
                logger.error(f"SMS configuration error: {error}")
            raise ConfigurationError(
                message=f"SMS configuration errors: {', '.join(errors)}",
                errors=errors,
            )

        self.configs: Dict[ProviderName, ProviderConfig] = {c.name: c for c in configs}
        self.default_provider = ProviderName(default_provider.upper())
        transports = transports or {}

        self._adapters: Dict[ProviderName, SMSProvider] = {}
        for config in configs:
            if config.enabled:
                adapter_cls = ADAPTERS[config.name]
                self._adapters[config.name] = adapter_cls(config, transport=transports.get(config.name))

        if include_simulation or self.default_provider == ProviderName.SIMULATION:
            simulation_config = dict(simulation_config or {})
            sim = ProviderConfig(
                name=ProviderName.SIMULATION,
                enabled=True,
                cost_per_segment=simulation_config.pop("cost_per_segment", 0),
            )
            self._adapters[ProviderName.SIMULATION] = SimulationProvider(sim, **simulation_config)
            self.configs[ProviderName.SIMULATION] = sim

        logger.info(
            f"SMS providers ready: {', '.join(p.value for p in self._adapters)} "
            f"(default: {self.default_provider.value})"
        )

    @classmethod
    def from_settings(
        cls,
        config: Settings = settings,
        transports: Optional[Dict[ProviderName, httpx.AsyncBaseTransport]] = None,
        rng: Optional[random.Random] = None,
    ) -> "ProviderRegistry":
        return cls(
            provider_configs_from_settings(config),
            default_provider=config.DEFAULT_SMS_PROVIDER,
            include_simulation=not config.is_production,
            simulation_config={
                "success_rate": config.SMS_SIMULATION_SUCCESS_RATE,
                "min_delay": config.SMS_SIMULATION_MIN_DELAY,
                "max_delay": config.SMS_SIMULATION_MAX_DELAY,
                "cost_per_segment": config.SMS_COST_SIMULATION,
                "rng": rng,
            },
            transports=transports,
        )

    def get(self, name) -> Optional[SMSProvider]:
        try:
            return self._adapters.get(ProviderName(str(getattr(name, "value", name)).upper()))
        except ValueError:
            return None

    def is_configured(self, name: ProviderName) -> bool:
        config = self.configs.get(name)
        if config is None:
            return False
        return not missing_credentials(config)

    def is_available(self, name: ProviderName) -> bool:
        return name in self._adapters and self.is_configured(name)

    def available_providers(self) -> List[ProviderName]:
        """Usable real gateways, in tie-break order."""
        return [name for name in REAL_PROVIDERS if self.is_available(name)]

    def status(self) -> Dict[str, Dict[str, bool]]:
        return {
            name.value: {
                "enabled": config.enabled,
                "configured": self.is_configured(name),
            }
            for name, config in self.configs.items()
        }

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
