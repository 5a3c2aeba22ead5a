import pytest

from smsgateway.core.exceptions import ConfigurationError
from smsgateway.schemas.sms import ProviderName
from smsgateway.services.sms.providers.registry import (
    ProviderRegistry,
    provider_configs_from_settings,
    validate_configuration,
)
from smsgateway.services.sms.providers.twilio import TwilioProvider

from conftest import all_providers_settings, make_settings


def test_simulation_default_is_valid():
    registry = ProviderRegistry.from_settings(make_settings())

    assert registry.default_provider == ProviderName.SIMULATION
    assert registry.available_providers() == []
    assert registry.get("simulation") is not None


def test_all_providers_registered():
    registry = ProviderRegistry.from_settings(all_providers_settings())

    assert registry.available_providers() == [ProviderName.TWILIO, ProviderName.ORANGE_SMS, ProviderName.BULK_SMS]
    assert isinstance(registry.get(ProviderName.TWILIO), TwilioProvider)
    assert registry.status()["ORANGE_SMS"] == {"enabled": True, "configured": True}


def test_missing_credentials_are_all_reported():
    config = make_settings(TWILIO_ENABLED=True, ORANGE_SMS_ENABLED=True, ORANGE_SMS_API_URL="https://orange.test")

    with pytest.raises(ConfigurationError) as exc_info:
        ProviderRegistry.from_settings(config)

    errors = exc_info.value.errors
    assert len(errors) == 2
    assert "account_sid" in errors[0]
    assert "api_key" in errors[1]
    assert exc_info.value.code == "CONFIGURATION_ERROR"


def test_no_provider_and_no_simulation():
    errors = validate_configuration(provider_configs_from_settings(make_settings()), "TWILIO")
    assert "No SMS provider enabled and simulation mode disabled" in errors


def test_unknown_default_provider():
    errors = validate_configuration(provider_configs_from_settings(make_settings()), "PIGEON")
    assert errors[0] == "Unknown default SMS provider: PIGEON"


def test_disabled_default_provider():
    config = all_providers_settings(BULK_SMS_ENABLED=False)
    errors = validate_configuration(provider_configs_from_settings(config), "BULK_SMS")
    assert errors == ["Default SMS provider BULK_SMS is not enabled"]


def test_simulation_not_registered_in_production():
    registry = ProviderRegistry.from_settings(
        all_providers_settings(ENVIRONMENT="production", DEFAULT_SMS_PROVIDER="TWILIO")
    )
    assert registry.get(ProviderName.SIMULATION) is None


def test_unknown_name_lookup():
    registry = ProviderRegistry.from_settings(make_settings())
    assert registry.get("PIGEON") is None
    assert not registry.is_available(ProviderName.TWILIO)
