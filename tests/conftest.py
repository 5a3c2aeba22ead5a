import random
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from smsgateway.core.config import Settings
from smsgateway.schemas.sms import ProviderName
from smsgateway.services.event_bus.bus import EventBus
from smsgateway.services.event_bus.events import EventType
from smsgateway.services.sms.service import create_sms_service

ORANGE_URL = "https://orange.test/sms"
BULK_URL = "https://bulk.test/messages"
TWILIO_URL = "https://twilio.test/2010-04-01"


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    """Settings without delays, ignoring any local .env file."""
    values = {
        "SMS_RETRY_BACKOFF_SECONDS": 0,
        "SMS_SIMULATION_SUCCESS_RATE": 1.0,
        "SMS_SIMULATION_MIN_DELAY": 0,
        "SMS_SIMULATION_MAX_DELAY": 0,
        "SMS_SHUTDOWN_DRAIN_TIMEOUT": 5.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def all_providers_settings(**overrides) -> Settings:
    values = {
        "TWILIO_ENABLED": True,
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "secret",
        "TWILIO_PHONE_NUMBER": "+15005550006",
        "TWILIO_API_URL": TWILIO_URL,
        "ORANGE_SMS_ENABLED": True,
        "ORANGE_SMS_API_URL": ORANGE_URL,
        "ORANGE_SMS_API_KEY": "orange-key",
        "BULK_SMS_ENABLED": True,
        "BULK_SMS_API_URL": BULK_URL,
        "BULK_SMS_USERNAME": "bulk-user",
        "BULK_SMS_PASSWORD": "bulk-pass",
    }
    values.update(overrides)
    return make_settings(**values)


def gateway_transports(status_code: int = 200, calls: list = None):
    """MockTransports answering like healthy gateways; requests are appended to calls."""
    calls = calls if calls is not None else []

    def responder(provider: ProviderName, payload: dict):
        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((provider, request))
            if status_code >= 400:
                return httpx.Response(status_code, json={"message": "gateway down"})
            return httpx.Response(status_code, json=payload)
        return httpx.MockTransport(handler)

    return {
        ProviderName.TWILIO: responder(ProviderName.TWILIO, {"sid": "SM123", "status": "queued"}),
        ProviderName.ORANGE_SMS: responder(ProviderName.ORANGE_SMS, {"messageId": "OR-1", "status": "SENT"}),
        ProviderName.BULK_SMS: responder(ProviderName.BULK_SMS, {"id": "BK-1", "status": "ACCEPTED"}),
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest_asyncio.fixture()
async def recorded_events(event_bus):
    """Collects (event_type, data) for every event published on the bus."""
    events = []
    for event_type in EventType:
        await event_bus.subscribe(
            event_type,
            lambda data, name=event_type.value: events.append((name, data)),
            subscriber_id=f"recorder-{event_type.value}",
        )
    return events


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest_asyncio.fixture()
async def sms_service(test_settings, event_bus, clock):
    service = await create_sms_service(test_settings, event_bus, rng=random.Random(7), clock=clock)
    yield service
    await service.registry.aclose()


@pytest_asyncio.fixture()
async def live_service(event_bus, clock):
    """Service with every real provider enabled behind MockTransports."""
    calls = []
    service = await create_sms_service(
        all_providers_settings(),
        event_bus,
        transports=gateway_transports(calls=calls),
        rng=random.Random(7),
        clock=clock,
    )
    service.gateway_calls = calls
    yield service
    await service.registry.aclose()


@pytest_asyncio.fixture()
async def async_client(sms_service) -> AsyncGenerator[AsyncClient, None]:
    from smsgateway.main import app
    app.state.sms_service = sms_service
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://testserver", transport=transport) as client:
        yield client
    app.state.sms_service = None
