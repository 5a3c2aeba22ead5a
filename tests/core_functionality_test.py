import pytest
import pytest_asyncio

from smsgateway.schemas.sms import NotificationKind, ProviderName
from smsgateway.services.rate_limiter import DAY, RateLimiter
from smsgateway.services.sms import templates
from smsgateway.services.sms.service import create_sms_service
from smsgateway.utils.phone import normalize_phone

from conftest import all_providers_settings, gateway_transports, make_settings


@pytest_asyncio.fixture
async def failing_service(event_bus, clock):
    service = await create_sms_service(make_settings(SMS_SIMULATION_SUCCESS_RATE=0.0), event_bus, clock=clock)
    yield service
    await service.registry.aclose()


@pytest.mark.asyncio
async def test_send_otp_with_all_providers_healthy(live_service):
    result = await live_service.send_otp("0712345678", "482913", "fr")

    assert result.success
    assert result.provider
    assert result.cost > 0
    assert result.message_type == "OTP"


@pytest.mark.asyncio
async def test_eleventh_message_in_a_minute_is_rate_limited(sms_service):
    results = [await sms_service.send_raw("0501020304", f"Message {i}") for i in range(11)]

    assert all(r.success for r in results[:10])
    assert not results[10].success
    assert results[10].code == "RATE_LIMIT_EXCEEDED"
    assert sms_service.get_statistics().total_sent == 10


@pytest.mark.asyncio
async def test_total_failure_is_queued_once(failing_service):
    result = await failing_service.send_raw("0712345678", "Hello")

    assert not result.success
    assert result.code == "SIMULATION_ERROR"
    stats = failing_service.get_statistics()
    assert stats.total_failed == 1
    assert stats.by_provider["SIMULATION"].failed == 1

    items = failing_service.retry_queue.items()
    assert len(items) == 1
    assert items[0].attempts == 0
    assert items[0].recipient == "+2250712345678"


@pytest.mark.asyncio
async def test_total_failure_of_real_gateways(event_bus, clock):
    calls = []
    service = await create_sms_service(
        all_providers_settings(),
        event_bus,
        transports=gateway_transports(status_code=500, calls=calls),
        clock=clock,
    )
    try:
        result = await service.send_raw("0712345678", "Hello")

        assert not result.success
        assert result.code == "PROVIDER_ERROR"
        assert [provider for provider, _ in calls] == [
            ProviderName.ORANGE_SMS, ProviderName.TWILIO, ProviderName.BULK_SMS,
        ]
        stats = service.get_statistics()
        for name in ("ORANGE_SMS", "TWILIO", "BULK_SMS"):
            assert stats.by_provider[name].failed == 1
        assert service.retry_queue.size == 1
    finally:
        await service.registry.aclose()


@pytest.mark.asyncio
async def test_retry_queue_item_succeeds_on_second_attempt(sms_service, clock):
    simulation = sms_service.registry.get(ProviderName.SIMULATION)
    item = await sms_service.retry_queue.enqueue("+2250712345678", "Hello", "GENERAL", error="down")

    clock.advance(300)
    simulation.success_rate = 0.0
    first = await sms_service.retry_engine.process()
    assert first["failed"] == 1
    assert sms_service.retry_queue.get(item.id).attempts == 1

    clock.advance(600)
    simulation.success_rate = 1.0
    second = await sms_service.retry_engine.process()
    assert second["succeeded"] == 1

    assert sms_service.retry_queue.size == 0
    stats = sms_service.get_statistics().by_provider["SIMULATION"]
    assert stats.succeeded == 1
    assert stats.failed == 1


@pytest.mark.asyncio
async def test_missing_template_field_contacts_no_provider(live_service):
    result = await live_service.send_payment_notification(
        "0712345678",
        NotificationKind.CONFIRMATION_PAIEMENT,
        {"montant": 5000},
    )

    assert not result.success
    assert result.code == "MISSING_TEMPLATE_FIELD"
    assert live_service.gateway_calls == []
    assert live_service.get_statistics().total_sent == 0
    assert live_service.retry_queue.size == 0


@pytest.mark.asyncio
async def test_daily_otp_ceiling(clock):
    limiter = RateLimiter(clock=clock)
    for _ in range(20):
        await limiter.record("+2250712345678", "OTP")
        clock.advance(4000)

    assert not await limiter.admit("+2250712345678", "OTP")
    # Other message types are not subject to the daily ceiling
    assert await limiter.admit("+2250712345678", "GENERAL")

    clock.advance(DAY - 20 * 4000 + 1)
    assert await limiter.admit("+2250712345678", "OTP")


@pytest.mark.asyncio
async def test_pruning_drops_entries_older_than_a_day(clock):
    limiter = RateLimiter(clock=clock)
    await limiter.record("+2250712345678", "GENERAL")
    clock.advance(DAY / 2)
    await limiter.record("+2250512345678", "GENERAL")
    clock.advance(DAY / 2)

    removed, remaining = await limiter.prune()

    assert (removed, remaining) == (1, 1)
    for timestamps in limiter._sends.values():
        assert all(clock() - ts < DAY for ts in timestamps)


@pytest.mark.asyncio
async def test_queued_item_never_exceeds_attempt_ceiling(failing_service, clock):
    await failing_service.send_raw("0712345678", "Hello")

    for _ in range(5):
        clock.advance(3600)
        await failing_service.retry_engine.process()
        for item in failing_service.retry_queue.items():
            assert item.attempts < 3

    assert failing_service.retry_queue.size == 0


def test_normalization_is_idempotent():
    for number in ["+2250712345678", "2250712345678", "0712345678", "712345678", "07 12 34 56 78"]:
        normalized = normalize_phone(number)
        assert normalized == "+2250712345678"
        assert normalize_phone(normalized) == normalized


def test_template_rendering_is_deterministic_and_sanitized():
    data = {"montant": 1500, "reference": "<b>TX-42</b>"}
    first = templates.render(NotificationKind.CONFIRMATION_PAIEMENT, "fr", data)
    second = templates.render(NotificationKind.CONFIRMATION_PAIEMENT, "fr", data)

    assert first == second
    assert "<" not in first and ">" not in first
    assert "TX-42" in first
