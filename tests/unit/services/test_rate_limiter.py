import pytest

from smsgateway.services.rate_limiter import HOUR, MINUTE, RateLimiter

from conftest import FakeClock, make_settings

RECIPIENT = "+2250712345678"


@pytest.mark.asyncio
async def test_minute_limit_resets_after_window():
    clock = FakeClock()
    limiter = RateLimiter(minute_limit=2, clock=clock)
    await limiter.record(RECIPIENT, "GENERAL")
    await limiter.record(RECIPIENT, "GENERAL")

    assert not await limiter.admit(RECIPIENT, "GENERAL")
    clock.advance(MINUTE)
    assert await limiter.admit(RECIPIENT, "GENERAL")


@pytest.mark.asyncio
async def test_hour_limit():
    clock = FakeClock()
    limiter = RateLimiter(minute_limit=100, hour_limit=3, clock=clock)
    for _ in range(3):
        await limiter.record(RECIPIENT, "GENERAL")
        clock.advance(10 * MINUTE)

    assert not await limiter.admit(RECIPIENT, "GENERAL")
    clock.advance(HOUR)
    assert await limiter.admit(RECIPIENT, "GENERAL")


@pytest.mark.asyncio
async def test_keys_are_per_recipient_and_type():
    limiter = RateLimiter(minute_limit=1, clock=FakeClock())
    await limiter.record(RECIPIENT, "GENERAL")

    assert not await limiter.admit(RECIPIENT, "GENERAL")
    assert await limiter.admit(RECIPIENT, "OTP")
    assert await limiter.admit("+2250512345678", "GENERAL")


@pytest.mark.asyncio
async def test_admit_does_not_record():
    limiter = RateLimiter(minute_limit=1, clock=FakeClock())
    for _ in range(5):
        assert await limiter.admit(RECIPIENT, "GENERAL")


@pytest.mark.asyncio
async def test_limit_status():
    limiter = RateLimiter(clock=FakeClock())
    await limiter.record(RECIPIENT, "OTP")

    status = await limiter.get_limit_status(RECIPIENT, "OTP")
    assert status["minute"] == {"used": 1, "limit": 10, "remaining": 9}
    assert status["day"]["remaining"] == 19

    general = await limiter.get_limit_status(RECIPIENT, "GENERAL")
    assert "day" not in general


@pytest.mark.asyncio
async def test_clear_and_size():
    limiter = RateLimiter(clock=FakeClock())
    await limiter.record(RECIPIENT, "OTP")
    await limiter.record(RECIPIENT, "GENERAL")
    assert limiter.size == 2

    await limiter.clear()
    assert limiter.size == 0


def test_from_settings():
    limiter = RateLimiter.from_settings(make_settings(SMS_RATE_LIMIT_MINUTE=3, SMS_RATE_LIMIT_OTP_DAY=5))
    assert limiter.limits() == {"per_minute": 3, "per_hour": 100, "otp_per_day": 5}
