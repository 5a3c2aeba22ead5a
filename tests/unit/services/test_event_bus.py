import pytest

from smsgateway.services.event_bus.bus import EventBus
from smsgateway.services.event_bus.events import EventType


@pytest.mark.asyncio
async def test_sync_and_async_subscribers_in_order():
    bus = EventBus()
    received = []

    async def async_callback(data):
        received.append(("async", data["provider"]))

    await bus.subscribe(EventType.SMS_SENT, lambda data: received.append(("sync", data["provider"])), "first")
    await bus.subscribe(EventType.SMS_SENT, async_callback, "second")

    assert await bus.publish(EventType.SMS_SENT, {"provider": "TWILIO"})
    assert received == [("sync", "TWILIO"), ("async", "TWILIO")]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_others():
    bus = EventBus()
    received = []

    def broken(data):
        raise ValueError("nope")

    await bus.subscribe("sms.error", broken, "broken")
    await bus.subscribe("sms.error", received.append, "recorder")

    assert not await bus.publish("sms.error", {"code": "PROVIDER_ERROR"})
    assert len(received) == 1
    assert bus.get_failed_deliveries("broken")["broken"][0]["error"] == "nope"


@pytest.mark.asyncio
async def test_publish_does_not_mutate_payload():
    bus = EventBus()
    payload = {"removed": 1}
    await bus.publish(EventType.CACHE_CLEANED, payload)

    assert payload == {"removed": 1}
    event = bus.get_event_history(1)[0]
    assert event["event_type"] == "cache.cleaned"
    assert event["data"]["event_id"]


@pytest.mark.asyncio
async def test_resubscribe_replaces_and_unsubscribe():
    bus = EventBus()
    await bus.subscribe(EventType.SERVICE_READY, lambda data: None, "watcher")
    await bus.subscribe(EventType.SERVICE_READY, lambda data: None, "watcher")
    assert bus.get_subscriber_count(EventType.SERVICE_READY) == 1

    assert await bus.unsubscribe(EventType.SERVICE_READY, "watcher")
    assert not await bus.unsubscribe(EventType.SERVICE_READY, "watcher")
    assert bus.get_subscriber_count() == 0


@pytest.mark.asyncio
async def test_history_is_bounded():
    bus = EventBus(max_history=3)
    for i in range(5):
        await bus.publish(EventType.SMS_SENT, {"n": i})

    assert [event["data"]["n"] for event in bus.get_event_history(10)] == [2, 3, 4]
