"""
Tests for the consent event bus and webhook notifier.
"""
import json

import httpx
import pytest

from consent_backend.app.core.constants import PolicyType
from consent_backend.app.services.notifications import (
    ConsentChanged,
    ConsentEventBus,
    PolicyVersionPublished,
    WebhookNotifier,
    event_payload,
)
from consent_backend.tests.conftest import TEST_USER_ID


WEBHOOK_URL = "https://hooks.example.com/consents"


def _consent_event(accepted: bool = True) -> ConsentChanged:
    return ConsentChanged(
        user_id=TEST_USER_ID,
        policy_type=PolicyType.PRIVACY_POLICY,
        accepted=accepted,
        version="1.0" if accepted else None,
    )


# ============================================
# EVENT BUS
# ============================================

@pytest.mark.asyncio
async def test_publish_reaches_all_subscribers():
    bus = ConsentEventBus()
    first, second = [], []

    async def on_first(event):
        first.append(event)

    async def on_second(event):
        second.append(event)

    bus.subscribe(on_first)
    bus.subscribe(on_second)

    event = _consent_event()
    delivered = await bus.publish(event)

    assert delivered == 2
    assert first == [event]
    assert second == [event]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    bus = ConsentEventBus()
    received = []

    async def on_event(event):
        received.append(event)

    unsubscribe = bus.subscribe(on_event)
    unsubscribe()
    # Second call is a no-op
    unsubscribe()

    assert await bus.publish(_consent_event()) == 0
    assert received == []
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_failing_subscriber_skipped():
    """Test one broken subscriber does not prevent delivery to the others."""
    bus = ConsentEventBus()
    received = []

    async def broken(event):
        raise RuntimeError("boom")

    async def on_event(event):
        received.append(event)

    bus.subscribe(broken)
    bus.subscribe(on_event)

    assert await bus.publish(_consent_event()) == 1
    assert len(received) == 1


@pytest.mark.asyncio
async def test_subscriber_may_unsubscribe_during_publish():
    bus = ConsentEventBus()
    calls = []

    async def once(event):
        calls.append(event)
        unsubscribe()

    unsubscribe = bus.subscribe(once)

    await bus.publish(_consent_event())
    await bus.publish(_consent_event())
    assert len(calls) == 1


# ============================================
# WEBHOOK
# ============================================

@pytest.mark.asyncio
async def test_webhook_posts_event_json():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = WebhookNotifier(WEBHOOK_URL, client=client)
        assert await notifier.send(_consent_event()) is True

    assert len(captured) == 1
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == WEBHOOK_URL
    body = json.loads(request.content)
    assert body["event"] == "consent.changed"
    assert body["user_id"] == TEST_USER_ID
    assert body["policy_type"] == "privacy_policy"
    assert body["accepted"] is True
    assert body["version"] == "1.0"


@pytest.mark.asyncio
async def test_webhook_rejected_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "down"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = WebhookNotifier(WEBHOOK_URL, client=client)
        assert await notifier.send(_consent_event()) is False


@pytest.mark.asyncio
async def test_webhook_connection_error_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = WebhookNotifier(WEBHOOK_URL, client=client)
        assert await notifier.send(_consent_event()) is False


@pytest.mark.asyncio
async def test_webhook_as_bus_subscriber():
    """Test the notifier can be subscribed directly on the bus."""
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return httpx.Response(200)

    bus = ConsentEventBus()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        bus.subscribe(WebhookNotifier(WEBHOOK_URL, client=client))
        await bus.publish(PolicyVersionPublished(policy_type=PolicyType.TERMS_OF_SERVICE, version="2.0"))

    assert captured[0]["event"] == "policy.published"
    assert captured[0]["policy_type"] == "terms_of_service"
    assert captured[0]["version"] == "2.0"


def test_event_payload_serializable():
    payload = event_payload(_consent_event(accepted=False))
    # Must survive json round trip without custom encoders
    assert json.loads(json.dumps(payload))["accepted"] is False
    assert payload["version"] is None
    assert "occurred_at" in payload
