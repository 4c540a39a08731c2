# consent_backend/app/services/notifications.py
"""
Push channel for consent and policy state changes.

Observers subscribe an async callback on ConsentEventBus; services publish
after a successful write. Clients that cannot hold a subscription poll
GET /consents/me/status instead.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Union

import httpx

from consent_backend.app.core.constants import PolicyType
from consent_backend.app.core.logging import get_logger

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConsentChanged:
    user_id: str
    policy_type: PolicyType
    accepted: bool
    version: Optional[str]
    occurred_at: datetime = field(default_factory=_now)

    event_type = "consent.changed"


@dataclass(frozen=True)
class PolicyVersionPublished:
    policy_type: PolicyType
    version: str
    occurred_at: datetime = field(default_factory=_now)

    event_type = "policy.published"


ConsentEvent = Union[ConsentChanged, PolicyVersionPublished]
Subscriber = Callable[[ConsentEvent], Awaitable[None]]


def event_payload(event: ConsentEvent) -> dict:
    """JSON-serializable representation of an event."""
    data = asdict(event)
    data["policy_type"] = event.policy_type.value
    data["occurred_at"] = event.occurred_at.isoformat()
    data["event"] = event.event_type
    return data


class ConsentEventBus:
    """In-process publish/subscribe for consent events."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that removes it again."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: ConsentEvent) -> int:
        """
        Deliver an event to every subscriber.

        A failing subscriber is logged and skipped; the write that produced
        the event has already been committed.

        Returns:
            Number of subscribers that handled the event without error
        """
        delivered = 0
        for callback in list(self._subscribers):
            try:
                await callback(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Consent event subscriber failed",
                    event=event.event_type,
                    subscriber=getattr(callback, "__name__", repr(callback)),
                    error=str(e),
                )
        return delivered


class WebhookNotifier:
    """Subscriber that POSTs each event as JSON to a configured URL."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def __call__(self, event: ConsentEvent) -> None:
        await self.send(event)

    async def send(self, event: ConsentEvent) -> bool:
        """
        Send the event. Returns True if the receiver answered 2xx.
        """
        payload = event_payload(event)
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Webhook delivery failed", url=self.url, event=event.event_type, error=str(e))
            return False
        if response.status_code >= 300:
            logger.warning(
                "Webhook rejected event",
                url=self.url,
                event=event.event_type,
                status_code=response.status_code,
            )
            return False
        logger.debug("Webhook delivered", url=self.url, event=event.event_type)
        return True


_event_bus: Optional[ConsentEventBus] = None


def get_event_bus() -> ConsentEventBus:
    """Process-wide event bus (singleton)."""
    global _event_bus
    if _event_bus is None:
        _event_bus = ConsentEventBus()
    return _event_bus
