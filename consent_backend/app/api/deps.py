from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from consent_backend.app.core.database import async_session
from consent_backend.app.services.consents import ConsentTracker
from consent_backend.app.services.notifications import ConsentEventBus, get_event_bus
from consent_backend.app.services.policies import PolicyService


# Сессия базы данных на каждый запрос
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


async def get_events() -> ConsentEventBus:
    return get_event_bus()


async def get_policy_service(
    session: AsyncSession = Depends(get_session),
    events: ConsentEventBus = Depends(get_events),
) -> PolicyService:
    return PolicyService(session, events=events)


async def get_consent_tracker(
    session: AsyncSession = Depends(get_session),
    events: ConsentEventBus = Depends(get_events),
) -> ConsentTracker:
    return ConsentTracker(session, events=events)
