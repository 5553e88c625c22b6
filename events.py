"""
Domain events exchanged between order core components.

Handlers run inside the publisher's unit of work: they receive the open session
so their writes commit or roll back together with the publisher's.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Type

from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class DeliveryMilestoneRecorded:
    order_id: str
    milestone_status: str
    recorded_at: datetime


Handler = Callable[[object, AsyncSession], Awaitable[None]]


class EventBus:
    def __init__(self):
        self._handlers: Dict[Type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, event: object, session: AsyncSession) -> None:
        for handler in self._handlers.get(type(event), []):
            await handler(event, session)
