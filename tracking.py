"""
Tracking timeline: append-only milestone log per order.
A "delivered" milestone is announced on the event bus inside the same
transaction as the append, so the order completion commits with it.
"""
import logging
import time
from datetime import datetime, timezone
from typing import List

from sqlalchemy import func, select

from database import Database, Order, TrackingEntry
from errors import NotFound
from events import DeliveryMilestoneRecorded, EventBus
from schemas import TrackingEntryInput, TrackingEntryOut

DELIVERED = "delivered"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_delivery_milestone(milestone_status: str) -> bool:
    return milestone_status.strip().lower() == DELIVERED


class TrackingTimeline:
    def __init__(self, db: Database, bus: EventBus):
        self._db = db
        self._bus = bus

    async def append(self, order_id: str, entry: TrackingEntryInput) -> TrackingEntryOut:
        start_time = time.time()
        async with self._db.transaction() as session:
            if await session.scalar(select(Order.id).where(Order.id == order_id)) is None:
                raise NotFound("order", order_id)

            # timestamps never go backwards within one timeline
            now = datetime.now(timezone.utc)
            last = await session.scalar(
                select(func.max(TrackingEntry.timestamp)).where(TrackingEntry.order_id == order_id)
            )
            if last is not None and _as_utc(last) > now:
                now = _as_utc(last)

            row = TrackingEntry(
                order_id=order_id,
                step=entry.step,
                location=entry.location,
                note=entry.note,
                milestone_status=entry.milestone_status,
                timestamp=now,
            )
            session.add(row)
            await session.flush()

            if is_delivery_milestone(entry.milestone_status):
                await self._bus.publish(
                    DeliveryMilestoneRecorded(order_id=order_id, milestone_status=entry.milestone_status,
                                              recorded_at=now),
                    session,
                )
            result = TrackingEntryOut.model_validate(row)

        elapsed = time.time() - start_time
        logging.info(f"Tracking step '{entry.step}' recorded for order {order_id} (took {elapsed:.3f}s)")
        return result

    async def get(self, order_id: str) -> List[TrackingEntryOut]:
        """Return the timeline in insertion order; empty if nothing was appended yet."""
        async with self._db.session() as session:
            result = await session.scalars(
                select(TrackingEntry)
                .where(TrackingEntry.order_id == order_id)
                .order_by(TrackingEntry.timestamp, TrackingEntry.id)
            )
            return [TrackingEntryOut.model_validate(e) for e in result]
