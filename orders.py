"""
Order state machine: creation, status transitions and order reads.

Every transition is a compare-and-swap UPDATE conditioned on the expected
prior status, so concurrent writers never silently overwrite each other.
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database import Database, Event, Order
from directory import MANAGER_ROLES, UserDirectory
from errors import Forbidden, InvalidTransition, NotFound
from events import DeliveryMilestoneRecorded, EventBus
from inventory import InventoryLedger
from schemas import (
    Buyer, CreateOrderInput, OrderEventOut, OrderOut, OrderStatus, PaymentMethod, PaymentStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def record_event(session: AsyncSession, order_id: str, event_type: str, payload: Dict[str, Any]) -> None:
    session.add(Event(order_id=order_id, type=event_type, payload_json=payload))


async def compare_and_set(
    session: AsyncSession,
    order_id: str,
    expected: Iterable[OrderStatus],
    target: OrderStatus,
    **values: Any,
) -> Order:
    """Move an order to target only if its status is one of expected.

    Raises NotFound for unknown ids and InvalidTransition when the status
    guard fails; in both cases nothing is written.
    """
    expected_values = [s.value for s in expected]
    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.status.in_(expected_values))
        .values(status=target.value, **values)
        .returning(Order.id)
        .execution_options(synchronize_session=False)
    )
    if (await session.execute(stmt)).first() is None:
        current = await session.scalar(select(Order.status).where(Order.id == order_id))
        if current is None:
            raise NotFound("order", order_id)
        raise InvalidTransition(order_id, current, target.value)
    return await session.get(Order, order_id, populate_existing=True)


class OrderStateMachine:
    def __init__(
        self,
        db: Database,
        directory: UserDirectory,
        ledger: InventoryLedger,
        bus: EventBus,
    ):
        self._db = db
        self._directory = directory
        self._ledger = ledger
        bus.subscribe(DeliveryMilestoneRecorded, self._on_delivery_milestone)

    async def create(self, buyer: Buyer, data: CreateOrderInput) -> OrderOut:
        """Reserve stock and persist a new pending order in one transaction."""
        start_time = time.time()
        await self._directory.require_not_suspended(buyer.email)

        order_id = uuid.uuid4().hex
        async with self._db.transaction() as session:
            product = await self._ledger.reserve(session, data.product_id, data.quantity)
            total_price = data.total_price
            if total_price is None:
                total_price = round(product.price * data.quantity, 2)

            order = Order(
                id=order_id,
                user_id=buyer.user_id,
                user_email=buyer.email,
                product_id=product.id,
                product_title=product.title,
                quantity=data.quantity,
                unit_price=product.price,
                total_price=total_price,
                first_name=data.first_name,
                last_name=data.last_name,
                contact_number=data.contact_number,
                delivery_address=data.delivery_address,
                notes=data.notes,
                status=OrderStatus.PENDING.value,
                payment_method=data.payment_method.value,
                payment_status=(
                    PaymentStatus.UNPAID.value
                    if data.payment_method == PaymentMethod.PAYFIRST
                    else PaymentStatus.COD.value
                ),
                transaction_id=None,
                ordered_at=utcnow(),
                approved_at=None,
            )
            session.add(order)
            await session.flush()
            record_event(session, order_id, "order_created", {
                "product_id": product.id,
                "quantity": data.quantity,
                "total_price": total_price,
            })
            result = OrderOut.model_validate(order)

        elapsed = time.time() - start_time
        logging.info(f"Order {order_id} created for {buyer.email} (took {elapsed:.3f}s)")
        return result

    async def approve(self, order_id: str, manager_email: str) -> OrderOut:
        start_time = time.time()
        await self._directory.require_manager(manager_email)
        async with self._db.transaction() as session:
            order = await compare_and_set(
                session, order_id, [OrderStatus.PENDING], OrderStatus.APPROVED, approved_at=utcnow()
            )
            record_event(session, order_id, "order_approved", {"by": manager_email})
            result = OrderOut.model_validate(order)
        elapsed = time.time() - start_time
        logging.info(f"Order {order_id} approved by {manager_email} (took {elapsed:.3f}s)")
        return result

    async def reject(self, order_id: str, manager_email: str) -> OrderOut:
        """Reject a pending order. Reserved stock is intentionally kept."""
        start_time = time.time()
        await self._directory.require_manager(manager_email)
        async with self._db.transaction() as session:
            order = await compare_and_set(session, order_id, [OrderStatus.PENDING], OrderStatus.REJECTED)
            record_event(session, order_id, "order_rejected", {"by": manager_email})
            result = OrderOut.model_validate(order)
        elapsed = time.time() - start_time
        logging.info(f"Order {order_id} rejected by {manager_email} (took {elapsed:.3f}s)")
        return result

    async def cancel(self, order_id: str, buyer_email: str) -> OrderOut:
        """Cancel a pending order on behalf of its buyer and restore its stock."""
        start_time = time.time()
        await self._directory.require_not_suspended(buyer_email)
        async with self._db.transaction() as session:
            owner = await session.scalar(select(Order.user_email).where(Order.id == order_id))
            if owner is None:
                raise NotFound("order", order_id)
            if owner != buyer_email:
                raise Forbidden("forbidden access")

            order = await compare_and_set(session, order_id, [OrderStatus.PENDING], OrderStatus.CANCELLED)
            await self._ledger.release(session, order.product_id, order.quantity)
            record_event(session, order_id, "order_cancelled", {
                "by": buyer_email,
                "restored_quantity": order.quantity,
            })
            result = OrderOut.model_validate(order)
        elapsed = time.time() - start_time
        logging.info(f"Order {order_id} cancelled by buyer (took {elapsed:.3f}s)")
        return result

    async def complete(self, order_id: str) -> OrderOut:
        """Finish an approved order; normally reached through a delivery milestone."""
        async with self._db.transaction() as session:
            return await self._complete(session, order_id)

    async def _complete(self, session: AsyncSession, order_id: str) -> OrderOut:
        order = await compare_and_set(session, order_id, [OrderStatus.APPROVED], OrderStatus.COMPLETED)
        record_event(session, order_id, "order_completed", {})
        logging.info(f"Order {order_id} completed")
        return OrderOut.model_validate(order)

    async def _on_delivery_milestone(self, event: DeliveryMilestoneRecorded, session: AsyncSession) -> None:
        try:
            await self._complete(session, event.order_id)
        except InvalidTransition as e:
            if e.current != OrderStatus.COMPLETED.value:
                raise
            logging.info(f"Order {event.order_id} already completed")

    async def get(self, order_id: str, actor_email: str) -> OrderOut:
        async with self._db.session() as session:
            order = await session.get(Order, order_id)
        if order is None:
            raise NotFound("order", order_id)
        if order.user_email != actor_email:
            entry = await self._directory.lookup(actor_email)
            if entry is None or entry.role not in MANAGER_ROLES:
                raise Forbidden("forbidden access")
        return OrderOut.model_validate(order)

    async def list_for_buyer(self, email: str) -> List[OrderOut]:
        async with self._db.session() as session:
            result = await session.scalars(
                select(Order).where(Order.user_email == email).order_by(Order.ordered_at.desc())
            )
            return [OrderOut.model_validate(o) for o in result]

    async def list_by_status(self, status: OrderStatus, manager_email: str) -> List[OrderOut]:
        await self._directory.require_manager(manager_email)
        async with self._db.session() as session:
            result = await session.scalars(
                select(Order).where(Order.status == status.value).order_by(Order.ordered_at.desc())
            )
            return [OrderOut.model_validate(o) for o in result]

    async def history(self, order_id: str) -> List[OrderEventOut]:
        async with self._db.session() as session:
            if await session.get(Order, order_id) is None:
                raise NotFound("order", order_id)
            result = await session.scalars(
                select(Event).where(Event.order_id == order_id).order_by(Event.id)
            )
            return [OrderEventOut.model_validate(e) for e in result]
