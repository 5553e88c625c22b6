"""
Payment reconciliation: checkout initiation and settlement confirmation.

Settlement is idempotent: the gateway transaction id is the primary key of the
payments table, so replayed confirmations never produce a second record.
"""
import logging
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from sqlalchemy import func, select, text

from config import Settings
from database import Database, Order, Payment
from errors import Forbidden, InvalidTransition, NotFound
from gateway import PaymentGateway
from orders import compare_and_set, record_event, utcnow
from schemas import CheckoutHandle, OrderStatus, PaymentOut, PaymentStatus, SettlementResult

PAYABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.APPROVED)


def to_minor_units(amount: float) -> int:
    """49.99 -> 4999, rounding half up on the third decimal."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class Settlement:
    session_id: str
    paid: bool
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    email: Optional[str] = None
    amount_minor_units: Optional[int] = None


class PaymentReconciliation:
    def __init__(self, db: Database, gateway: PaymentGateway, settings: Settings):
        self._db = db
        self._gateway = gateway
        self._settings = settings

    async def initiate(self, order_id: str, buyer_email: str) -> CheckoutHandle:
        """Open a checkout session for the buyer's order and return where to send them."""
        start_time = time.time()
        async with self._db.session() as session:
            order = await session.get(Order, order_id)
        if order is None:
            raise NotFound("order", order_id)
        if order.user_email != buyer_email:
            raise Forbidden("forbidden access")
        if order.payment_status == PaymentStatus.PAID.value:
            raise InvalidTransition(order_id, PaymentStatus.PAID.value, "checkout")
        if order.status not in {s.value for s in PAYABLE_STATUSES}:
            raise InvalidTransition(order_id, order.status, "checkout")

        checkout = await self._gateway.create_session(
            amount_minor_units=to_minor_units(order.total_price),
            metadata={"order_id": order_id, "customer_email": buyer_email},
            success_url=self._settings.success_url,
            cancel_url=self._settings.cancel_url,
            customer_email=buyer_email,
            product_name=order.product_title or "Order",
        )
        elapsed = time.time() - start_time
        logging.info(f"Checkout session {checkout.id} opened for order {order_id} (took {elapsed:.3f}s)")
        return CheckoutHandle(session_id=checkout.id, url=checkout.url or "")

    async def fetch_settlement(self, session_id: str) -> Settlement:
        """Ask the gateway whether the session has been paid."""
        checkout = await self._gateway.retrieve_session(session_id)
        if not checkout.settled:
            logging.info(f"Checkout session {session_id} not settled ({checkout.payment_status})")
            return Settlement(session_id=session_id, paid=False)
        return Settlement(
            session_id=session_id,
            paid=True,
            order_id=checkout.metadata.get("order_id"),
            transaction_id=checkout.payment_intent_id,
            email=checkout.customer_email or checkout.metadata.get("customer_email"),
            amount_minor_units=checkout.amount_total,
        )

    async def apply_settlement(self, settlement: Settlement) -> SettlementResult:
        """Mark the order paid (and approved unless already completed), and record the payment exactly once."""
        start_time = time.time()
        if not settlement.paid:
            return SettlementResult(success=False)
        order_id = settlement.order_id
        payment_id = settlement.transaction_id
        if not order_id:
            raise NotFound("order", f"<missing in session {settlement.session_id}>")
        if not payment_id:
            raise InvalidTransition(order_id, "unpaid", PaymentStatus.PAID.value)

        async with self._db.transaction() as session:
            # transaction id is the idempotency key
            if await session.get(Payment, payment_id) is not None:
                elapsed = time.time() - start_time
                logging.info(f"Payment {payment_id} already processed (took {elapsed:.3f}s)")
                return SettlementResult(success=True, order_id=order_id, transaction_id=payment_id,
                                        duplicate=True)

            try:
                order = await compare_and_set(
                    session,
                    order_id,
                    PAYABLE_STATUSES,
                    OrderStatus.APPROVED,
                    payment_status=PaymentStatus.PAID.value,
                    transaction_id=payment_id,
                    approved_at=func.coalesce(Order.approved_at, utcnow()),
                )
            except InvalidTransition as e:
                # delivered before the charge was confirmed: record it, keep the status
                if e.current != OrderStatus.COMPLETED.value:
                    raise
                order = await compare_and_set(
                    session,
                    order_id,
                    [OrderStatus.COMPLETED],
                    OrderStatus.COMPLETED,
                    payment_status=PaymentStatus.PAID.value,
                    transaction_id=payment_id,
                )
            amount = (
                settlement.amount_minor_units / 100
                if settlement.amount_minor_units is not None
                else order.total_price
            )
            result = await session.execute(
                text("""
                INSERT INTO payments (transaction_id, order_id, email, amount, currency, status)
                VALUES (:transaction_id, :order_id, :email, :amount, :currency, :status)
                ON CONFLICT (transaction_id) DO NOTHING
                RETURNING transaction_id
                """),
                {
                    "transaction_id": payment_id,
                    "order_id": order_id,
                    "email": settlement.email or order.user_email,
                    "amount": amount,
                    "currency": self._settings.payment_currency,
                    "status": "completed",
                }
            )
            if not result.scalar():
                elapsed = time.time() - start_time
                logging.info(f"Payment {payment_id} recorded by concurrent request (took {elapsed:.3f}s)")
                return SettlementResult(success=True, order_id=order_id, transaction_id=payment_id,
                                        duplicate=True)

            record_event(session, order_id, "payment_settled", {"payment_id": payment_id, "amount": amount})

        elapsed = time.time() - start_time
        logging.info(f"Payment {payment_id} settled order {order_id} (took {elapsed:.3f}s)")
        return SettlementResult(success=True, order_id=order_id, transaction_id=payment_id)

    async def confirm(self, session_id: str) -> SettlementResult:
        settlement = await self.fetch_settlement(session_id)
        return await self.apply_settlement(settlement)

    async def payments_for(self, email: str) -> List[PaymentOut]:
        async with self._db.session() as session:
            result = await session.scalars(
                select(Payment).where(Payment.email == email).order_by(Payment.created_at.desc())
            )
            return [PaymentOut.model_validate(p) for p in result]
