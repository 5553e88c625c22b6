"""Pytest fixtures for the order core tests."""
import itertools
from typing import Dict, Optional

import pytest
import pytest_asyncio

from config import Settings
from database import Database
from errors import GatewayUnavailable
from gateway import CheckoutSession
from services import Services

BUYER = "buyer@example.com"
OTHER_BUYER = "other@example.com"
SUSPENDED_BUYER = "suspended@example.com"
MANAGER = "manager@example.com"
SUSPENDED_MANAGER = "old-manager@example.com"


class FakeGateway:
    """In-memory stand-in for the payment provider."""

    def __init__(self):
        self.sessions: Dict[str, CheckoutSession] = {}
        self.created = []
        self.fail_with: Optional[Exception] = None
        self._ids = itertools.count(1)

    async def create_session(self, amount_minor_units, metadata, success_url, cancel_url,
                             customer_email=None, product_name="Order"):
        if self.fail_with:
            raise self.fail_with
        session_id = f"cs_test_{next(self._ids)}"
        session = CheckoutSession(
            id=session_id,
            url=f"https://checkout.example.com/{session_id}",
            amount_total=amount_minor_units,
            customer_email=customer_email,
            metadata=dict(metadata),
        )
        self.sessions[session_id] = session
        self.created.append({"amount": amount_minor_units, "metadata": dict(metadata),
                             "success_url": success_url, "cancel_url": cancel_url})
        return session

    async def retrieve_session(self, session_id):
        if self.fail_with:
            raise self.fail_with
        return self.sessions[session_id]

    def settle(self, session_id: str, payment_intent_id: str = "pi_test_1") -> None:
        current = self.sessions[session_id]
        self.sessions[session_id] = CheckoutSession(
            id=current.id,
            url=current.url,
            payment_status="paid",
            payment_intent_id=payment_intent_id,
            customer_email=current.customer_email,
            amount_total=current.amount_total,
            metadata=current.metadata,
        )

    def go_down(self) -> None:
        self.fail_with = GatewayUnavailable("retrieve_session", "timeout")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        client_domain="http://shop.test",
        gateway_timeout_seconds=2.0,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def services(settings, gateway):
    svc = Services.build(Database(settings.database_url), gateway, settings)
    await svc.db.init()
    await svc.directory.register(BUYER, name="Buyer")
    await svc.directory.register(OTHER_BUYER, name="Other")
    await svc.directory.register(SUSPENDED_BUYER, name="Suspended", status="suspended")
    await svc.directory.register(MANAGER, name="Manager", role="manager")
    await svc.directory.register(SUSPENDED_MANAGER, name="Old Manager", role="manager", status="suspended")
    yield svc
    await svc.db.close()


@pytest_asyncio.fixture
async def product(services):
    """stock=5, moq=2, price=10.0"""
    return await services.catalog.add("prod-1", "Denim Jacket", price=10.0, quantity=5, moq=2)
