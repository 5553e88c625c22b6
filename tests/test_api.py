"""Tests for the FastAPI delivery layer."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from temporalio.exceptions import WorkflowAlreadyStartedError

from api import create_app
from conftest import BUYER, MANAGER, OTHER_BUYER, SUSPENDED_BUYER, FakeGateway
from database import Base, Product, User


class FakeTemporalClient:
    def __init__(self):
        self.started = []

    async def start_workflow(self, workflow, args, id, task_queue):
        if any(s["id"] == id for s in self.started):
            raise WorkflowAlreadyStartedError(id, "PaymentConfirmationWorkflow")
        self.started.append({"args": args, "id": id, "task_queue": task_queue})


def seed(database_url: str) -> None:
    engine = create_engine(database_url.replace("sqlite+aiosqlite", "sqlite"))
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        session.add_all([
            User(email=BUYER, name="Buyer", role="buyer", status="active"),
            User(email=OTHER_BUYER, name="Other", role="buyer", status="active"),
            User(email=SUSPENDED_BUYER, name="Suspended", role="buyer", status="suspended",
                 suspend_reason="Chargebacks"),
            User(email=MANAGER, name="Manager", role="manager", status="active"),
            Product(id="prod-1", title="Denim Jacket", price=10.0, quantity=5, moq=2),
        ])
        session.commit()
    engine.dispose()


@pytest.fixture
def temporal_client():
    return FakeTemporalClient()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def client(settings, fake_gateway, temporal_client):
    seed(settings.database_url)
    app = create_app(settings=settings, gateway=fake_gateway, temporal_client=temporal_client)
    with TestClient(app) as test_client:
        yield test_client


def as_user(email):
    return {"X-User-Email": email}


def create_order(client, quantity=3, **extra):
    body = {"product_id": "prod-1", "quantity": quantity, "delivery_address": "12 Mill Road", **extra}
    return client.post("/orders", json=body, headers=as_user(BUYER))


def test_root(client):
    assert client.get("/").json() == {"message": "StitchTrack server is running!"}


def test_order_lifecycle(client):
    response = create_order(client)
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "pending"
    assert order["payment_status"] == "cod"

    response = client.patch(f"/orders/{order['id']}/approve", headers=as_user(MANAGER))
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    response = client.post(
        f"/trackings/{order['id']}",
        json={"step": "Out for delivery", "location": "Gazipur", "milestone_status": "Shipped"},
        headers=as_user(MANAGER),
    )
    assert response.status_code == 201

    response = client.post(
        f"/trackings/{order['id']}",
        json={"step": "Handed over", "milestone_status": "delivered"},
        headers=as_user(MANAGER),
    )
    assert response.status_code == 201

    assert client.get(f"/orders/{order['id']}", headers=as_user(BUYER)).json()["status"] == "completed"
    timeline = client.get(f"/trackings/{order['id']}").json()
    assert [e["step"] for e in timeline] == ["Out for delivery", "Handed over"]
    events = client.get(f"/orders/{order['id']}/events", headers=as_user(BUYER)).json()
    assert [e["type"] for e in events] == ["order_created", "order_approved", "order_completed"]


def test_error_mapping(client):
    assert create_order(client, quantity=9).status_code == 400
    assert create_order(client, quantity=1).json()["error_type"] == "BelowMinimumOrder"
    assert create_order(client, quantity=0).status_code == 400
    assert client.post("/orders", json={"product_id": "prod-1", "quantity": 2}).status_code == 401

    response = client.post("/orders", json={"product_id": "prod-1", "quantity": 2}, headers=as_user(SUSPENDED_BUYER))
    assert response.status_code == 403
    assert response.json()["reason"] == "Chargebacks"

    assert client.patch("/orders/missing/approve", headers=as_user(MANAGER)).status_code == 404

    order = create_order(client).json()
    assert client.patch(f"/orders/{order['id']}/approve", headers=as_user(BUYER)).status_code == 403
    assert client.patch(f"/orders/{order['id']}/cancel", headers=as_user(OTHER_BUYER)).status_code == 403
    assert client.patch(f"/orders/{order['id']}/reject", headers=as_user(MANAGER)).status_code == 200
    response = client.patch(f"/orders/{order['id']}/cancel", headers=as_user(BUYER))
    assert response.status_code == 409
    assert response.json()["error_type"] == "InvalidTransition"


def test_tracking_requires_manager(client):
    order = create_order(client).json()
    response = client.post(
        f"/trackings/{order['id']}",
        json={"step": "Cutting", "milestone_status": "In Production"},
        headers=as_user(BUYER),
    )
    assert response.status_code == 403
    assert client.get(f"/trackings/{order['id']}").json() == []


def test_cancel_restores_stock_visible_to_new_orders(client):
    first = create_order(client, quantity=4).json()
    assert create_order(client, quantity=2).status_code == 400
    assert client.patch(f"/orders/{first['id']}/cancel", headers=as_user(BUYER)).json()["status"] == "cancelled"
    assert create_order(client, quantity=5).status_code == 201


def test_checkout_and_payment_success(client, fake_gateway):
    order = create_order(client, quantity=2, payment_method="payfirst", total_price=49.99).json()
    assert order["payment_status"] == "unpaid"

    response = client.post("/create-checkout-session", json={"order_id": order["id"]}, headers=as_user(BUYER))
    assert response.status_code == 200
    session_id = response.json()["session_id"]
    assert fake_gateway.created[0]["amount"] == 4999

    response = client.patch("/payment-success", params={"session_id": session_id})
    assert response.json()["success"] is False

    fake_gateway.settle(session_id, "pi_api_1")
    first = client.patch("/payment-success", params={"session_id": session_id}).json()
    second = client.patch("/payment-success", params={"session_id": session_id}).json()
    assert first["success"] and second["success"]
    assert second["duplicate"] is True

    paid = client.get(f"/orders/{order['id']}", headers=as_user(BUYER)).json()
    assert paid["status"] == "approved"
    assert paid["payment_status"] == "paid"
    payments = client.get("/payments", headers=as_user(BUYER)).json()
    assert [p["transaction_id"] for p in payments] == ["pi_api_1"]


def test_gateway_outage_maps_to_bad_gateway(client, fake_gateway):
    order = create_order(client, quantity=2, payment_method="payfirst").json()
    session_id = client.post("/create-checkout-session", json={"order_id": order["id"]},
                             headers=as_user(BUYER)).json()["session_id"]
    fake_gateway.go_down()

    response = client.patch("/payment-success", params={"session_id": session_id})
    assert response.status_code == 502
    assert response.json()["error_type"] == "GatewayUnavailable"


def test_reconcile_starts_one_workflow_per_session(client, temporal_client):
    first = client.post("/payments/cs_test_9/reconcile")
    second = client.post("/payments/cs_test_9/reconcile")

    assert first.status_code == 202
    assert first.json()["status"] == "started"
    assert second.json()["status"] == "already_started"
    assert temporal_client.started == [
        {"args": ["cs_test_9", 2.0], "id": "payment-confirm-cs_test_9", "task_queue": "payments-tq"}
    ]


def test_orders_by_status_for_managers(client):
    create_order(client, quantity=2)
    response = client.get("/orders/status/pending", headers=as_user(MANAGER))
    assert response.status_code == 200
    assert len(response.json()) == 1
    assert client.get("/orders/status/pending", headers=as_user(BUYER)).status_code == 403
    assert len(client.get("/orders", headers=as_user(BUYER)).json()) == 1
