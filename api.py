"""
FastAPI-based API for the order core.
Each endpoint maps to one core operation; the caller's identity arrives in the
X-User-Email header set by the authenticating proxy in front of this service.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError

from config import Settings, load_settings
from errors import (
    BelowMinimumOrder, Forbidden, GatewayUnavailable, InsufficientStock, InvalidTransition, NotFound,
    OrderCoreError,
)
from gateway import PaymentGateway
from schemas import (
    Buyer, CheckoutHandle, CheckoutRequest, CreateOrderInput, OrderEventOut, OrderOut, OrderStatus,
    PaymentOut, SettlementResult, TrackingEntryInput, TrackingEntryOut,
)
from services import Services
from workflows import PaymentConfirmationWorkflow, confirmation_workflow_id

ERROR_STATUS_CODES = {
    NotFound: 404,
    Forbidden: 403,
    InvalidTransition: 409,
    InsufficientStock: 400,
    BelowMinimumOrder: 400,
    GatewayUnavailable: 502,
}


class ReconcileResponse(BaseModel):
    workflow_id: str
    status: str
    message: str


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[PaymentGateway] = None,
    temporal_client: Optional[Client] = None,
) -> FastAPI:
    """Build the application; the services are created on startup and disposed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or load_settings()
        services = Services.from_settings(app_settings, gateway=gateway)
        await services.db.init()
        app.state.settings = app_settings
        app.state.services = services
        app.state.temporal_client = temporal_client
        try:
            yield
        finally:
            await services.db.close()

    app = FastAPI(
        title="StitchTrack Order API",
        description="Order lifecycle, inventory reservation and payment reconciliation",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(OrderCoreError)
    async def order_core_error_handler(request: Request, exc: OrderCoreError) -> JSONResponse:
        """Map OrderCoreError subclasses to appropriate HTTP responses."""
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        content = {"detail": str(exc), "error_type": type(exc).__name__}
        if isinstance(exc, Forbidden) and exc.reason:
            content["reason"] = exc.reason
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": jsonable_errors(exc), "error_type": "ValidationError"},
        )

    register_routes(app)
    return app


def jsonable_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()]


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_actor(x_user_email: Optional[str] = Header(None)) -> str:
    if not x_user_email:
        raise HTTPException(status_code=401, detail="unauthorized access")
    return x_user_email


async def get_temporal_client(request: Request) -> Client:
    """Get or create the Temporal client stored on the app."""
    if request.app.state.temporal_client is None:
        settings: Settings = request.app.state.settings
        request.app.state.temporal_client = await Client.connect(
            settings.temporal_address, namespace=settings.temporal_namespace
        )
    return request.app.state.temporal_client


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    async def root():
        return {"message": "StitchTrack server is running!"}

    # Orders

    @app.post("/orders", response_model=OrderOut, status_code=201)
    async def create_order(
        data: CreateOrderInput,
        actor: str = Depends(get_actor),
        x_user_id: Optional[str] = Header(None),
        services: Services = Depends(get_services),
    ):
        return await services.orders.create(Buyer(email=actor, user_id=x_user_id), data)

    @app.get("/orders", response_model=List[OrderOut])
    async def my_orders(actor: str = Depends(get_actor), services: Services = Depends(get_services)):
        return await services.orders.list_for_buyer(actor)

    @app.get("/orders/status/{status}", response_model=List[OrderOut])
    async def orders_by_status(
        status: OrderStatus, actor: str = Depends(get_actor), services: Services = Depends(get_services)
    ):
        return await services.orders.list_by_status(status, actor)

    @app.get("/orders/{order_id}", response_model=OrderOut)
    async def get_order(order_id: str, actor: str = Depends(get_actor), services: Services = Depends(get_services)):
        return await services.orders.get(order_id, actor)

    @app.get("/orders/{order_id}/events", response_model=List[OrderEventOut])
    async def order_events(order_id: str, actor: str = Depends(get_actor), services: Services = Depends(get_services)):
        await services.orders.get(order_id, actor)
        return await services.orders.history(order_id)

    @app.patch("/orders/{order_id}/approve", response_model=OrderOut)
    async def approve_order(order_id: str, actor: str = Depends(get_actor), services: Services = Depends(get_services)):
        return await services.orders.approve(order_id, actor)

    @app.patch("/orders/{order_id}/reject", response_model=OrderOut)
    async def reject_order(order_id: str, actor: str = Depends(get_actor), services: Services = Depends(get_services)):
        return await services.orders.reject(order_id, actor)

    @app.patch("/orders/{order_id}/cancel", response_model=OrderOut)
    async def cancel_order(order_id: str, actor: str = Depends(get_actor), services: Services = Depends(get_services)):
        return await services.orders.cancel(order_id, actor)

    # Tracking

    @app.post("/trackings/{order_id}", response_model=TrackingEntryOut, status_code=201)
    async def add_tracking(
        order_id: str,
        entry: TrackingEntryInput,
        actor: str = Depends(get_actor),
        services: Services = Depends(get_services),
    ):
        await services.directory.require_manager(actor)
        return await services.tracking.append(order_id, entry)

    @app.get("/trackings/{order_id}", response_model=List[TrackingEntryOut])
    async def get_tracking(order_id: str, services: Services = Depends(get_services)):
        return await services.tracking.get(order_id)

    # Payments

    @app.post("/create-checkout-session", response_model=CheckoutHandle)
    async def create_checkout_session(
        body: CheckoutRequest, actor: str = Depends(get_actor), services: Services = Depends(get_services)
    ):
        return await services.payments.initiate(body.order_id, actor)

    @app.patch("/payment-success", response_model=SettlementResult)
    async def payment_success(session_id: str = Query(..., min_length=1), services: Services = Depends(get_services)):
        return await services.payments.confirm(session_id)

    @app.post("/payments/{session_id}/reconcile", response_model=ReconcileResponse, status_code=202)
    async def reconcile_payment(
        session_id: str, request: Request, client: Client = Depends(get_temporal_client)
    ):
        """Start durable confirmation of a checkout session; duplicates collapse onto one run."""
        settings: Settings = request.app.state.settings
        workflow_id = confirmation_workflow_id(session_id)
        try:
            await client.start_workflow(
                PaymentConfirmationWorkflow.run,
                args=[session_id, settings.gateway_timeout_seconds],
                id=workflow_id,
                task_queue=settings.payment_task_queue,
            )
        except WorkflowAlreadyStartedError:
            logging.info(f"Confirmation workflow {workflow_id} already running")
            return ReconcileResponse(workflow_id=workflow_id, status="already_started",
                                     message="Confirmation already in progress")
        return ReconcileResponse(workflow_id=workflow_id, status="started",
                                 message=f"Confirmation started for session {session_id}")

    @app.get("/payments", response_model=List[PaymentOut])
    async def my_payments(actor: str = Depends(get_actor), services: Services = Depends(get_services)):
        return await services.payments.payments_for(actor)


app = create_app()

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    uvicorn.run(app, host="0.0.0.0", port=8000)
