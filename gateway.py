"""
Payment gateway client.
StripeCheckoutGateway talks to the Stripe Checkout Sessions REST API over httpx
with a bounded timeout. An unknown session is NotFound; every other transport
or provider failure becomes GatewayUnavailable so callers can retry later
without side effects.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

from errors import GatewayUnavailable, NotFound


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str] = None
    payment_status: str = "unpaid"
    payment_intent_id: Optional[str] = None
    customer_email: Optional[str] = None
    amount_total: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def settled(self) -> bool:
        return self.payment_status == "paid"


class PaymentGateway(Protocol):
    async def create_session(
        self,
        amount_minor_units: int,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        product_name: str = "Order",
    ) -> CheckoutSession:
        ...

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        ...


def _session_from_payload(payload: Dict[str, Any]) -> CheckoutSession:
    intent = payload.get("payment_intent")
    if isinstance(intent, dict):
        intent = intent.get("id")
    return CheckoutSession(
        id=payload["id"],
        url=payload.get("url"),
        payment_status=payload.get("payment_status") or "unpaid",
        payment_intent_id=intent,
        customer_email=payload.get("customer_email") or (payload.get("customer_details") or {}).get("email"),
        amount_total=payload.get("amount_total"),
        metadata=dict(payload.get("metadata") or {}),
    )


class StripeCheckoutGateway:
    """Stripe Checkout over plain HTTPS."""

    def __init__(
        self,
        secret_key: str,
        api_base: str = "https://api.stripe.com",
        currency: str = "usd",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._secret_key = secret_key
        self._api_base = api_base.rstrip("/")
        self._currency = currency
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_base,
            auth=(self._secret_key, ""),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(
        self, operation: str, method: str, path: str, session_id: Optional[str] = None, **kwargs
    ) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logging.warning(f"Stripe {operation} timed out after {self._timeout}s")
            raise GatewayUnavailable(operation, "timeout") from e
        except httpx.HTTPError as e:
            logging.warning(f"Stripe {operation} failed: {e}")
            raise GatewayUnavailable(operation, str(e)) from e

        if response.status_code == 404 and session_id is not None:
            raise NotFound("checkout session", session_id)
        if response.status_code >= 400:
            message = response.text
            try:
                message = response.json().get("error", {}).get("message", message)
            except ValueError:
                pass
            logging.warning(f"Stripe {operation} returned {response.status_code}: {message}")
            raise GatewayUnavailable(operation, f"HTTP {response.status_code}: {message}")
        try:
            return response.json()
        except ValueError as e:
            logging.warning(f"Stripe {operation} returned a non-JSON body")
            raise GatewayUnavailable(operation, "invalid JSON response") from e

    async def create_session(
        self,
        amount_minor_units: int,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        product_name: str = "Order",
    ) -> CheckoutSession:
        form = {
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": self._currency,
            "line_items[0][price_data][unit_amount]": str(amount_minor_units),
            "line_items[0][price_data][product_data][name]": product_name,
        }
        if customer_email:
            form["customer_email"] = customer_email
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = value
        payload = await self._request("create_session", "POST", "/v1/checkout/sessions", data=form)
        return _session_from_payload(payload)

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        payload = await self._request(
            "retrieve_session", "GET", f"/v1/checkout/sessions/{session_id}", session_id=session_id
        )
        return _session_from_payload(payload)
