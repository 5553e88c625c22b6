"""
Temporal activities that call the payment reconciliation functions.
Keep activities small: parameter unpacking, await the function, return its result.
"""
import logging
from typing import Any, Dict

from temporalio import activity
from temporalio.exceptions import ApplicationError

from errors import GatewayUnavailable, OrderCoreError
from payments import PaymentReconciliation, Settlement


async def handle_domain_errors(func, *args, **kwargs):
    """Let gateway outages retry; turn business rule failures into final errors."""
    try:
        return await func(*args, **kwargs)
    except GatewayUnavailable as e:
        logging.info(f"{e} (will retry)")
        raise
    except OrderCoreError as e:
        logging.warning(f"{type(e).__name__}: {e}")
        raise ApplicationError(str(e), type=type(e).__name__, non_retryable=True) from e


class PaymentActivities:
    def __init__(self, reconciliation: PaymentReconciliation):
        self._reconciliation = reconciliation

    @activity.defn
    async def fetch_settlement(self, session_id: str) -> Settlement:
        """Read the checkout session state from the gateway."""
        return await handle_domain_errors(self._reconciliation.fetch_settlement, session_id)

    @activity.defn
    async def apply_settlement(self, settlement: Settlement) -> Dict[str, Any]:
        """Record the settlement against the order and payment ledger."""
        result = await handle_domain_errors(self._reconciliation.apply_settlement, settlement)
        return result.model_dump()
