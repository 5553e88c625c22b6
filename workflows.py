"""
Temporal workflow for durable payment confirmation.
Gateway reads and settlement writes run as activities with bounded timeouts and
retries, so at-least-once callbacks from the payment provider converge on one
recorded payment.
"""
from datetime import timedelta
from typing import Any, Dict

from temporalio import workflow
from temporalio.common import RetryPolicy

# Import activities, passing them through the sandbox without reloading the module
with workflow.unsafe.imports_passed_through():
    from activities import PaymentActivities

NON_RETRYABLE_ERRORS = ["NotFound", "Forbidden", "InvalidTransition", "InsufficientStock", "BelowMinimumOrder"]


def confirmation_workflow_id(session_id: str) -> str:
    return f"payment-confirm-{session_id}"


@workflow.defn
class PaymentConfirmationWorkflow:
    """Confirms one checkout session and applies its settlement."""

    def __init__(self):
        self._session_id: str = ""
        self._current_step: str = "initialized"
        self._result: Dict[str, Any] = {}

    @workflow.query
    def get_status(self) -> Dict[str, Any]:
        """Query to get current workflow status."""
        return {
            "session_id": self._session_id,
            "current_step": self._current_step,
            "result": self._result,
        }

    @workflow.run
    async def run(self, session_id: str, gateway_timeout_seconds: float) -> Dict[str, Any]:
        self._session_id = session_id
        self._current_step = "started"
        workflow.logger.info(f"[WORKFLOW] Confirming checkout session {session_id}")

        retry_policy = RetryPolicy(
            initial_interval=timedelta(seconds=1),
            maximum_interval=timedelta(seconds=30),
            backoff_coefficient=2.0,
            maximum_attempts=10,
            non_retryable_error_types=NON_RETRYABLE_ERRORS,
        )
        timeout = timedelta(seconds=gateway_timeout_seconds)

        try:
            # Step 1: Ask the gateway about the session
            self._current_step = "fetching_settlement"
            settlement = await workflow.execute_activity_method(
                PaymentActivities.fetch_settlement,
                args=[session_id],
                start_to_close_timeout=timeout,
                retry_policy=retry_policy,
            )

            if not settlement.paid:
                self._current_step = "unpaid"
                self._result = {"success": False, "order_id": None, "transaction_id": None, "duplicate": False}
                workflow.logger.info(f"[WORKFLOW] Session {session_id} is not settled")
                return self._result

            # Step 2: Apply it to the order and payment ledger
            self._current_step = "applying_settlement"
            self._result = await workflow.execute_activity_method(
                PaymentActivities.apply_settlement,
                args=[settlement],
                start_to_close_timeout=timeout,
                retry_policy=retry_policy,
            )

            self._current_step = "completed"
            workflow.logger.info(
                f"[WORKFLOW] Session {session_id} settled order {self._result.get('order_id')}"
            )
            return self._result

        except Exception as e:
            self._current_step = "failed"
            workflow.logger.error(f"Confirmation of session {session_id} failed: {str(e)}")
            raise e
