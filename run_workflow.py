"""
Starts a payment confirmation workflow for a checkout session and waits for it.
Usage: python run_workflow.py <checkout-session-id>
"""
import asyncio
import sys
import os
import time

# Add the current directory to Python path for imports
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from temporalio.client import Client
from config import load_settings
from workflows import PaymentConfirmationWorkflow, confirmation_workflow_id

async def main(session_id: str):
    """Confirm one checkout session through the worker."""
    settings = load_settings()
    print(f"Confirming checkout session {session_id}")
    print("-" * 50)

    client = await Client.connect(settings.temporal_address, namespace=settings.temporal_namespace)

    try:
        start_time = time.time()
        handle = await client.start_workflow(
            PaymentConfirmationWorkflow.run,
            args=[session_id, settings.gateway_timeout_seconds],
            id=confirmation_workflow_id(session_id),
            task_queue=settings.payment_task_queue
        )

        print(f"Workflow started with ID: {handle.id}")
        result = await handle.result()

        print(f"Confirmation finished in {time.time() - start_time:.3f} seconds")
        print(f"Result: {result}")

    except Exception as e:
        print(f"Workflow failed: {e}")
        return 1

    return 0 if result.get("success") else 2

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python run_workflow.py <checkout-session-id>")
        sys.exit(64)
    try:
        exit_code = asyncio.run(main(sys.argv[1]))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nStopped by user")
        sys.exit(1)
