"""
Temporal worker for durable payment confirmation.
Hosts PaymentConfirmationWorkflow and the payment activities on the payment task queue.
"""
import asyncio
import sys
import os
import logging

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s: %(message)s'
)
# show workflow logs but hide noise
logging.getLogger('temporalio').setLevel(logging.ERROR)
logging.getLogger('temporalio.worker').setLevel(logging.ERROR)
logging.getLogger('temporalio.client').setLevel(logging.ERROR)
logging.getLogger('temporalio.activity').setLevel(logging.ERROR)
logging.getLogger('temporalio.workflow').setLevel(logging.INFO)  # Show workflow logs
logging.getLogger('temporalio.worker._activity').setLevel(logging.ERROR)
logging.getLogger('sqlalchemy.engine').setLevel(logging.ERROR)
logging.getLogger('sqlalchemy.pool').setLevel(logging.ERROR)

from temporalio.client import Client
from temporalio.worker import Worker

from activities import PaymentActivities
from config import load_settings
from services import Services
from workflows import PaymentConfirmationWorkflow

async def run_payment_worker():
    """Run the payment confirmation worker."""
    settings = load_settings()
    services = Services.from_settings(settings)
    await services.db.init()
    client = await Client.connect(settings.temporal_address, namespace=settings.temporal_namespace)
    payment_activities = PaymentActivities(services.payments)

    worker = Worker(
        client,
        task_queue=settings.payment_task_queue,
        workflows=[PaymentConfirmationWorkflow],
        activities=[
            payment_activities.fetch_settlement,
            payment_activities.apply_settlement,
        ]
    )

    print(f"Starting Payment Worker on task queue: {settings.payment_task_queue}")
    try:
        await worker.run()
    finally:
        await services.db.close()

if __name__ == "__main__":
    try:
        asyncio.run(run_payment_worker())
    except KeyboardInterrupt:
        print("\nWorker stopped by user")
    except Exception as e:
        print(f"Worker error: {e}")
        sys.exit(1)
