"""
Wiring of the order core components around one Database object.
"""
from dataclasses import dataclass
from typing import Optional

from catalog import ProductCatalog
from config import Settings
from database import Database
from directory import UserDirectory
from events import EventBus
from gateway import PaymentGateway, StripeCheckoutGateway
from inventory import InventoryLedger
from orders import OrderStateMachine
from payments import PaymentReconciliation
from tracking import TrackingTimeline


@dataclass
class Services:
    db: Database
    directory: UserDirectory
    catalog: ProductCatalog
    ledger: InventoryLedger
    bus: EventBus
    orders: OrderStateMachine
    tracking: TrackingTimeline
    payments: PaymentReconciliation

    @classmethod
    def build(cls, db: Database, gateway: PaymentGateway, settings: Settings) -> "Services":
        directory = UserDirectory(db)
        catalog = ProductCatalog(db)
        ledger = InventoryLedger(catalog)
        bus = EventBus()
        return cls(
            db=db,
            directory=directory,
            catalog=catalog,
            ledger=ledger,
            bus=bus,
            orders=OrderStateMachine(db, directory, ledger, bus),
            tracking=TrackingTimeline(db, bus),
            payments=PaymentReconciliation(db, gateway, settings),
        )

    @classmethod
    def from_settings(cls, settings: Settings, gateway: Optional[PaymentGateway] = None) -> "Services":
        if gateway is None:
            gateway = StripeCheckoutGateway(
                secret_key=settings.stripe_secret_key,
                api_base=settings.stripe_api_base,
                currency=settings.payment_currency,
                timeout=settings.gateway_timeout_seconds,
            )
        return cls.build(Database(settings.database_url), gateway, settings)
