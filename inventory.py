"""
Inventory ledger: stock reservation and restoration tied to order events.
The decrement itself is the reservation; no hold records are kept.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from catalog import ProductCatalog, ProductInfo
from errors import BelowMinimumOrder, InsufficientStock, NotFound


class InventoryLedger:
    def __init__(self, catalog: ProductCatalog):
        self._catalog = catalog

    async def reserve(self, session: AsyncSession, product_id: str, qty: int) -> ProductInfo:
        """Decrement stock by qty inside the caller's transaction.

        Raises InsufficientStock or BelowMinimumOrder when the guarded update
        matches no row; the product is only read afterwards to pick the error.
        """
        updated = await self._catalog.adjust_stock(session, product_id, -qty, order_quantity=qty)
        if updated is not None:
            logging.info(f"Reserved {qty} of product {product_id} ({updated.quantity} left)")
            return updated

        current = await self._catalog.get(product_id, session=session)
        if current is None:
            raise NotFound("product", product_id)
        if qty > current.quantity:
            logging.warning(f"Reservation of {qty} for product {product_id} refused: {current.quantity} available")
            raise InsufficientStock(product_id, qty, current.quantity)
        logging.warning(f"Reservation of {qty} for product {product_id} refused: moq is {current.moq}")
        raise BelowMinimumOrder(product_id, qty, current.moq)

    async def release(self, session: AsyncSession, product_id: str, qty: int) -> ProductInfo:
        """Give qty units back to the product inside the caller's transaction."""
        updated = await self._catalog.adjust_stock(session, product_id, qty)
        if updated is None:
            raise NotFound("product", product_id)
        logging.info(f"Released {qty} of product {product_id} ({updated.quantity} available)")
        return updated
