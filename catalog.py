"""
Product catalog storage: lookups plus the atomic stock adjustment primitive.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from database import Database, Product


@dataclass(frozen=True)
class ProductInfo:
    id: str
    title: str
    price: float
    quantity: int
    moq: int


def _info(row) -> ProductInfo:
    return ProductInfo(id=row.id, title=row.title, price=row.price, quantity=row.quantity, moq=row.moq)


class ProductCatalog:
    def __init__(self, db: Database):
        self._db = db

    async def get(self, product_id: str, session: Optional[AsyncSession] = None) -> Optional[ProductInfo]:
        if session is not None:
            product = await session.get(Product, product_id, populate_existing=True)
            return _info(product) if product else None
        async with self._db.session() as own_session:
            product = await own_session.get(Product, product_id)
            return _info(product) if product else None

    async def adjust_stock(
        self,
        session: AsyncSession,
        product_id: str,
        delta: int,
        order_quantity: Optional[int] = None,
    ) -> Optional[ProductInfo]:
        """Apply a signed stock delta as one conditional UPDATE.

        The row only changes if the result stays non-negative and, when
        order_quantity is given, the product's moq allows it. Returns the
        updated product or None when the guard rejected the change.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .where(Product.quantity + delta >= 0)
            .values(quantity=Product.quantity + delta)
            .returning(Product.id, Product.title, Product.price, Product.quantity, Product.moq)
            .execution_options(synchronize_session=False)
        )
        if order_quantity is not None:
            stmt = stmt.where(Product.moq <= order_quantity)
        row = (await session.execute(stmt)).first()
        return _info(row) if row else None

    async def add(self, product_id: str, title: str, price: float, quantity: int, moq: int = 1,
                  created_by: Optional[str] = None) -> ProductInfo:
        async with self._db.transaction() as session:
            product = Product(id=product_id, title=title, price=price, quantity=quantity,
                              moq=moq, created_by=created_by)
            session.add(product)
        return _info(product)
