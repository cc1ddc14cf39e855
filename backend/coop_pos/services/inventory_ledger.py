# Overview: Per-product stock ownership; the only code path that writes Product.stock_quantity.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..models import Product
from .concurrency import lock_for_update
from .transaction_errors import InsufficientStock, ProductNotFound
"""
Inventory invariants (authoritative)

- stock_quantity never goes negative, under any interleaving of sales.
- A deduction is one conditional write:
      UPDATE products SET stock_quantity = stock_quantity - :qty
      WHERE id = :id AND is_active AND stock_quantity >= :qty
  so the datastore evaluates the check and the write together. Two
  concurrent deductions on one product compose; neither sees a stale value.
- Quantities arrive in base units (packaging conversion already applied).
- Deductions never commit on their own; they belong to the caller's
  unit of work and disappear with it on rollback.
"""


@dataclass(frozen=True)
class StockDeduction:
    product_id: int
    name: str
    quantity: int
    new_stock: int
    base_price_cents: int


class InventoryLedger:
    def __init__(self, session):
        self.session = session

    def get_stock(self, product_id: int) -> int:
        stock = (
            self.session.query(Product.stock_quantity)
            .filter(Product.id == product_id)
            .scalar()
        )
        if stock is None:
            raise ProductNotFound(product_id)
        return int(stock)

    def deduct(self, product_id: int, quantity: int) -> StockDeduction:
        """
        Decrement stock only if enough is on hand.

        Raises:
            ProductNotFound: unknown or inactive product
            InsufficientStock: on-hand quantity is below the request; carries
                the true available amount at the time of the failed write
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        result = self.session.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.is_active.is_(True),
                Product.stock_quantity >= quantity,
            )
            .values(
                stock_quantity=Product.stock_quantity - quantity,
                version_id=Product.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            product = self._load(product_id)
            if product is None:
                raise ProductNotFound(product_id)
            if not product.is_active:
                raise ProductNotFound(product_id, reason="is inactive")
            raise InsufficientStock(product_id, int(product.stock_quantity), quantity)

        row = self._load(product_id)
        return StockDeduction(
            product_id=product_id,
            name=row.name,
            quantity=quantity,
            new_stock=int(row.stock_quantity),
            base_price_cents=int(row.base_price_cents or 0),
        )

    def restore(self, product_id: int, quantity: int) -> int:
        """
        Compensating increment for a deduction made earlier in the same attempt.

        Only for stores without transactional rollback; the sale unit of work
        relies on rolling back the database transaction instead.
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(
                stock_quantity=Product.stock_quantity + quantity,
                version_id=Product.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ProductNotFound(product_id)
        return self.get_stock(product_id)

    def _load(self, product_id: int):
        # Column-level read so stale identity-map instances are never consulted
        return lock_for_update(
            self.session.query(
                Product.name,
                Product.stock_quantity,
                Product.base_price_cents,
                Product.is_active,
            ).filter(Product.id == product_id)
        ).first()
