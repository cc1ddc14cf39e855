# Overview: Persistence of sale headers and their line items as one write.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from ..models import Transaction, TransactionItem
from ..money import Money


@dataclass(frozen=True)
class SaleHeader:
    operator_id: int
    member_id: int | None
    payment_method: str
    subtotal: Money
    manual_discount: Money
    total: Money
    idempotency_key: str | None = None


@dataclass(frozen=True)
class SaleLine:
    product_id: int
    quantity: int
    unit_price: Money
    base_unit_price: Money

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity

    @property
    def profit(self) -> Money:
        return (self.unit_price - self.base_unit_price) * self.quantity


class TransactionStore:
    """
    Writes a header and all of its items inside the caller's unit of work.

    persist() flushes but never commits: the header, the items and the
    ledger mutations that preceded them become visible together when the
    caller commits, or not at all.
    """

    def __init__(self, session):
        self.session = session

    def persist(self, header: SaleHeader, lines: list[SaleLine]) -> Transaction:
        tx = Transaction(
            operator_id=header.operator_id,
            member_id=header.member_id,
            payment_method=header.payment_method,
            subtotal_cents=header.subtotal.cents,
            manual_discount_cents=header.manual_discount.cents,
            total_cents=header.total.cents,
            idempotency_key=header.idempotency_key,
        )
        self.session.add(tx)
        self.session.flush()  # assigns tx.id for the item rows

        self.session.add_all([
            TransactionItem(
                transaction_id=tx.id,
                product_id=line.product_id,
                quantity=line.quantity,
                price_at_sale_cents=line.unit_price.cents,
                base_price_at_sale_cents=line.base_unit_price.cents,
                line_total_cents=line.line_total.cents,
                profit_cents=line.profit.cents,
            )
            for line in lines
        ])
        self.session.flush()
        return tx

    def find_by_idempotency_key(self, key: str) -> Transaction | None:
        return self.session.query(Transaction).filter_by(idempotency_key=key).first()

    def get(self, transaction_id: int) -> Transaction | None:
        return (
            self.session.query(Transaction)
            .options(selectinload(Transaction.items))
            .filter_by(id=transaction_id)
            .first()
        )

    def recent(self, *, member_id: int | None = None, limit: int = 100, offset: int = 0) -> list[Transaction]:
        q = self.session.query(Transaction)
        if member_id is not None:
            q = q.filter(Transaction.member_id == member_id)
        return (
            q.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    def item_count(self, transaction_id: int) -> int:
        return self.session.query(TransactionItem).filter_by(transaction_id=transaction_id).count()

    def find_total_mismatches(self) -> list[dict]:
        """
        Re-derive every header total from its items.

        A transaction is reported when it has no items, or when
        sum(price_at_sale * quantity) - manual_discount != total.
        """
        sums = (
            self.session.query(
                TransactionItem.transaction_id.label("transaction_id"),
                func.sum(TransactionItem.price_at_sale_cents * TransactionItem.quantity).label("items_total"),
                func.count(TransactionItem.id).label("item_count"),
            )
            .group_by(TransactionItem.transaction_id)
            .subquery()
        )
        rows = (
            self.session.query(Transaction, sums.c.items_total, sums.c.item_count)
            .outerjoin(sums, sums.c.transaction_id == Transaction.id)
            .order_by(Transaction.id)
            .all()
        )

        mismatches = []
        for tx, items_total, item_count in rows:
            items_total = int(items_total or 0)
            expected = items_total - tx.manual_discount_cents
            if not item_count or expected != tx.total_cents:
                mismatches.append({
                    "transaction_id": tx.id,
                    "reference": tx.reference,
                    "item_count": int(item_count or 0),
                    "expected_total_cents": expected,
                    "recorded_total_cents": tx.total_cents,
                })
        return mismatches
