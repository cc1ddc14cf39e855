from __future__ import annotations

from ..extensions import db
from coop_pos.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Committed sale header.

    Written exactly once, together with its items, stock deductions and any
    credit movement, by the sale unit of work. Never edited afterwards.

    total_cents == sum(item.line_total_cents) - manual_discount_cents
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("idempotency_key", name="uq_transactions_idempotency_key"),
        db.CheckConstraint("manual_discount_cents >= 0", name="ck_transactions_discount_non_negative"),
        db.CheckConstraint("total_cents >= 0", name="ck_transactions_total_non_negative"),
        db.Index("ix_transactions_member_created", "member_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    operator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=True)

    payment_method = db.Column(db.String(16), nullable=False, index=True)  # cash, credit

    subtotal_cents = db.Column(db.Integer, nullable=False)
    manual_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # Caller-supplied retry token; a second call with the same key replays this row
    idempotency_key = db.Column(db.String(128), nullable=True)

    operator = db.relationship("User")
    member = db.relationship("Member")

    @property
    def reference(self) -> str:
        return format_reference(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
            "operator_id": self.operator_id,
            "member_id": self.member_id,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "manual_discount_cents": self.manual_discount_cents,
            "total_cents": self.total_cents,
            "idempotency_key": self.idempotency_key,
        }


class TransactionItem(db.Model):
    """Line item of a committed sale, with its price snapshot."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale_cents = db.Column(db.Integer, nullable=False)
    base_price_at_sale_cents = db.Column(db.Integer, nullable=False)

    # Derived at insert: price * quantity and (price - base) * quantity
    line_total_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship(
        "Transaction",
        backref=db.backref("items", lazy=True, order_by="TransactionItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_at_sale_cents": self.price_at_sale_cents,
            "base_price_at_sale_cents": self.base_price_at_sale_cents,
            "line_total_cents": self.line_total_cents,
            "profit_cents": self.profit_cents,
            "created_at": to_utc_z(self.created_at),
        }


REFERENCE_PREFIX = "TRX-"


def format_reference(transaction_id: int) -> str:
    return f"{REFERENCE_PREFIX}{transaction_id}"


def parse_reference(value) -> int | None:
    """Accept either a bare id or a TRX-<id> reference."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.upper().startswith(REFERENCE_PREFIX):
        text = text[len(REFERENCE_PREFIX):]
    if not text.isdigit():
        return None
    return int(text)
