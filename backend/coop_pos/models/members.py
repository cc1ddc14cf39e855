from __future__ import annotations

from ..extensions import db
from coop_pos.time_utils import to_utc_z


class Member(db.Model):
    """
    Cooperative member with a revolving credit account.

    credit_balance_cents is what the member currently owes; it is written
    only by CreditLedger. After any committed credit sale the balance is
    at most credit_limit_cents.
    """
    __tablename__ = "members"
    __table_args__ = (
        db.CheckConstraint("credit_balance_cents >= 0", name="ck_members_balance_non_negative"),
        db.CheckConstraint("credit_limit_cents >= 0", name="ck_members_limit_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    phone = db.Column(db.String(50), nullable=True)

    credit_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_credit_cents(self) -> int:
        return self.credit_limit_cents - self.credit_balance_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "credit_balance_cents": self.credit_balance_cents,
            "credit_limit_cents": self.credit_limit_cents,
            "available_credit_cents": self.available_credit_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CreditEntry(db.Model):
    """
    Append-only ledger of member credit movements.

    ENTRY TYPES:
    - SPENT: credit sale, linked to its transaction (amount > 0)
    - PAYMENT: member paid down the balance (amount > 0, balance decreases)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "credit_entries"
    __table_args__ = (
        db.Index("ix_credit_entries_member_occurred", "member_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)

    entry_type = db.Column(db.String(16), nullable=False, index=True)  # SPENT, PAYMENT
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)
    operator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    member = db.relationship("Member", backref=db.backref("credit_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "entry_type": self.entry_type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "transaction_id": self.transaction_id,
            "operator_id": self.operator_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
