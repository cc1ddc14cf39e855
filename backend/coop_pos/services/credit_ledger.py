# Overview: Member credit ownership; the only code path that writes Member.credit_balance_cents.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..models import Member, CreditEntry
from ..money import Money
from .concurrency import lock_for_update
from .transaction_errors import InsufficientCredit, MemberNotFound, ValidationError


ENTRY_SPENT = "SPENT"
ENTRY_PAYMENT = "PAYMENT"


@dataclass(frozen=True)
class CreditSnapshot:
    member_id: int
    name: str
    balance_cents: int
    limit_cents: int

    @property
    def available_cents(self) -> int:
        return self.limit_cents - self.balance_cents


class CreditLedger:
    """
    Revolving credit balances.

    available_credit() takes the member row lock, so a check made through
    it stays valid for the rest of the caller's unit of work. increase()
    is still a conditional write bounded by the limit: even a caller that
    skipped the check cannot push a balance past credit_limit_cents.
    """

    def __init__(self, session):
        self.session = session

    def available_credit(self, member_id: int, *, lock: bool = True) -> CreditSnapshot:
        query = self.session.query(
            Member.name,
            Member.credit_balance_cents,
            Member.credit_limit_cents,
        ).filter(Member.id == member_id)
        if lock:
            query = lock_for_update(query)
        row = query.first()
        if row is None:
            raise MemberNotFound(member_id)
        return CreditSnapshot(
            member_id=member_id,
            name=row.name,
            balance_cents=int(row.credit_balance_cents),
            limit_cents=int(row.credit_limit_cents),
        )

    def increase(
        self,
        member_id: int,
        amount: Money,
        *,
        transaction_id: int | None = None,
        operator_id: int | None = None,
    ) -> CreditEntry:
        """
        Add a credit sale to the member's balance; returns the SPENT entry
        (its balance_after_cents is the new balance).

        Raises MemberNotFound for unknown members and InsufficientCredit when
        the increase would exceed the limit.
        """
        if amount.is_negative():
            raise ValidationError("credit increase cannot be negative")

        result = self.session.execute(
            update(Member)
            .where(
                Member.id == member_id,
                Member.credit_balance_cents + amount.cents <= Member.credit_limit_cents,
            )
            .values(
                credit_balance_cents=Member.credit_balance_cents + amount.cents,
                version_id=Member.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            snapshot = self.available_credit(member_id)
            raise InsufficientCredit(member_id, snapshot.available_cents, amount.cents)

        new_balance = self.available_credit(member_id).balance_cents
        return self._append_entry(
            member_id=member_id,
            entry_type=ENTRY_SPENT,
            amount_cents=amount.cents,
            balance_after_cents=new_balance,
            transaction_id=transaction_id,
            operator_id=operator_id,
        )

    def record_payment(self, member_id: int, amount: Money, *, operator_id: int | None = None) -> CreditEntry:
        """
        Member pays down their balance; returns the PAYMENT entry.

        The payment may not exceed what is owed.
        """
        if amount.cents <= 0:
            raise ValidationError("payment amount must be positive")

        result = self.session.execute(
            update(Member)
            .where(
                Member.id == member_id,
                Member.credit_balance_cents >= amount.cents,
            )
            .values(
                credit_balance_cents=Member.credit_balance_cents - amount.cents,
                version_id=Member.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            snapshot = self.available_credit(member_id)
            raise ValidationError(
                "payment exceeds outstanding balance",
                details={
                    "memberId": member_id,
                    "balance": str(Money(snapshot.balance_cents)),
                    "requested": str(amount),
                },
            )

        new_balance = self.available_credit(member_id).balance_cents
        return self._append_entry(
            member_id=member_id,
            entry_type=ENTRY_PAYMENT,
            amount_cents=amount.cents,
            balance_after_cents=new_balance,
            operator_id=operator_id,
        )

    def recent_entries(self, member_id: int, limit: int = 20) -> list[CreditEntry]:
        return (
            self.session.query(CreditEntry)
            .filter(CreditEntry.member_id == member_id)
            .order_by(CreditEntry.occurred_at.desc(), CreditEntry.id.desc())
            .limit(limit)
            .all()
        )

    def _append_entry(self, **fields) -> CreditEntry:
        entry = CreditEntry(**fields)
        self.session.add(entry)
        self.session.flush()
        return entry
