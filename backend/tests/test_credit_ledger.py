import pytest

from coop_pos.models import CreditEntry
from coop_pos.money import Money
from coop_pos.services.credit_ledger import CreditLedger, ENTRY_PAYMENT, ENTRY_SPENT
from coop_pos.services.transaction_errors import (
    InsufficientCredit,
    MemberNotFound,
    ValidationError,
)


def test_available_credit_is_limit_minus_balance(db_session, make_member):
    member = make_member(limit_cents=100000, balance_cents=90000)
    snapshot = CreditLedger(db_session).available_credit(member.id)
    assert snapshot.available_cents == 10000
    assert snapshot.name == member.name


def test_unknown_member(db_session):
    with pytest.raises(MemberNotFound):
        CreditLedger(db_session).available_credit(424242)


def test_increase_records_spent_entry(db_session, make_member, balance_of):
    member = make_member(limit_cents=100000, balance_cents=20000)

    entry = CreditLedger(db_session).increase(member.id, Money.parse("150"))
    db_session.commit()

    assert entry.entry_type == ENTRY_SPENT
    assert entry.balance_after_cents == 35000
    assert balance_of(member.id) == 35000


def test_increase_to_exactly_the_limit(db_session, make_member, balance_of):
    member = make_member(limit_cents=100000, balance_cents=90000)
    CreditLedger(db_session).increase(member.id, Money.parse("100"))
    db_session.commit()
    assert balance_of(member.id) == 100000


def test_increase_past_limit_is_refused_by_the_write(db_session, make_member, balance_of):
    member = make_member(limit_cents=100000, balance_cents=90000)

    with pytest.raises(InsufficientCredit) as excinfo:
        CreditLedger(db_session).increase(member.id, Money.parse("150"))
    db_session.rollback()

    assert excinfo.value.details == {"memberId": member.id, "available": "100.00", "requested": "150.00"}
    assert balance_of(member.id) == 90000
    assert db_session.query(CreditEntry).count() == 0


def test_payment_reduces_balance(db_session, make_member, balance_of):
    member = make_member(limit_cents=100000, balance_cents=40000)

    entry = CreditLedger(db_session).record_payment(member.id, Money.parse("250"))
    db_session.commit()

    assert entry.entry_type == ENTRY_PAYMENT
    assert balance_of(member.id) == 15000


def test_payment_cannot_exceed_balance(db_session, make_member, balance_of):
    member = make_member(limit_cents=100000, balance_cents=5000)

    with pytest.raises(ValidationError):
        CreditLedger(db_session).record_payment(member.id, Money.parse("60"))
    db_session.rollback()

    assert balance_of(member.id) == 5000


def test_recent_entries_newest_first(db_session, make_member):
    member = make_member(limit_cents=100000)
    ledger = CreditLedger(db_session)
    ledger.increase(member.id, Money.parse("10"))
    ledger.increase(member.id, Money.parse("20"))
    ledger.record_payment(member.id, Money.parse("5"))
    db_session.commit()

    entries = ledger.recent_entries(member.id)
    assert [e.entry_type for e in entries] == [ENTRY_PAYMENT, ENTRY_SPENT, ENTRY_SPENT]
    assert [e.balance_after_cents for e in entries] == [2500, 3000, 1000]
