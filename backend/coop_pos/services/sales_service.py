"""
Sales Service - turns a cart into a committed transaction.

WHY: A sale moves goods and, on credit, money. The header, its items, every
stock deduction and the member's credit movement must become visible
together or not at all, and concurrent sales must never oversell stock or
push a member past their credit limit.

FLOW (one unit of work):
    validate cart -> BEGIN (write) -> idempotency replay? -> lock member
    -> check available credit -> deduct stock in cart order
    -> increase credit -> persist header + items -> COMMIT
    -> notifications (detached, best-effort)

Any failure after BEGIN rolls the database transaction back; nothing done in
the attempt survives.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db, notifications
from ..models import User
from ..models.sales import format_reference
from ..money import MAX_AMOUNT_CENTS, AmountError, Money, coerce_quantity, money_sum
from .concurrency import begin_write, run_with_retry
from .credit_ledger import CreditLedger
from .inventory_ledger import InventoryLedger
from .notification_service import LowStockEvent, PurchaseEvent
from .transaction_errors import (
    InsufficientCredit,
    PersistenceError,
    TransactionError,
    ValidationError,
)
from .transaction_store import SaleHeader, SaleLine, TransactionStore


PAYMENT_CASH = "cash"
PAYMENT_CREDIT = "credit"
VALID_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CREDIT)

MAX_IDEMPOTENCY_KEY_LENGTH = 128


@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int
    unit_price: object
    base_unit_price: object = None


@dataclass(frozen=True)
class SaleRequest:
    lines: tuple
    payment_method: str
    operator_id: int
    member_id: int | None
    subtotal: Money
    manual_discount: Money
    total: Money
    idempotency_key: str | None


@dataclass(frozen=True)
class SaleResult:
    transaction_id: int
    reference: str
    total: Money
    item_count: int
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.transaction_id,
            "reference": self.reference,
            "total": str(self.total),
            "total_cents": self.total.cents,
            "item_count": self.item_count,
            "replayed": self.replayed,
        }


@dataclass(frozen=True)
class _PendingLine:
    product_id: int
    quantity: int
    unit_price: Money
    base_unit_price: Money | None


def _require_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={"field": field})
    return value


def _parse_amount(value, field: str) -> Money:
    try:
        amount = Money.parse(value, field=field)
    except AmountError as exc:
        raise ValidationError(str(exc), details={"field": field})
    if amount.is_negative():
        raise ValidationError(f"{field} cannot be negative", details={"field": field})
    return amount


def _item_field(raw, name: str, default=None):
    if isinstance(raw, Mapping):
        return raw.get(name, default)
    return getattr(raw, name, default)


def validate_sale(
    items,
    payment_method: str,
    operator_id: int,
    member_id: int | None = None,
    manual_discount=None,
    idempotency_key: str | None = None,
) -> SaleRequest:
    """
    Check everything that can be checked without touching storage.

    Raises ValidationError; nothing has been mutated when it does.
    """
    if not items:
        raise ValidationError("Cart is empty")

    method = (payment_method or "").strip().lower() if isinstance(payment_method, str) else ""
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}. Must be one of {list(VALID_PAYMENT_METHODS)}",
            details={"field": "paymentMethod"},
        )

    operator_id = _require_id(operator_id, "operatorId")
    if member_id is not None:
        member_id = _require_id(member_id, "memberId")
    if method == PAYMENT_CREDIT and member_id is None:
        raise ValidationError("member required for credit", details={"field": "memberId"})

    pending = []
    for index, raw in enumerate(items):
        prefix = f"items[{index}]"
        product_id = _require_id(_item_field(raw, "product_id"), f"{prefix}.productId")
        try:
            quantity = coerce_quantity(_item_field(raw, "quantity"), field=f"{prefix}.quantity")
        except AmountError as exc:
            raise ValidationError(str(exc), details={"field": f"{prefix}.quantity"})
        unit_price = _parse_amount(_item_field(raw, "unit_price"), f"{prefix}.unitPrice")
        raw_base = _item_field(raw, "base_unit_price")
        base_unit_price = None if raw_base is None else _parse_amount(raw_base, f"{prefix}.baseUnitPrice")
        pending.append(_PendingLine(product_id, quantity, unit_price, base_unit_price))

    subtotal = money_sum(line.unit_price * line.quantity for line in pending)
    if subtotal.cents > MAX_AMOUNT_CENTS:
        raise ValidationError("Cart total is out of range", details={"subtotal": str(subtotal)})

    discount = Money.zero()
    if manual_discount is not None:
        discount = _parse_amount(manual_discount, "manualDiscount")
        if discount > subtotal:
            raise ValidationError(
                "Discount exceeds cart subtotal",
                details={"field": "manualDiscount", "subtotal": str(subtotal), "discount": str(discount)},
            )

    if idempotency_key is not None:
        if not isinstance(idempotency_key, str) or not idempotency_key.strip():
            raise ValidationError("idempotencyKey must be a non-empty string", details={"field": "idempotencyKey"})
        idempotency_key = idempotency_key.strip()
        if len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError("idempotencyKey is too long", details={"field": "idempotencyKey"})

    return SaleRequest(
        lines=tuple(pending),
        payment_method=method,
        operator_id=operator_id,
        member_id=member_id,
        subtotal=subtotal,
        manual_discount=discount,
        total=subtotal - discount,
        idempotency_key=idempotency_key,
    )


class TransactionCoordinator:
    """
    Orchestrates one sale over an explicit session.

    The session is the unit-of-work handle: every ledger and the store share
    it, and this class is the only one that commits or rolls it back.
    """

    def __init__(
        self,
        session,
        *,
        inventory: InventoryLedger | None = None,
        credit: CreditLedger | None = None,
        store: TransactionStore | None = None,
        dispatcher=None,
        notifier=None,
        low_stock_threshold: int = 10,
        retry_attempts: int = 3,
        retry_backoff: float = 0.1,
        logger: logging.Logger | None = None,
    ):
        self.session = session
        self.inventory = inventory or InventoryLedger(session)
        self.credit = credit or CreditLedger(session)
        self.store = store or TransactionStore(session)
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.low_stock_threshold = low_stock_threshold
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.logger = logger or logging.getLogger(__name__)

    def create_transaction(
        self,
        items,
        payment_method: str,
        operator_id: int,
        member_id: int | None = None,
        manual_discount=None,
        idempotency_key: str | None = None,
    ) -> SaleResult:
        request = validate_sale(
            items,
            payment_method,
            operator_id,
            member_id=member_id,
            manual_discount=manual_discount,
            idempotency_key=idempotency_key,
        )

        outcome = {}

        def _op():
            outcome.clear()
            return self._commit(request, outcome)

        try:
            result = run_with_retry(
                self.session, _op, attempts=self.retry_attempts, backoff_base=self.retry_backoff
            )
        except TransactionError as exc:
            self.session.rollback()
            self.logger.warning("Sale aborted (%s): %s", exc.kind, exc)
            raise
        except IntegrityError as exc:
            self.session.rollback()
            replay = self._replay(request.idempotency_key)
            if replay is not None:
                return replay
            self.logger.exception("Sale aborted by integrity failure")
            raise PersistenceError("Failed to persist transaction") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            self.logger.exception("Sale aborted by datastore failure")
            raise PersistenceError("Failed to persist transaction") from exc
        except Exception:
            self.session.rollback()
            self.logger.exception("Sale aborted by unexpected error")
            raise

        if not result.replayed:
            self.logger.info("Transaction %s committed (total %s)", result.reference, result.total)
            self._notify(result, outcome)
        return result

    def _commit(self, request: SaleRequest, outcome: dict) -> SaleResult:
        begin_write(self.session)

        if request.idempotency_key:
            existing = self.store.find_by_idempotency_key(request.idempotency_key)
            if existing is not None:
                result = self._result_for(existing, replayed=True)
                self.session.commit()
                return result

        if self.session.query(User.id).filter_by(id=request.operator_id).first() is None:
            raise ValidationError("Operator not found", details={"operatorId": request.operator_id})

        member = None
        if request.member_id is not None:
            member = self.credit.available_credit(request.member_id, lock=True)
            if request.payment_method == PAYMENT_CREDIT and member.available_cents < request.total.cents:
                raise InsufficientCredit(member.member_id, member.available_cents, request.total.cents)

        lines = []
        deductions = []
        for pending in request.lines:
            deduction = self.inventory.deduct(pending.product_id, pending.quantity)
            deductions.append(deduction)
            base = pending.base_unit_price
            if base is None:
                base = Money(deduction.base_price_cents)
            lines.append(SaleLine(
                product_id=pending.product_id,
                quantity=pending.quantity,
                unit_price=pending.unit_price,
                base_unit_price=base,
            ))

        entry = None
        if request.payment_method == PAYMENT_CREDIT:
            entry = self.credit.increase(
                request.member_id, request.total, operator_id=request.operator_id
            )

        tx = self.store.persist(
            SaleHeader(
                operator_id=request.operator_id,
                member_id=request.member_id,
                payment_method=request.payment_method,
                subtotal=request.subtotal,
                manual_discount=request.manual_discount,
                total=request.total,
                idempotency_key=request.idempotency_key,
            ),
            lines,
        )
        if entry is not None:
            entry.transaction_id = tx.id

        result = SaleResult(
            transaction_id=tx.id,
            reference=format_reference(tx.id),
            total=request.total,
            item_count=len(lines),
        )
        self.session.commit()

        outcome["member"] = member
        outcome["deductions"] = deductions
        return result

    def _replay(self, idempotency_key: str | None) -> SaleResult | None:
        if not idempotency_key:
            return None
        existing = self.store.find_by_idempotency_key(idempotency_key)
        if existing is None:
            self.session.rollback()
            return None
        result = self._result_for(existing, replayed=True)
        self.session.commit()
        return result

    def _result_for(self, tx, *, replayed: bool) -> SaleResult:
        return SaleResult(
            transaction_id=tx.id,
            reference=format_reference(tx.id),
            total=Money(tx.total_cents),
            item_count=self.store.item_count(tx.id),
            replayed=replayed,
        )

    def _notify(self, result: SaleResult, outcome: dict) -> None:
        if self.dispatcher is None:
            return

        latest = {}
        for deduction in outcome.get("deductions", []):
            latest[deduction.product_id] = deduction
        events = [
            LowStockEvent(d.product_id, d.name, d.new_stock)
            for d in latest.values()
            if d.new_stock <= self.low_stock_threshold
        ]
        member = outcome.get("member")
        if member is not None:
            events.append(PurchaseEvent(
                transaction_id=result.reference,
                customer_name=member.name,
                total=str(result.total),
                item_count=result.item_count,
            ))

        try:
            self.dispatcher.dispatch(events, notifier=self.notifier)
        except Exception:
            self.logger.exception("Failed to queue notifications for %s", result.reference)


def build_coordinator(**overrides) -> TransactionCoordinator:
    """Coordinator bound to the request-scoped db.session and app config."""
    config = current_app.config if has_app_context() else {}
    options = {
        "dispatcher": notifications,
        "low_stock_threshold": config.get("LOW_STOCK_THRESHOLD", 10),
        "retry_attempts": config.get("SALE_RETRY_ATTEMPTS", 3),
        "retry_backoff": config.get("SALE_RETRY_BACKOFF", 0.1),
        "logger": current_app.logger if has_app_context() else None,
    }
    options.update(overrides)
    return TransactionCoordinator(db.session, **options)


def create_transaction(
    items,
    payment_method: str,
    operator_id: int,
    member_id: int | None = None,
    manual_discount=None,
    idempotency_key: str | None = None,
) -> SaleResult:
    return build_coordinator().create_transaction(
        items,
        payment_method,
        operator_id,
        member_id=member_id,
        manual_discount=manual_discount,
        idempotency_key=idempotency_key,
    )
