# Overview: Flask API routes for member credit accounts.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..money import AmountError, Money, from_json_number
from ..services.concurrency import begin_write, run_with_retry
from ..services.credit_ledger import CreditLedger
from ..services.transaction_errors import TransactionError, ValidationError


members_bp = Blueprint("members", __name__, url_prefix="/api/members")


@members_bp.get("/<int:member_id>/credit")
def get_credit_route(member_id: int):
    """Current balance, limit and available credit, with recent credit entries."""
    ledger = CreditLedger(db.session)
    try:
        snapshot = ledger.available_credit(member_id, lock=False)
    except TransactionError as e:
        return jsonify(e.to_dict()), e.http_status

    return jsonify({
        "success": True,
        "credit": {
            "member_id": member_id,
            "balance": str(Money(snapshot.balance_cents)),
            "limit": str(Money(snapshot.limit_cents)),
            "available": str(Money(snapshot.available_cents)),
            "balance_cents": snapshot.balance_cents,
            "limit_cents": snapshot.limit_cents,
            "available_cents": snapshot.available_cents,
        },
        "entries": [entry.to_dict() for entry in ledger.recent_entries(member_id)],
    }), 200


@members_bp.post("/<int:member_id>/credit/payments")
def record_credit_payment_route(member_id: int):
    """
    Record a member paying down their credit balance.

    Body: {amount, operatorId?}
    """
    data = request.get_json(silent=True) or {}
    try:
        try:
            amount = Money.parse(from_json_number(data.get("amount")), field="amount")
        except AmountError as exc:
            raise ValidationError(str(exc), details={"field": "amount"})

        operator_id = data.get("operatorId")
        if operator_id is not None and (isinstance(operator_id, bool) or not isinstance(operator_id, int)):
            raise ValidationError("operatorId must be an integer", details={"field": "operatorId"})

        def _op():
            begin_write(db.session)
            entry = CreditLedger(db.session).record_payment(
                member_id, amount, operator_id=operator_id
            )
            payload = entry.to_dict()
            db.session.commit()
            return payload

        payload = run_with_retry(db.session, _op)
        return jsonify({"success": True, "entry": payload}), 201

    except TransactionError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record credit payment")
        return jsonify({"success": False, "errorKind": "InternalError", "message": "Internal server error"}), 500
