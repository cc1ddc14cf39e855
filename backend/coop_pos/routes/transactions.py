# Overview: Flask API routes for sale transactions; parses input and returns JSON responses.

# backend/coop_pos/routes/transactions.py
"""Sale transaction API routes"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models.sales import parse_reference
from ..money import from_json_number
from ..services import sales_service
from ..services.sales_service import CartItem
from ..services.transaction_errors import TransactionError, ValidationError
from ..services.transaction_store import TransactionStore


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _cart_items(raw_items) -> list[CartItem]:
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list", details={"field": "items"})
    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", details={"field": f"items[{index}]"})
        items.append(CartItem(
            product_id=raw.get("productId"),
            quantity=raw.get("quantity"),
            unit_price=from_json_number(raw.get("unitPrice")),
            base_unit_price=from_json_number(raw.get("baseUnitPrice")),
        ))
    return items


@transactions_bp.post("")
def create_transaction_route():
    """
    Commit a sale: header, items, stock deductions and credit in one unit of work.

    Body: {items: [{productId, quantity, unitPrice, baseUnitPrice?}],
           paymentMethod, operatorId, memberId?, manualDiscount?, idempotencyKey?}
    The Idempotency-Key header is accepted in place of idempotencyKey.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.create_transaction(
            _cart_items(data.get("items") or []),
            data.get("paymentMethod"),
            data.get("operatorId"),
            member_id=data.get("memberId"),
            manual_discount=from_json_number(data.get("manualDiscount")),
            idempotency_key=data.get("idempotencyKey") or request.headers.get("Idempotency-Key"),
        )
        body = {
            "success": True,
            "transactionId": result.reference,
            "transaction": result.to_dict(),
        }
        return jsonify(body), 200 if result.replayed else 201

    except TransactionError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"success": False, "errorKind": "InternalError", "message": "Internal server error"}), 500


@transactions_bp.get("")
def list_transactions_route():
    """List committed transactions, newest first, optionally for one member."""
    member_id = request.args.get("memberId")
    if member_id is not None:
        if not member_id.isdigit():
            return jsonify({"success": False, "message": "Invalid member ID"}), 400
        member_id = int(member_id)

    limit = min(request.args.get("limit", 100, type=int) or 100, 500)
    offset = max(request.args.get("offset", 0, type=int) or 0, 0)

    transactions = TransactionStore(db.session).recent(member_id=member_id, limit=limit, offset=offset)
    return jsonify({
        "success": True,
        "transactions": [tx.to_dict() for tx in transactions],
    }), 200


@transactions_bp.get("/<transaction_ref>")
def get_transaction_route(transaction_ref: str):
    """Get one transaction with its items; accepts 42 or TRX-42."""
    transaction_id = parse_reference(transaction_ref)
    if transaction_id is None:
        return jsonify({"success": False, "message": "Invalid transaction ID"}), 400

    tx = TransactionStore(db.session).get(transaction_id)
    if not tx:
        return jsonify({"success": False, "message": "Transaction not found"}), 404

    return jsonify({
        "success": True,
        "transaction": tx.to_dict(),
        "items": [item.to_dict() for item in tx.items],
    }), 200
