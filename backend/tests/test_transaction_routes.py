"""
HTTP surface tests.

Verifies:
- POST /api/transactions maps each failure kind to its status code
- Replays with the same idempotency key return 200 and the same id
- Transactions can be read back by numeric id or TRX reference
- Member credit and the notification feed are exposed
"""

import pytest

from coop_pos.extensions import notifications


def sale_body(product, quantity=1, price="10.00", **extra):
    body = {
        "items": [{"productId": product.id, "quantity": quantity, "unitPrice": price}],
        "paymentMethod": "cash",
    }
    body.update(extra)
    return body


# =============================================================================
# CREATE
# =============================================================================


class TestCreateTransaction:
    def test_cash_sale_returns_201(self, client, operator, make_product, stock_of):
        product = make_product(stock=10)

        resp = client.post("/api/transactions", json=sale_body(product, 2, "50", operatorId=operator.id))

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["success"] is True
        assert data["transactionId"].startswith("TRX-")
        assert data["transaction"]["total"] == "100.00"
        assert data["transaction"]["item_count"] == 1
        assert stock_of(product.id) == 8

    def test_idempotency_key_header_replays(self, client, operator, make_product, stock_of):
        product = make_product(stock=10)
        headers = {"Idempotency-Key": "till-3-000017"}
        body = sale_body(product, 3, operatorId=operator.id)

        first = client.post("/api/transactions", json=body, headers=headers)
        second = client.post("/api/transactions", json=body, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["transactionId"] == first.get_json()["transactionId"]
        assert second.get_json()["transaction"]["replayed"] is True
        assert stock_of(product.id) == 7

    @pytest.mark.parametrize(
        "overrides",
        [
            {"items": []},
            {"paymentMethod": "voucher"},
            {"paymentMethod": "credit"},
            {"manualDiscount": "999"},
            {"items": "not-a-list"},
            {"items": [{"productId": 1, "quantity": "two", "unitPrice": "1"}]},
        ],
    )
    def test_validation_errors_return_400(self, client, operator, make_product, overrides):
        product = make_product(stock=10)
        body = sale_body(product, operatorId=operator.id)
        body.update(overrides)

        resp = client.post("/api/transactions", json=body)

        assert resp.status_code == 400
        data = resp.get_json()
        assert data["success"] is False
        assert data["errorKind"] == "ValidationError"

    def test_numeric_prices_are_read_as_decimals(self, client, operator, make_product, stock_of):
        product = make_product(stock=10)
        body = {
            "items": [{"productId": product.id, "quantity": 2, "unitPrice": 12.5, "baseUnitPrice": 9.99}],
            "paymentMethod": "cash",
            "operatorId": operator.id,
            "manualDiscount": 0.5,
        }

        resp = client.post("/api/transactions", json=body)

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["transaction"]["total"] == "24.50"
        detail = client.get(f"/api/transactions/{data['transactionId']}").get_json()
        assert detail["items"][0]["price_at_sale_cents"] == 1250
        assert detail["items"][0]["base_price_at_sale_cents"] == 999
        assert stock_of(product.id) == 8

    def test_sub_cent_numeric_price_is_rejected(self, client, operator, make_product, stock_of):
        product = make_product(stock=10)
        resp = client.post("/api/transactions", json=sale_body(product, 1, 12.345, operatorId=operator.id))
        assert resp.status_code == 400
        assert resp.get_json()["errorKind"] == "ValidationError"
        assert stock_of(product.id) == 10

    def test_oversized_quantity_is_rejected_cleanly(self, client, operator, make_product, stock_of):
        product = make_product(stock=10)
        resp = client.post("/api/transactions", json=sale_body(product, 10**20, "1", operatorId=operator.id))
        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "items[0].quantity"
        assert stock_of(product.id) == 10

    def test_missing_body_is_a_validation_error(self, client, db_session):
        resp = client.post("/api/transactions", data="nope", content_type="text/plain")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Cart is empty"

    def test_insufficient_stock_returns_409(self, client, operator, make_product, stock_of):
        product = make_product(stock=3)

        resp = client.post("/api/transactions", json=sale_body(product, 5, operatorId=operator.id))

        assert resp.status_code == 409
        data = resp.get_json()
        assert data["errorKind"] == "InsufficientStock"
        assert data["details"] == {"productId": product.id, "available": 3, "requested": 5}
        assert stock_of(product.id) == 3

    def test_insufficient_credit_returns_409(self, client, operator, make_product, make_member):
        product = make_product(stock=10)
        member = make_member(limit_cents=100000, balance_cents=90000)

        resp = client.post(
            "/api/transactions",
            json=sale_body(product, 3, "50", operatorId=operator.id, paymentMethod="credit", memberId=member.id),
        )

        assert resp.status_code == 409
        data = resp.get_json()
        assert data["errorKind"] == "InsufficientCredit"
        assert data["details"]["available"] == "100.00"
        assert data["details"]["requested"] == "150.00"

    def test_unknown_product_returns_404(self, client, operator, db_session):
        resp = client.post(
            "/api/transactions",
            json={
                "items": [{"productId": 424242, "quantity": 1, "unitPrice": "1"}],
                "paymentMethod": "cash",
                "operatorId": operator.id,
            },
        )
        assert resp.status_code == 404
        assert resp.get_json()["errorKind"] == "ProductNotFound"

    def test_unknown_member_returns_404(self, client, operator, make_product):
        product = make_product(stock=10)
        resp = client.post(
            "/api/transactions",
            json=sale_body(product, operatorId=operator.id, paymentMethod="credit", memberId=8888),
        )
        assert resp.status_code == 404
        assert resp.get_json()["errorKind"] == "MemberNotFound"


# =============================================================================
# READ
# =============================================================================


class TestReadTransactions:
    def test_get_by_reference_and_id(self, client, operator, make_product):
        product = make_product(stock=10, base_price_cents=700)
        created = client.post(
            "/api/transactions", json=sale_body(product, 2, "10", operatorId=operator.id, manualDiscount="1.50")
        ).get_json()
        reference = created["transactionId"]
        numeric_id = created["transaction"]["id"]

        for ref in (reference, str(numeric_id)):
            resp = client.get(f"/api/transactions/{ref}")
            assert resp.status_code == 200
            data = resp.get_json()
            assert data["transaction"]["total_cents"] == 1850
            assert data["transaction"]["manual_discount_cents"] == 150
            assert len(data["items"]) == 1
            assert data["items"][0]["base_price_at_sale_cents"] == 700
            assert data["items"][0]["profit_cents"] == 600

    def test_get_missing_and_malformed(self, client, db_session):
        assert client.get("/api/transactions/TRX-99999").status_code == 404
        assert client.get("/api/transactions/abc").status_code == 400

    def test_list_filters_by_member(self, client, operator, make_product, make_member):
        product = make_product(stock=20)
        member = make_member()
        client.post("/api/transactions", json=sale_body(product, operatorId=operator.id))
        client.post("/api/transactions", json=sale_body(product, operatorId=operator.id, memberId=member.id))

        everything = client.get("/api/transactions").get_json()["transactions"]
        mine = client.get(f"/api/transactions?memberId={member.id}").get_json()["transactions"]

        assert len(everything) == 2
        assert [tx["member_id"] for tx in mine] == [member.id]
        assert client.get("/api/transactions?memberId=x").status_code == 400


# =============================================================================
# MEMBER CREDIT
# =============================================================================


class TestMemberCredit:
    def test_credit_summary_after_credit_sale(self, client, operator, make_product, make_member):
        product = make_product(stock=10)
        member = make_member(limit_cents=50000)
        client.post(
            "/api/transactions",
            json=sale_body(product, 2, "60", operatorId=operator.id, paymentMethod="credit", memberId=member.id),
        )

        resp = client.get(f"/api/members/{member.id}/credit")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["credit"]["balance"] == "120.00"
        assert data["credit"]["available"] == "380.00"
        assert [e["entry_type"] for e in data["entries"]] == ["SPENT"]

    def test_unknown_member_credit(self, client, db_session):
        resp = client.get("/api/members/777/credit")
        assert resp.status_code == 404
        assert resp.get_json()["errorKind"] == "MemberNotFound"

    def test_payment_reduces_balance(self, client, operator, make_member, balance_of):
        member = make_member(limit_cents=50000, balance_cents=5000)

        resp = client.post(
            f"/api/members/{member.id}/credit/payments",
            json={"amount": "20.00", "operatorId": operator.id},
        )

        assert resp.status_code == 201
        entry = resp.get_json()["entry"]
        assert entry["entry_type"] == "PAYMENT"
        assert entry["balance_after_cents"] == 3000
        assert balance_of(member.id) == 3000

    def test_overpayment_is_rejected(self, client, make_member, balance_of):
        member = make_member(balance_cents=1000)

        resp = client.post(f"/api/members/{member.id}/credit/payments", json={"amount": "10.01"})

        assert resp.status_code == 400
        assert balance_of(member.id) == 1000

    def test_numeric_amount_is_accepted(self, client, make_member, balance_of):
        member = make_member(balance_cents=1000)
        resp = client.post(f"/api/members/{member.id}/credit/payments", json={"amount": 5.5})
        assert resp.status_code == 201
        assert balance_of(member.id) == 450

    def test_sub_cent_numeric_amount_is_rejected(self, client, make_member, balance_of):
        member = make_member(balance_cents=1000)
        resp = client.post(f"/api/members/{member.id}/credit/payments", json={"amount": 5.555})
        assert resp.status_code == 400
        assert balance_of(member.id) == 1000


# =============================================================================
# NOTIFICATIONS & HEALTH
# =============================================================================


class TestNotificationsAndHealth:
    def test_low_stock_sale_shows_up_in_feed(self, app, client, operator, make_product):
        product = make_product(stock=3, name="Cooking Oil 1L")

        resp = client.post("/api/transactions", json=sale_body(product, 1, operatorId=operator.id))
        assert resp.status_code == 201
        notifications.wait_idle()

        feed = client.get("/api/notifications").get_json()["notifications"]
        alerts = [n for n in feed if n["kind"] == "low_stock" and n["data"]["product_id"] == product.id]
        assert alerts
        assert alerts[0]["data"]["remaining_stock"] == 2

        read = client.post(f"/api/notifications/{alerts[0]['id']}/read")
        assert read.status_code == 200
        assert client.post("/api/notifications/n-does-not-exist/read").status_code == 404

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert "transactions" in data["checks"]["database"]["details"]
