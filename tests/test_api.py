"""
HTTP API tests: envelopes, authentication, role checks and error mapping.
"""


def burger_order(seed, **fields):
    body = {
        "lines": [{"product_id": seed.burger, "unit_price": 250, "quantity": 2}],
        "order_type": "TAKEOUT",
        "payments": [{"method": "CASH", "amount": 560}],
    }
    body.update(fields)
    return body


class TestHealthAndAuth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok", "service": "pos-ledger-test"}

    def test_missing_token(self, client, seed):
        response = client.get("/api/orders")

        assert response.status_code == 401
        body = response.get_json()
        assert body["status"] == "error"
        assert body["code"] == "UNAUTHORIZED"
        assert body["data"] is None

    def test_garbage_token(self, client, seed):
        response = client.get("/api/orders", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_x_access_token_header(self, client, seed, auth_headers):
        token = auth_headers.manager["Authorization"].split(" ", 1)[1]

        response = client.get("/api/orders", headers={"X-Access-Token": token})

        assert response.status_code == 200


class TestOrdersApi:
    def test_quote(self, client, seed, auth_headers):
        response = client.post(
            "/api/pricing/quote",
            json={"lines": [{"unit_price": 1000, "name": "Platter"}], "order_type": "DINE_IN"},
            headers=auth_headers.server,
        )

        assert response.status_code == 200
        assert response.get_json()["data"]["total"] == 1220.0

    def test_settle_returns_created(self, client, seed, auth_headers):
        response = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)

        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "success"
        assert body["error"] is None
        assert body["data"]["invoice_number"] == 1
        assert body["data"]["total_amount"] == 560.0

    def test_replay_returns_ok(self, client, seed, auth_headers):
        body = burger_order(seed, client_reference="t1-42")

        first = client.post("/api/orders", json=body, headers=auth_headers.cashier)
        second = client.post("/api/orders", json=body, headers=auth_headers.cashier)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()["data"]["id"] == first.get_json()["data"]["id"]
        assert second.get_json()["data"]["replayed"] is True

    def test_kitchen_cannot_settle(self, client, seed, auth_headers):
        response = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.kitchen)

        assert response.status_code == 403
        assert response.get_json()["code"] == "FORBIDDEN"

    def test_payment_mismatch(self, client, seed, auth_headers):
        body = burger_order(seed, payments=[{"method": "CASH", "amount": 100}])

        response = client.post("/api/orders", json=body, headers=auth_headers.cashier)

        assert response.status_code == 400
        payload = response.get_json()
        assert payload["code"] == "PAYMENT_MISMATCH"
        assert payload["details"] == {"paid": 100.0, "total": 560.0}

    def test_malformed_request(self, client, seed, auth_headers):
        body = burger_order(seed, payments=[{"method": "BITCOIN", "amount": 560}])

        response = client.post("/api/orders", json=body, headers=auth_headers.cashier)

        assert response.status_code == 400
        payload = response.get_json()
        assert payload["code"] == "INVALID_REQUEST"
        assert payload["details"]["errors"][0]["loc"][:2] == ["payments", 0]

    def test_order_not_found(self, client, seed, auth_headers):
        response = client.get("/api/orders/999", headers=auth_headers.manager)

        assert response.status_code == 404
        assert response.get_json()["code"] == "ORDER_NOT_FOUND"

    def test_detail_includes_history(self, client, seed, auth_headers):
        created = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        order_id = created.get_json()["data"]["id"]

        response = client.get(f"/api/orders/{order_id}", headers=auth_headers.server)

        assert response.status_code == 200
        assert response.get_json()["data"]["history"][0]["status"] == "PENDING"

    def test_status_flow_and_invalid_transition(self, client, seed, auth_headers):
        created = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        order_id = created.get_json()["data"]["id"]

        ready = client.post(
            f"/api/orders/{order_id}/status", json={"status": "ready"}, headers=auth_headers.server
        )
        back = client.post(
            f"/api/orders/{order_id}/status",
            json={"status": "PENDING"},
            headers=auth_headers.server,
        )

        assert ready.status_code == 200
        assert ready.get_json()["data"]["status"] == "READY"
        assert back.status_code == 409
        assert back.get_json()["code"] == "INVALID_TRANSITION"

    def test_void_requires_authorized_role(self, client, seed, auth_headers):
        created = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        order_id = created.get_json()["data"]["id"]

        denied = client.post(
            f"/api/orders/{order_id}/void", json={"reason": "Oops"}, headers=auth_headers.cashier
        )
        voided = client.post(
            f"/api/orders/{order_id}/void", json={"reason": "Oops"}, headers=auth_headers.manager
        )
        again = client.post(
            f"/api/orders/{order_id}/void", json={"reason": "Oops"}, headers=auth_headers.manager
        )

        assert denied.status_code == 403
        assert voided.status_code == 200
        assert voided.get_json()["data"]["status"] == "VOIDED"
        assert again.status_code == 409
        assert again.get_json()["code"] == "ALREADY_VOIDED"

    def test_patch_rejects_unknown_fields(self, client, seed, auth_headers):
        created = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        order_id = created.get_json()["data"]["id"]

        ok = client.patch(
            f"/api/orders/{order_id}", json={"priority": "HIGH"}, headers=auth_headers.server
        )
        bad = client.patch(
            f"/api/orders/{order_id}", json={"total_amount": 1}, headers=auth_headers.server
        )

        assert ok.status_code == 200
        assert ok.get_json()["data"]["priority"] == "HIGH"
        assert bad.status_code == 400

    def test_refund_flow(self, client, seed, auth_headers):
        created = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        order = created.get_json()["data"]
        client.post(
            f"/api/orders/{order['id']}/status",
            json={"status": "COMPLETED"},
            headers=auth_headers.server,
        )

        response = client.post(
            f"/api/orders/{order['id']}/refunds",
            json={
                "lines": [{"order_line_id": order["lines"][0]["id"], "quantity": 1}],
                "reason": "Cold",
            },
            headers=auth_headers.manager,
        )
        listing = client.get(f"/api/orders/{order['id']}/refunds", headers=auth_headers.manager)

        assert response.status_code == 201
        assert response.get_json()["data"]["amount"] == -280.0
        assert [r["refund_number"] for r in listing.get_json()["data"]] == [1]

    def test_list_orders(self, client, seed, auth_headers):
        client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)

        response = client.get("/api/orders?status=PENDING&limit=10", headers=auth_headers.server)

        data = response.get_json()["data"]
        assert data["total"] == 1
        assert data["limit"] == 10


class TestCashDrawersApi:
    def test_open_close_cycle(self, client, seed, auth_headers):
        opened = client.post(
            "/api/cash-drawers", json={"opening_amount": 1000}, headers=auth_headers.cashier
        )
        duplicate = client.post(
            "/api/cash-drawers", json={"opening_amount": 500}, headers=auth_headers.manager
        )
        drawer_id = opened.get_json()["data"]["id"]
        client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        drop = client.post(
            f"/api/cash-drawers/{drawer_id}/drops",
            json={"amount": 300, "reason": "Safe"},
            headers=auth_headers.cashier,
        )
        closed = client.post(
            f"/api/cash-drawers/{drawer_id}/close",
            json={"counted_amount": 1260, "denomination_breakdown": {"1000": 1, "20": 13}},
            headers=auth_headers.cashier,
        )

        assert opened.status_code == 201
        assert duplicate.status_code == 409
        assert duplicate.get_json()["code"] == "ACTIVE_DRAWER_EXISTS"
        assert drop.status_code == 201
        assert closed.status_code == 200
        data = closed.get_json()["data"]
        assert data["summary"]["suggested_expected"] == 1260.0
        assert data["difference"] == 260.0

    def test_server_cannot_open_drawer(self, client, seed, auth_headers):
        response = client.post(
            "/api/cash-drawers", json={"opening_amount": 1000}, headers=auth_headers.server
        )

        assert response.status_code == 403

    def test_invalid_denomination(self, client, seed, auth_headers):
        opened = client.post(
            "/api/cash-drawers", json={"opening_amount": 0}, headers=auth_headers.cashier
        )
        drawer_id = opened.get_json()["data"]["id"]

        response = client.post(
            f"/api/cash-drawers/{drawer_id}/close",
            json={"counted_amount": 0, "denomination_breakdown": {"coins": 3}},
            headers=auth_headers.cashier,
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_REQUEST"

    def test_active_drawer_empty(self, client, seed, auth_headers):
        response = client.get("/api/cash-drawers/active", headers=auth_headers.cashier)

        assert response.status_code == 200
        assert response.get_json()["data"] is None


class TestTaxExportsAndFiscalApi:
    def test_transmitter_flow(self, client, seed, auth_headers):
        created = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        order_id = created.get_json()["data"]["id"]

        pending = client.get("/api/tax-exports/pending", headers=auth_headers.manager)
        sent = client.post(f"/api/tax-exports/{order_id}/sent", headers=auth_headers.manager)
        again = client.post(f"/api/tax-exports/{order_id}/sent", headers=auth_headers.manager)
        stats = client.get("/api/tax-exports/stats", headers=auth_headers.manager)

        assert [p["order_id"] for p in pending.get_json()["data"]["payloads"]] == [order_id]
        assert sent.get_json()["data"]["status"] == "SENT"
        assert again.status_code == 409
        assert stats.get_json()["data"] == {"pending": 0, "sent": 1, "failed": 0, "total": 1}

    def test_failed_report_requires_error(self, client, seed, auth_headers):
        created = client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)
        order_id = created.get_json()["data"]["id"]

        response = client.post(
            f"/api/tax-exports/{order_id}/failed", json={}, headers=auth_headers.manager
        )

        assert response.status_code == 400

    def test_exports_are_manager_only(self, client, seed, auth_headers):
        response = client.get("/api/tax-exports/pending", headers=auth_headers.cashier)

        assert response.status_code == 403

    def test_fiscal_counter(self, client, seed, auth_headers):
        client.post("/api/orders", json=burger_order(seed), headers=auth_headers.cashier)

        response = client.get("/api/fiscal/counter", headers=auth_headers.manager)

        data = response.get_json()["data"]
        assert data["last_invoice_number"] == 1
        assert data["grand_total"] == 560.0
