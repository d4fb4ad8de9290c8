"""
HTTP surface tests.

Covers authentication and role checks, error-code mapping, and the main
register and back-office flows driven through the JSON API.
"""

import pytest

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


def _sale_payload(**overrides):
    payload = {
        "lines": [
            {"product_name": "Consulta", "product_type": "service", "quantity": 1, "unit_price_cents": 20_000},
        ],
        "payment": "CASH",
    }
    payload.update(overrides)
    return payload


class TestAuthentication:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/auth/me"),
            ("get", "/api/shifts/current"),
            ("post", "/api/shifts"),
            ("post", "/api/sales"),
            ("get", "/api/ledger/entries"),
            ("get", "/api/commissions/payments"),
            ("get", "/api/reports/shift-dashboard"),
        ],
    )
    def test_requires_token(self, client, db_session, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json["code"] == "AUTHENTICATION_REQUIRED"

    def test_invalid_token(self, client, db_session):
        response = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert response.status_code == 401

    def test_login_me_logout(self, client, cashier_user):
        token = get_auth_token(client, "cashier")
        assert token

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["username"] == "cashier"
        assert "password_hash" not in me.json["user"]

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_bad_credentials(self, client, cashier_user):
        response = client.post("/api/auth/login", json={"username": "cashier", "password": "Wrong0rd!"})
        assert response.status_code == 401
        assert response.json["code"] == "INVALID_CREDENTIALS"

        response = client.post("/api/auth/login", json={"username": "cashier"})
        assert response.status_code == 400

    def test_admin_creates_user(self, client, admin_headers):
        response = client.post("/api/auth/users", headers=admin_headers, json={
            "username": "maria",
            "password": TEST_PASSWORD,
            "full_name": "Maria Lopez",
        })
        assert response.status_code == 201
        assert response.json["user"]["role"] == "cashier"
        assert get_auth_token(client, "maria") is not None


class TestRoleChecks:

    @pytest.mark.parametrize(
        "path,body",
        [
            ("/api/auth/users", {"username": "x", "password": TEST_PASSWORD, "full_name": "X"}),
            ("/api/ledger/entries", {"payee": "Bank", "description": "Fee", "expense_cents": 100}),
            ("/api/ledger/initial-balance", {"amount_cents": 100}),
            ("/api/ledger/recompute", {}),
            ("/api/commissions/doctors", {"name": "Dr. Nuevo"}),
            ("/api/commissions/payments", {"doctor_id": 1, "start": "2025-03-01", "end": "2025-03-31"}),
            ("/api/reports/concepts", {"concept_type": "operating_expense", "name": "Rent", "amount_cents": 100,
                                        "period_start": "2025-03-01", "period_end": "2025-03-31"}),
        ],
    )
    def test_cashier_cannot_use_admin_routes(self, client, cashier_headers, path, body):
        response = client.post(path, headers=cashier_headers, json=body)
        assert response.status_code == 403
        assert response.json["code"] == "PERMISSION_DENIED"


class TestHealth:

    def test_degraded_without_initial_balance(self, client, db_session):
        response = client.get("/api/system/health")
        assert response.status_code == 200
        assert response.json["status"] == "degraded"
        assert response.json["checks"]["ledger"]["details"]["initial_balance_registered"] is False

    def test_healthy_with_initial_balance(self, client, open_shift):
        response = client.get("/api/system/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["ledger"]["details"]["open_shift_id"] == open_shift.id


class TestShiftFlow:

    def test_open_twice(self, client, cashier_headers, initial_balance):
        first = client.post("/api/shifts", headers=cashier_headers, json={"bills": {"100": 5}})
        assert first.status_code == 201
        assert first.json["shift"]["opening_cash_cents"] == 50_000

        second = client.post("/api/shifts", headers=cashier_headers, json={"bills": {"100": 5}})
        assert second.status_code == 409
        assert second.json["code"] == "SHIFT_ALREADY_OPEN"
        assert second.json["details"]["shift_id"] == first.json["shift"]["id"]

    def test_invalid_denomination(self, client, cashier_headers, initial_balance):
        response = client.post("/api/shifts", headers=cashier_headers, json={"bills": {"3": 1}})
        assert response.status_code == 400
        assert response.json["code"] == "INVALID_DENOMINATION"

    def test_accruals_need_open_shift(self, client, cashier_headers, initial_balance):
        response = client.post("/api/shifts/current/expenses", headers=cashier_headers, json={
            "amount_cents": 500, "category": "Supplies", "description": "Gauze",
        })
        assert response.status_code == 409
        assert response.json["code"] == "NO_ACTIVE_SHIFT"

    def test_sale_without_initial_balance(self, client, cashier_headers, cashier_user):
        opened = client.post("/api/shifts", headers=cashier_headers, json={"bills": {"100": 1}})
        assert opened.status_code == 201

        response = client.post("/api/sales", headers=cashier_headers, json=_sale_payload())
        assert response.status_code == 409
        assert response.json["code"] == "MISSING_INITIAL_BALANCE"

    def test_unknown_shift(self, client, cashier_headers):
        response = client.get("/api/shifts/999999", headers=cashier_headers)
        assert response.status_code == 404
        assert response.json["code"] == "NOT_FOUND"

    def test_day_end_to_end(self, client, cashier_headers, admin_user, initial_balance):
        shift_id = client.post("/api/shifts", headers=cashier_headers, json={"bills": {"100": 5}}).json["shift"]["id"]

        sale = client.post("/api/sales", headers=cashier_headers, json=_sale_payload())
        assert sale.status_code == 201
        assert sale.json["sale"]["total_cents"] == 20_000

        expense = client.post("/api/shifts/current/expenses", headers=cashier_headers, json={
            "amount_cents": 5_000, "category": "Supplies", "description": "Gauze",
        })
        assert expense.status_code == 201

        dashboard = client.get("/api/reports/shift-dashboard", headers=cashier_headers).json["dashboard"]
        assert dashboard["current_cash_cents"] == 65_000

        # 660.00 counted against 650.00 expected
        counted = {"bills": {"100": 6, "50": 1, "10": 1}}
        preview = client.post(f"/api/shifts/{shift_id}/preview-close", headers=cashier_headers, json=counted)
        assert preview.status_code == 200
        assert preview.json["cuadre"]["expected_cash_cents"] == 65_000
        assert preview.json["cuadre"]["cash_discrepancy_cents"] == 1_000
        assert preview.json["cuadre"]["requires_authorization"] is True

        refused = client.post(f"/api/shifts/{shift_id}/close", headers=cashier_headers, json=counted)
        assert refused.status_code == 403
        assert refused.json["code"] == "AUTHORIZATION_REQUIRED"
        assert refused.json["details"]["cash_discrepancy_cents"] == 1_000

        closed = client.post(f"/api/shifts/{shift_id}/close", headers=cashier_headers, json={
            **counted,
            "authorization": {"authorized_by": admin_user.id, "note": "Change left by a patient"},
        })
        assert closed.status_code == 200
        assert closed.json["shift"]["status"] == "CLOSED"
        assert closed.json["shift"]["closing_cash_cents"] == 66_000

        assert client.get("/api/shifts/current", headers=cashier_headers).json["shift"] is None
        again = client.post(f"/api/shifts/{shift_id}/close", headers=cashier_headers, json=counted)
        assert again.status_code == 409
        assert again.json["code"] == "SHIFT_CLOSED"

        # Previewing a closed shift reports what was persisted, not a conflict
        persisted = client.post(f"/api/shifts/{shift_id}/preview-close", headers=cashier_headers, json={})
        assert persisted.status_code == 200
        assert persisted.json["cuadre"]["status"] == "CLOSED"
        assert persisted.json["cuadre"]["closing_cash_cents"] == 66_000
        assert persisted.json["cuadre"]["cash_discrepancy_cents"] == 1_000

    def test_edit_and_remove_accruals(self, client, cashier_headers, open_shift):
        expense = client.post("/api/shifts/current/expenses", headers=cashier_headers, json={
            "amount_cents": 5_000, "category": "Supplies", "description": "Gauze",
        }).json["expense"]
        voucher = client.post("/api/shifts/current/vouchers", headers=cashier_headers, json={
            "amount_cents": 12_000, "voucher_number": "000123", "payer_name": "Ana Perez",
        }).json["voucher"]

        patched = client.patch(f"/api/shifts/expenses/{expense['id']}", headers=cashier_headers,
                               json={"amount_cents": 4_500})
        assert patched.status_code == 200
        assert patched.json["expense"]["amount_cents"] == 4_500

        rejected = client.patch(f"/api/shifts/expenses/{expense['id']}", headers=cashier_headers, json=["x"])
        assert rejected.status_code == 400
        assert rejected.json["code"] == "VALIDATION_ERROR"

        found = client.get("/api/shifts/vouchers/search", headers=cashier_headers, query_string={"number": "000123"})
        assert found.status_code == 200
        assert [v["id"] for v in found.json["vouchers"]] == [voucher["id"]]

        removed = client.delete(f"/api/shifts/vouchers/{voucher['id']}", headers=cashier_headers)
        assert removed.status_code == 200
        missing = client.get("/api/shifts/vouchers/search", headers=cashier_headers, query_string={"number": "000123"})
        assert missing.status_code == 404

        # 500.00 opening minus 45.00 paid out
        closed = client.post(f"/api/shifts/{open_shift.id}/close", headers=cashier_headers,
                             json={"bills": {"100": 4, "50": 1}, "coins": {"1": 5}})
        assert closed.status_code == 200
        frozen = client.delete(f"/api/shifts/expenses/{expense['id']}", headers=cashier_headers)
        assert frozen.status_code == 409
        assert frozen.json["code"] == "SHIFT_CLOSED"


class TestLedgerApi:

    def test_manual_entries(self, client, admin_headers, initial_balance):
        created = client.post("/api/ledger/entries", headers=admin_headers, json={
            "entry_date": "2025-03-01",
            "payee": "Banco Industrial",
            "description": "Bank charges",
            "classification": "Bank charges",
            "expense_cents": 2_500,
        })
        assert created.status_code == 201
        entry = created.json["entry"]
        assert entry["running_balance_cents"] == 997_500

        patched = client.patch(f"/api/ledger/entries/{entry['id']}", headers=admin_headers, json={"expense_cents": 3_000})
        assert patched.status_code == 200
        assert patched.json["entry"]["running_balance_cents"] == 997_000

        rejected = client.patch(f"/api/ledger/entries/{entry['id']}", headers=admin_headers, json={"running_balance_cents": 1})
        assert rejected.status_code == 400
        assert rejected.json["code"] == "VALIDATION_ERROR"

        balance = client.get("/api/ledger/balance", headers=admin_headers)
        assert balance.json["balance_cents"] == 997_000

        assert client.delete(f"/api/ledger/entries/{entry['id']}", headers=admin_headers).status_code == 200
        assert client.get("/api/ledger/balance", headers=admin_headers).json["balance_cents"] == 1_000_000

    def test_both_sides_rejected(self, client, admin_headers, initial_balance):
        response = client.post("/api/ledger/entries", headers=admin_headers, json={
            "payee": "Bank", "description": "Both", "income_cents": 100, "expense_cents": 100,
        })
        assert response.status_code == 400

    def test_entry_without_initial_balance(self, client, admin_headers):
        response = client.post("/api/ledger/entries", headers=admin_headers, json={
            "payee": "Bank", "description": "Fee", "expense_cents": 100,
        })
        assert response.status_code == 409
        assert response.json["code"] == "MISSING_INITIAL_BALANCE"


class TestCommissionsApi:

    def test_settlement_window(self, client, admin_headers, cashier_headers, doctor, open_shift):
        line = {
            "product_name": "Consulta", "product_type": "service", "quantity": 1,
            "unit_price_cents": 20_000, "doctor_id": doctor.id, "commission_rate_bps": 1_000,
        }
        client.post("/api/sales", headers=cashier_headers, json=_sale_payload(lines=[line], sale_date="2025-03-05"))

        window = {"doctor_id": doctor.id, "start": "2025-03-01", "end": "2025-03-31"}
        preview = client.get("/api/commissions/preview", headers=cashier_headers, query_string=window)
        assert preview.status_code == 200
        assert preview.json["total_cents"] == 2_000
        assert preview.json["already_settled_warning"] is False

        paid = client.post("/api/commissions/payments", headers=admin_headers, json=window)
        assert paid.status_code == 201
        payment_id = paid.json["payment"]["id"]
        assert paid.json["payment"]["total_cents"] == 2_000

        duplicate = client.post("/api/commissions/payments", headers=admin_headers, json=window)
        assert duplicate.status_code == 409
        assert duplicate.json["code"] == "DUPLICATE_SETTLEMENT_WINDOW"
        assert duplicate.json["details"]["payment_ids"] == [payment_id]

        overridden = client.post("/api/commissions/payments", headers=admin_headers, json={**window, "override": True})
        assert overridden.status_code == 400
        assert overridden.json["code"] == "NOTHING_TO_SETTLE"

        voided = client.post(f"/api/commissions/payments/{payment_id}/void", headers=admin_headers,
                             json={"reason": "Paid in cash twice"})
        assert voided.status_code == 200
        again = client.post(f"/api/commissions/payments/{payment_id}/void", headers=admin_headers,
                            json={"reason": "Paid in cash twice"})
        assert again.status_code == 409
        assert again.json["code"] == "ALREADY_VOIDED"

    def test_doctors(self, client, admin_headers, doctor):
        created = client.post("/api/commissions/doctors", headers=admin_headers, json={"name": "Dr. Nuevo"})
        assert created.status_code == 201

        names = [d["name"] for d in client.get("/api/commissions/doctors", headers=admin_headers).json["doctors"]]
        assert "Dr. Nuevo" in names and doctor.name in names


class TestReportsApi:

    def test_income_statement_range(self, client, admin_headers, initial_balance):
        response = client.get("/api/reports/income-statement", headers=admin_headers,
                              query_string={"start": "2025-03-31", "end": "2025-03-01"})
        assert response.status_code == 400
        assert response.json["code"] == "INVALID_DATE_RANGE"

        response = client.get("/api/reports/income-statement", headers=admin_headers,
                              query_string={"start": "2025-03-01", "end": "2025-03-31"})
        assert response.status_code == 200
        assert response.json["net_result_cents"] == 0

    def test_dashboard_without_shift(self, client, cashier_headers):
        response = client.get("/api/reports/shift-dashboard", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["dashboard"] is None

    def test_concepts_fold_into_income_statement(self, client, admin_headers, cashier_headers, initial_balance):
        created = client.post("/api/reports/concepts", headers=admin_headers, json={
            "concept_type": "operating_expense",
            "name": "Rent",
            "amount_cents": 80_000,
            "period_start": "2025-03-01",
            "period_end": "2025-03-31",
        })
        assert created.status_code == 201
        concept_id = created.json["concept"]["id"]

        bad = client.post("/api/reports/concepts", headers=admin_headers, json={
            "concept_type": "payroll", "name": "Nurses", "amount_cents": 1,
            "period_start": "2025-03-01", "period_end": "2025-03-31",
        })
        assert bad.status_code == 400

        window = {"start": "2025-03-10", "end": "2025-03-20"}
        listed = client.get("/api/reports/concepts", headers=cashier_headers, query_string=window)
        assert [c["id"] for c in listed.json["concepts"]] == [concept_id]

        statement = client.get("/api/reports/income-statement", headers=admin_headers, query_string=window).json
        assert statement["operating_expenses"]["total_cents"] == 80_000
        assert statement["net_result_cents"] == -80_000

        patched = client.patch(f"/api/reports/concepts/{concept_id}", headers=admin_headers, json={"amount_cents": 0})
        assert patched.status_code == 200
        assert client.get("/api/reports/income-statement", headers=admin_headers,
                          query_string=window).json["net_result_cents"] == 0

        assert client.delete(f"/api/reports/concepts/{concept_id}", headers=cashier_headers).status_code == 403
        assert client.delete(f"/api/reports/concepts/{concept_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/reports/concepts/{concept_id}", headers=admin_headers).status_code == 404

    def test_shift_statistics(self, client, cashier_headers, open_shift):
        client.post("/api/sales", headers=cashier_headers, json=_sale_payload())

        response = client.get("/api/reports/shift-statistics", headers=cashier_headers)
        assert response.status_code == 200
        stats = response.json["statistics"]
        assert stats["shift_count"] == 1
        assert stats["open_count"] == 1
        assert stats["total_sales_cents"] == 20_000

        inverted = client.get("/api/reports/shift-statistics", headers=cashier_headers,
                              query_string={"start": "2025-03-31", "end": "2025-03-01"})
        assert inverted.status_code == 400
        assert inverted.json["code"] == "INVALID_DATE_RANGE"


class TestUnexpectedErrors:

    @pytest.mark.parametrize(
        "target,path",
        [
            ("clinicpos.services.shift_service.list_shifts", "/api/shifts"),
            ("clinicpos.services.reporting_service.shift_dashboard", "/api/reports/shift-dashboard"),
            ("clinicpos.services.concept_service.list_concepts", "/api/reports/concepts"),
        ],
    )
    def test_internal_error_body(self, client, cashier_headers, monkeypatch, target, path):
        def broken(*args, **kwargs):
            raise RuntimeError("database connection lost")

        monkeypatch.setattr(target, broken)

        response = client.get(path, headers=cashier_headers)
        assert response.status_code == 500
        assert response.json == {"error": "Internal server error", "code": "INTERNAL_ERROR"}
