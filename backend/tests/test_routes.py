# Overview: Pytest coverage for the HTTP API and CLI surfaces.

"""
API Route Tests

Covers authentication, the status-code mapping of failures, payment CRUD,
reconciliation, user management and the health endpoint. Business rules
themselves are covered by the engine tests.
"""

from sqlalchemy import Column, Integer, MetaData, Table

from dealernet.errors import ErrorKind
from dealernet.models import Company, Order, Payment, PaymentEvent, SecurityEvent, User
from dealernet.routes import system
from dealernet.services import auth_service

from conftest import TEST_PASSWORD, auth_headers, get_auth_token, payment_payload


# =============================================================================
# AUTHENTICATION
# =============================================================================

class TestAuthRoutes:
    def test_protected_route_requires_token(self, client, db_session):
        response = client.get("/api/payments")
        assert response.status_code == 401
        assert response.json["error"] == "Unauthenticated"

    def test_malformed_header(self, client, db_session):
        response = client.get("/api/auth/me", headers={"Authorization": "Token abc"})
        assert response.status_code == 401

    def test_login_me_logout(self, client, admin_a, company_a):
        token = get_auth_token(client, "admin@acme.test")
        assert token is not None

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["principal"]["role"] == "admin"
        assert me.json["principal"]["company_id"] == company_a.id
        assert me.json["principal"]["company_type"] == "dealer"

        logout = client.post("/api/auth/logout", headers=auth_headers(token))
        assert logout.status_code == 200

        again = client.get("/api/auth/me", headers=auth_headers(token))
        assert again.status_code == 401

    def test_login_is_case_insensitive_on_email(self, client, admin_a):
        assert get_auth_token(client, "ADMIN@acme.test") is not None

    def test_wrong_password_logged(self, client, db_session, admin_a):
        response = client.post("/api/auth/login", json={"email": "admin@acme.test", "password": "Wrong123!"})

        assert response.status_code == 401
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 1

    def test_inactive_user_cannot_login(self, client, make_user, company_a):
        make_user(company_a, "staff", email="gone@acme.test", status="inactive")
        response = client.post("/api/auth/login", json={"email": "gone@acme.test", "password": TEST_PASSWORD})
        assert response.status_code == 401
        assert response.json["error"] == "AccountInactive"

    def test_login_requires_both_fields(self, client, db_session):
        response = client.post("/api/auth/login", json={"email": "admin@acme.test"})
        assert response.status_code == 400

    def test_login_rejects_non_object_body(self, client, db_session):
        response = client.post("/api/auth/login", json=["admin@acme.test", TEST_PASSWORD])
        assert response.status_code == 400
        assert response.json["error"] == "ValidationFailed"

    def test_login_rejects_non_string_password(self, client, admin_a):
        response = client.post("/api/auth/login", json={"email": "admin@acme.test", "password": 123})
        assert response.status_code == 400

    def test_authenticate_rejects_non_string_password(self, db_session, admin_a):
        result = auth_service.authenticate("admin@acme.test", 123)
        assert result.kind == ErrorKind.UNAUTHENTICATED

    def test_unknown_email_still_runs_bcrypt(self, db_session, admin_a, monkeypatch):
        checked = []

        def recording_verify(password, password_hash):
            checked.append(password_hash)
            return False

        monkeypatch.setattr(auth_service, "verify_password", recording_verify)

        result = auth_service.authenticate("nobody@acme.test", TEST_PASSWORD)

        assert result.kind == ErrorKind.UNAUTHENTICATED
        assert checked == [auth_service._dummy_password_hash()]

    def test_unknown_email_and_wrong_password_look_the_same(self, client, admin_a):
        unknown = client.post("/api/auth/login", json={"email": "nobody@acme.test", "password": TEST_PASSWORD})
        wrong = client.post("/api/auth/login", json={"email": "admin@acme.test", "password": "Wrong123!"})

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json == wrong.json

    def test_self_registration_disabled(self, client, db_session):
        response = client.post("/api/auth/register", json={"email": "new@acme.test"})
        assert response.status_code == 403


# =============================================================================
# PAYMENTS
# =============================================================================

class TestPaymentRoutes:
    def test_create_get_update_delete(self, client, db_session, headers_for, staff_a, order_a):
        headers = headers_for(staff_a)

        created = client.post(
            "/api/payments", json=payment_payload(6000, "TX-HTTP", order_id=order_a.id), headers=headers
        )
        assert created.status_code == 201
        payment = created.json["payment"]
        assert payment["amount_cents"] == 6000
        assert payment["recorded_by_id"] == staff_a.id

        fetched = client.get(f"/api/payments/{payment['id']}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json["payment"]["transaction_id"] == "TX-HTTP"

        updated = client.put(f"/api/payments/{payment['id']}", json={"amount_cents": 10000}, headers=headers)
        assert updated.status_code == 200
        db_session.expire_all()
        assert db_session.get(Order, order_a.id).payment_status == "paid"

        deleted = client.delete(f"/api/payments/{payment['id']}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json["payment"]["id"] == payment["id"]
        db_session.expire_all()
        assert db_session.get(Order, order_a.id).payment_status == "pending"

        missing = client.get(f"/api/payments/{payment['id']}", headers=headers)
        assert missing.status_code == 404

    def test_duplicate_transaction_is_409(self, client, headers_for, staff_a):
        headers = headers_for(staff_a)
        client.post("/api/payments", json=payment_payload(100, "TX-DUP"), headers=headers)

        response = client.post("/api/payments", json=payment_payload(100, "TX-DUP"), headers=headers)

        assert response.status_code == 409
        assert response.json["error"] == "ReconciliationFailed"

    def test_invalid_payload_is_400(self, client, headers_for, staff_a):
        response = client.post("/api/payments", json=payment_payload(-5, "TX-NEG"), headers=headers_for(staff_a))
        assert response.status_code == 400
        assert response.json["error"] == "ValidationFailed"

    def test_list_pagination_params(self, client, headers_for, staff_a):
        headers = headers_for(staff_a)
        for n in range(3):
            client.post("/api/payments", json=payment_payload(100, f"TX-L{n}"), headers=headers)

        response = client.get("/api/payments?page=2&limit=2", headers=headers)

        assert response.status_code == 200
        assert response.json["pagination"] == {"page": 2, "limit": 2, "total_items": 3, "total_pages": 2}
        assert len(response.json["items"]) == 1

    def test_list_rejects_bad_limit(self, client, headers_for, staff_a):
        response = client.get("/api/payments?limit=500", headers=headers_for(staff_a))
        assert response.status_code == 400

    def test_non_recorder_update_is_403(self, client, headers_for, staff_a, manager_a):
        created = client.post("/api/payments", json=payment_payload(100, "TX-OWN"), headers=headers_for(staff_a))

        response = client.put(
            f"/api/payments/{created.json['payment']['id']}",
            json={"notes": "edit"},
            headers=headers_for(manager_a),
        )

        assert response.status_code == 403
        assert response.json["error"] == "InsufficientPermission"

    def test_staff_cannot_reconcile(self, client, headers_for, staff_a):
        headers = headers_for(staff_a)
        created = client.post("/api/payments", json=payment_payload(100, "TX-REC"), headers=headers)

        response = client.post(
            f"/api/payments/{created.json['payment']['id']}/reconcile",
            json={"reconciliation_status": "reconciled"},
            headers=headers,
        )

        assert response.status_code == 403
        assert response.json["error"] == "InsufficientRole"

    def test_manager_reconciles(self, client, headers_for, staff_a, manager_a):
        created = client.post("/api/payments", json=payment_payload(100, "TX-REC"), headers=headers_for(staff_a))

        response = client.post(
            f"/api/payments/{created.json['payment']['id']}/reconcile",
            json={"reconciliation_status": "reconciled", "notes": "Bank statement 03/2026"},
            headers=headers_for(manager_a),
        )

        assert response.status_code == 200
        assert response.json["payment"]["reconciliation_status"] == "reconciled"
        assert response.json["payment"]["reconciled_by_id"] == manager_a.id

    def test_invoice_summary(self, client, headers_for, staff_a, invoice_a):
        headers = headers_for(staff_a)
        client.post("/api/payments", json=payment_payload(2500, "TX-INV", invoice_id=invoice_a.id), headers=headers)

        response = client.get(f"/api/invoices/{invoice_a.id}/payment-summary", headers=headers)

        assert response.status_code == 200
        assert response.json["status"] == "partially_paid"
        assert response.json["remaining_amount_cents"] == 7500

    def test_reconcile_with_non_object_body_is_400(self, client, db_session, headers_for, staff_a, manager_a):
        created = client.post("/api/payments", json=payment_payload(100, "TX-ARR"), headers=headers_for(staff_a))

        response = client.post(
            f"/api/payments/{created.json['payment']['id']}/reconcile",
            json=["reconciled"],
            headers=headers_for(manager_a),
        )

        assert response.status_code == 400
        assert response.json["error"] == "ValidationFailed"
        assert db_session.query(PaymentEvent).filter_by(event_type="payment.reconciled").count() == 0
        db_session.expire_all()
        assert db_session.get(Payment, created.json["payment"]["id"]).reconciliation_status == "unreconciled"

    def test_inactive_company_is_403(self, client, headers_for, make_user, suspended_company):
        user = make_user(suspended_company, "admin")
        response = client.post("/api/payments", json=payment_payload(100, "TX-S"), headers=headers_for(user))
        assert response.status_code == 403
        assert response.json["error"] == "CompanyInactive"


# =============================================================================
# USER MANAGEMENT
# =============================================================================

class TestUserManagementRoutes:
    def test_list_users(self, client, headers_for, admin_a, staff_a, company_a):
        response = client.get(f"/api/companies/{company_a.id}/users", headers=headers_for(admin_a))

        assert response.status_code == 200
        emails = {u["email"] for u in response.json["users"]}
        assert emails == {"admin@acme.test", "staff@acme.test"}

    def test_update_user(self, client, db_session, headers_for, admin_a, staff_a, company_a):
        response = client.put(
            f"/api/companies/{company_a.id}/users/{staff_a.id}",
            json={"role": "manager", "status": "active", "reason": "Promoted after review"},
            headers=headers_for(admin_a),
        )

        assert response.status_code == 200
        assert response.json["user"]["role"] == "manager"

        logs = client.get(f"/api/companies/{company_a.id}/users/audit-logs", headers=headers_for(admin_a))
        assert logs.status_code == 200
        assert logs.json["audit_logs"][0]["action"] == "role_update"

    def test_self_modification_is_400(self, client, headers_for, admin_a, company_a):
        response = client.put(
            f"/api/companies/{company_a.id}/users/{admin_a.id}",
            json={"role": "admin", "status": "inactive", "reason": "Vacation"},
            headers=headers_for(admin_a),
        )
        assert response.status_code == 400
        assert response.json["error"] == "SelfModificationNotAllowed"

    def test_escalation_is_403(self, client, headers_for, manager_a, staff_a, company_a):
        response = client.put(
            f"/api/companies/{company_a.id}/users/{staff_a.id}",
            json={"role": "admin", "status": "active", "reason": "Promotion"},
            headers=headers_for(manager_a),
        )
        assert response.status_code == 403
        assert response.json["error"] == "CannotEscalate"

    def test_remove_user_revokes_access(self, client, db_session, headers_for, admin_a, staff_a, company_a):
        staff_headers = headers_for(staff_a)

        response = client.delete(
            f"/api/companies/{company_a.id}/users/{staff_a.id}",
            json={"reason": "Left the company"},
            headers=headers_for(admin_a),
        )

        assert response.status_code == 200
        assert response.json["user"]["status"] == "removed"
        assert client.get("/api/auth/me", headers=staff_headers).status_code == 401

    def test_non_object_body_is_400(self, client, db_session, headers_for, admin_a, staff_a, company_a):
        path = f"/api/companies/{company_a.id}/users/{staff_a.id}"

        update = client.put(path, json=["manager", "active", "Promoted"], headers=headers_for(admin_a))
        removal = client.delete(path, json="Left the company", headers=headers_for(admin_a))

        assert update.status_code == 400
        assert update.json["error"] == "ValidationFailed"
        assert removal.status_code == 400
        db_session.expire_all()
        assert db_session.get(User, staff_a.id).status == "active"

    def test_assignable_roles(self, client, headers_for, manager_a, company_a):
        response = client.get(f"/api/companies/{company_a.id}/users/roles", headers=headers_for(manager_a))

        assert response.status_code == 200
        assert [r["role"] for r in response.json["roles"]] == ["manager", "staff"]


# =============================================================================
# SYSTEM
# =============================================================================

class TestHealth:
    def test_health(self, client, db_session):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert set(response.json["checks"]) == {"principal_resolver", "reconciliation", "governance"}
        assert response.json["checks"]["reconciliation"]["unreachable_tables"] == []

    def test_missing_table_is_503(self, client, db_session, monkeypatch):
        class Unmigrated:
            __tablename__ = "unmigrated_ledger"
            __table__ = Table(__tablename__, MetaData(), Column("id", Integer, primary_key=True))

        monkeypatch.setitem(system.ENGINE_TABLES, "governance", (User, Unmigrated))

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json["status"] == "unhealthy"
        assert response.json["checks"]["governance"] == {
            "status": "unhealthy",
            "unreachable_tables": ["unmigrated_ledger"],
        }
        assert response.json["checks"]["reconciliation"]["status"] == "healthy"


class TestCli:
    def test_create_company_and_user(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["companies", "create", "--name", "Delta Parts", "--type", "supplier"])
        assert "PASS Created company" in result.output
        company = db_session.query(Company).filter_by(name="Delta Parts").one()

        result = runner.invoke(args=[
            "users", "create",
            "--company-id", str(company.id),
            "--email", "Owner@Delta.test",
            "--password", TEST_PASSWORD,
            "--role", "admin",
        ])
        assert "PASS Created user" in result.output
        user = db_session.query(User).filter_by(email="owner@delta.test").one()
        assert user.role == "admin"

    def test_weak_password_rejected(self, app, company_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--company-id", str(company_a.id),
            "--email", "weak@acme.test", "--password", "weak",
        ])
        assert "FAIL Password validation failed" in result.output

    def test_recompute(self, app, db_session, order_a):
        db_session.query(Order).filter_by(id=order_a.id).update({"payment_status": "paid"})
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["payments", "recompute", "--company-id", str(order_a.company_id)])

        assert "PASS Checked 1 order(s), 1 changed" in result.output
        db_session.expire_all()
        assert db_session.get(Order, order_a.id).payment_status == "pending"
