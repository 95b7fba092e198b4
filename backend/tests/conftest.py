"""
Pytest fixtures for dealernet backend tests.

Provides test database setup, two-tenant fixtures, engines and test client.
"""

from datetime import date, datetime, timedelta

import pytest
from dealernet import create_app
from dealernet.config import TestingConfig
from dealernet.extensions import db
from dealernet.models import Company, User, Order, Invoice
from dealernet.models.commerce import INVOICE_STATUS_SENT
from dealernet.services import session_service
from dealernet.services.auth_service import hash_password
from dealernet.services.governance_service import GovernanceEngine
from dealernet.services.notification_service import Notifier
from dealernet.services.principal_service import Principal
from dealernet.services.reconciliation_service import ReconciliationEngine


TEST_PASSWORD = "Password123!"

# bcrypt cost 4 keeps fixtures fast; production uses 12
_PASSWORD_HASH = hash_password(TEST_PASSWORD, rounds=4)


class RecordingNotifier(Notifier):
    """Collects notices instead of sending them."""

    def __init__(self):
        self.sent = []

    def send_status_change_notice(self, email, status, reason):
        self.sent.append((email, status, reason))


class FailingNotifier(Notifier):
    def __init__(self):
        self.attempts = 0

    def send_status_change_notice(self, email, status, reason):
        self.attempts += 1
        raise ConnectionError("SMTP server unavailable")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# TENANTS AND USERS
# =============================================================================

def _make_company(db_session, name, company_type, status="active"):
    company = Company(name=name, type=company_type, status=status)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_a(db_session):
    """Company A (dealer, first tenant)."""
    return _make_company(db_session, "Acme Dealers", "dealer")


@pytest.fixture(scope='function')
def company_b(db_session):
    """Company B (supplier, second tenant)."""
    return _make_company(db_session, "Beta Supply", "supplier")


@pytest.fixture(scope='function')
def suspended_company(db_session):
    return _make_company(db_session, "Gamma Suspended", "dealer", status="suspended")


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user(company, role="staff", email=None, status="active")."""
    counter = {"n": 0}

    def _make(company, role="staff", email=None, status="active"):
        counter["n"] += 1
        user = User(
            company_id=company.id if company is not None else None,
            email=email or f"{role}{counter['n']}@company{company.id if company else 0}.test",
            password_hash=_PASSWORD_HASH,
            role=role,
            status=status,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def admin_a(make_user, company_a):
    return make_user(company_a, "admin", email="admin@acme.test")


@pytest.fixture(scope='function')
def manager_a(make_user, company_a):
    return make_user(company_a, "manager", email="manager@acme.test")


@pytest.fixture(scope='function')
def staff_a(make_user, company_a):
    return make_user(company_a, "staff", email="staff@acme.test")


@pytest.fixture(scope='function')
def admin_b(make_user, company_b):
    return make_user(company_b, "admin", email="admin@beta.test")


@pytest.fixture(scope='function')
def staff_b(make_user, company_b):
    return make_user(company_b, "staff", email="staff@beta.test")


def principal_of(user) -> Principal:
    """Build the Principal a request by this user would resolve to."""
    company = user.company
    return Principal(
        user_id=user.id,
        email=user.email,
        role=user.role,
        company_id=company.id if company else None,
        company_type=company.type if company else None,
        status=user.status,
    )


# =============================================================================
# ORDERS AND INVOICES
# =============================================================================

@pytest.fixture(scope='function')
def make_order(db_session):
    counter = {"n": 0}

    def _make(company, total_amount_cents=10000):
        counter["n"] += 1
        order = Order(
            company_id=company.id,
            order_number=f"PO-{company.id}-{counter['n']:04d}",
            total_amount_cents=total_amount_cents,
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _make


@pytest.fixture(scope='function')
def make_invoice(db_session):
    counter = {"n": 0}

    def _make(creator, total_amount_cents=10000, status=INVOICE_STATUS_SENT, due_in_days=30, order=None):
        counter["n"] += 1
        today = date.today()
        invoice = Invoice(
            invoice_number=f"INV-{creator.company_id}-{counter['n']:04d}",
            created_by_id=creator.id,
            order_id=order.id if order is not None else None,
            status=status,
            total_amount_cents=total_amount_cents,
            paid_amount_cents=0,
            issue_date=today,
            due_date=today + timedelta(days=due_in_days),
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice

    return _make


@pytest.fixture(scope='function')
def order_a(make_order, company_a):
    return make_order(company_a, 10000)


@pytest.fixture(scope='function')
def order_b(make_order, company_b):
    return make_order(company_b, 10000)


@pytest.fixture(scope='function')
def invoice_a(make_invoice, admin_a):
    return make_invoice(admin_a, 10000)


@pytest.fixture(scope='function')
def invoice_b(make_invoice, admin_b):
    return make_invoice(admin_b, 10000)


# =============================================================================
# ENGINES
# =============================================================================

@pytest.fixture(scope='function')
def reconciliation(db_session):
    return ReconciliationEngine(db_session)


@pytest.fixture(scope='function')
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope='function')
def governance(db_session, notifier):
    return GovernanceEngine(db_session, notifier)


def payment_payload(amount_cents, transaction_id, **extra) -> dict:
    payload = {
        "transaction_id": transaction_id,
        "amount_cents": amount_cents,
        "payment_method": "bank_transfer",
        "payment_type": "order_payment",
        "payment_date": datetime(2026, 1, 15, 10, 0, 0).isoformat() + "Z",
    }
    payload.update(extra)
    return payload


# =============================================================================
# HTTP HELPERS
# =============================================================================

def get_auth_token(client, email: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user through the login route."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def issue_token(db_session, user) -> str:
    """Create a session token directly (skips bcrypt)."""
    _, token = session_service.create_session(user.id)
    db_session.commit()
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: headers_for(user) -> Authorization headers with a fresh session token."""
    def _headers(user):
        return auth_headers(issue_token(db_session, user))
    return _headers
